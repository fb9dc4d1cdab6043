"""Tests for CLI modules (cli.py and promoter.cli)."""

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from conftest import DIGEST_A, DIGEST_B, DIGEST_C


class FakeRegistry:
    """Stands in for GcloudRegistry: serves a fixed inventory, records mutations."""

    inventory: dict = {}
    fail_tags: set = set()
    executed: list = []

    def __init__(self, service_account=None):
        self.service_account = service_account

    def list_tags(self, registry, image):
        return FakeRegistry.inventory.get(image, {})

    def execute(self, request):
        FakeRegistry.executed.append(request)
        if request.tag in FakeRegistry.fail_tags:
            from registry.gcloud import RegistryError
            raise RegistryError(f"cannot tag {request.tag}")


@pytest.fixture(autouse=True)
def fake_registry(monkeypatch, tmp_path):
    """Replace gcloud access and keep user config out of CLI tests."""
    monkeypatch.delenv('IMAGE_PROMOTER_CONFIG', raising=False)
    monkeypatch.setattr('config.get_default_config_path', lambda: tmp_path / 'none.yaml')
    FakeRegistry.inventory = {'app': {DIGEST_A: ['1.0'], DIGEST_C: ['stale']}}
    FakeRegistry.fail_tags = set()
    FakeRegistry.executed = []
    monkeypatch.setattr('promoter.cli.GcloudRegistry', FakeRegistry)
    return FakeRegistry


class TestMain:
    """Tests for top-level dispatch."""

    def test_no_args_prints_usage(self, capsys):
        from cli import main
        assert main([]) == 0
        assert 'Usage: image-promoter' in capsys.readouterr().out

    def test_unknown_command(self, capsys):
        from cli import main
        assert main(['bogus']) == 1
        assert "Unknown command 'bogus'" in capsys.readouterr().out

    def test_version(self, capsys):
        from cli import main
        with patch('cli.get_version', return_value='v1.2.3'):
            assert main(['--version']) == 0
        assert 'v1.2.3' in capsys.readouterr().out

    def test_dispatches_validate(self, manifest_file, capsys):
        from cli import main
        assert main(['validate', '--manifest-file', str(manifest_file)]) == 0
        assert "is valid" in capsys.readouterr().out


class TestPromote:
    """Tests for promote_main."""

    def test_dry_run_prints_plan(self, manifest_file, capsys, fake_registry):
        from promoter.cli import promote_main
        rc = promote_main(['--manifest-file', str(manifest_file), '--dry-run'])

        assert rc == 0
        assert fake_registry.executed == []
        out = capsys.readouterr().out
        assert 'DRY-RUN: 3 requests' in out
        assert 'ADD gcr.io/example-prod/app:latest' in out
        assert 'stale' not in out

    def test_delete_extra_tags(self, manifest_file, capsys):
        from promoter.cli import promote_main
        rc = promote_main(['--manifest-file', str(manifest_file), '--dry-run', '--delete-extra-tags'])
        assert rc == 0
        assert 'DELETE gcr.io/example-prod/app:stale' in capsys.readouterr().out

    def test_live_run(self, manifest_file, fake_registry):
        from promoter.cli import promote_main
        rc = promote_main(['--manifest-file', str(manifest_file), '--threads', '2'])
        assert rc == 0
        assert sorted(r.tag for r in fake_registry.executed) == ['0.9', '2.1', 'latest']

    def test_live_failure_returns_1(self, manifest_file, fake_registry, tmp_path):
        from promoter.cli import promote_main
        fake_registry.fail_tags = {'2.1'}
        report_file = tmp_path / 'report.json'
        rc = promote_main(['--manifest-file', str(manifest_file), '--report-file', str(report_file)])

        assert rc == 1
        assert len(fake_registry.executed) == 3
        data = json.loads(report_file.read_text())
        assert data['error_count'] == 1
        assert data['errors'][0]['request']['tag'] == '2.1'

    def test_report_dir(self, manifest_file, tmp_path):
        from promoter.cli import promote_main
        report_dir = tmp_path / 'reports'
        rc = promote_main(['--manifest-file', str(manifest_file), '--dry-run', '--report-dir', str(report_dir)])
        assert rc == 0
        names = sorted(p.name for p in report_dir.iterdir())
        assert len(names) == 2
        assert names[0].endswith('.prod.passed.json')
        assert names[1].endswith('.prod.passed.md')

    def test_json_output(self, manifest_file, capsys):
        from promoter.cli import promote_main
        rc = promote_main(['--manifest-file', str(manifest_file), '--dry-run', '--json-output'])
        assert rc == 0
        data = json.loads(capsys.readouterr().out)
        assert data['manifest'] == 'prod'
        assert data['dry_run'] is True
        assert len(data['captured']) == 3

    def test_invalid_threads(self, manifest_file, capsys):
        from promoter.cli import promote_main
        rc = promote_main(['--manifest-file', str(manifest_file), '--threads', '0'])
        assert rc == 1
        assert 'threads' in capsys.readouterr().err

    def test_inconsistent_inventory(self, manifest_file, capsys, fake_registry):
        from promoter.cli import promote_main
        fake_registry.inventory = {'app': {DIGEST_A: ['x'], DIGEST_B: ['x']}}
        rc = promote_main(['--manifest-file', str(manifest_file), '--dry-run'])
        assert rc == 1
        assert 'claimed by two digests' in capsys.readouterr().err

    def test_missing_manifest_source(self, capsys):
        from promoter.cli import promote_main
        with pytest.raises(SystemExit) as exc:
            promote_main(['--dry-run'])
        assert exc.value.code == 1
        assert '--manifest-file' in capsys.readouterr().err

    def test_config_file_dry_run(self, manifest_file, tmp_path, fake_registry):
        from promoter.cli import promote_main
        config = tmp_path / 'promoter.yaml'
        config.write_text("dry_run: true\nthreads: 1\n")
        rc = promote_main(['--manifest-file', str(manifest_file), '--config', str(config)])
        assert rc == 0
        assert fake_registry.executed == []


class TestValidate:
    """Tests for validate_main."""

    def test_valid_json(self, manifest_file, capsys):
        from promoter.cli import validate_main
        assert validate_main(['--manifest-file', str(manifest_file), '--json-output']) == 0
        data = json.loads(capsys.readouterr().out)
        assert data == {'valid': True, 'manifest': 'prod', 'images': 2, 'tags': 4}

    def test_duplicate_claim(self, tmp_path, capsys):
        from promoter.cli import validate_main
        path = tmp_path / 'bad.yaml'
        path.write_text(f"""
registries: {{src: gcr.io/a, dest: gcr.io/b}}
images:
- name: app
  dmap:
    "{DIGEST_A}": ["v1"]
    "{DIGEST_B}": ["v1"]
""")
        with pytest.raises(SystemExit):
            validate_main(['--manifest-file', str(path)])
        assert 'claimed by two digests' in capsys.readouterr().err


class TestInventory:
    """Tests for inventory_main."""

    def test_prints_inventory(self, capsys):
        from promoter.cli import inventory_main
        assert inventory_main(['gcr.io/example-prod/app']) == 0
        data = json.loads(capsys.readouterr().out)
        assert data['gcr.io/example-prod']['app'][DIGEST_C] == ['stale']

    def test_bad_reference(self, capsys):
        from promoter.cli import inventory_main
        assert inventory_main(['app']) == 1
        assert 'no registry prefix' in capsys.readouterr().err
