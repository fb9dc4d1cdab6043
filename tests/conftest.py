"""Shared pytest fixtures for image-promoter tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from inventory import RegistryNames


def make_digest(char: str) -> str:
    """Build a well-formed sha256 digest from one hex character."""
    return 'sha256:' + char * 64


DIGEST_A = make_digest('a')
DIGEST_B = make_digest('b')
DIGEST_C = make_digest('c')


@pytest.fixture
def registries():
    return RegistryNames(src='gcr.io/example-staging', dest='gcr.io/example-prod')


@pytest.fixture
def manifest_data():
    """Minimal valid manifest dict with two images."""
    return {
        'registries': {
            'src': 'gcr.io/example-staging',
            'dest': 'gcr.io/example-prod',
        },
        'service-account': 'promoter@example.iam.gserviceaccount.com',
        'images': [
            {'name': 'app', 'dmap': {DIGEST_A: ['1.0', 'latest'], DIGEST_B: ['0.9']}},
            {'name': 'sidecar', 'dmap': {DIGEST_C: ['2.1']}},
        ],
    }


@pytest.fixture
def manifest_file(tmp_path):
    """Manifest YAML file on disk."""
    path = tmp_path / 'prod.yaml'
    path.write_text(f"""
registries:
  src: gcr.io/example-staging
  dest: gcr.io/example-prod
service-account: promoter@example.iam.gserviceaccount.com
images:
- name: app
  dmap:
    "{DIGEST_A}": ["1.0", "latest"]
    "{DIGEST_B}": ["0.9"]
- name: sidecar
  dmap:
    "{DIGEST_C}": ["2.1"]
""")
    return path


class RecordingMutator:
    """TagMutator double: records calls, optionally failing on some tags."""

    def __init__(self, fail_tags=()):
        self.calls = []
        self.fail_tags = set(fail_tags)

    def execute(self, request):
        self.calls.append(request)
        if request.tag in self.fail_tags:
            raise RuntimeError(f"simulated failure for {request.tag}")


@pytest.fixture
def mutator():
    return RecordingMutator()
