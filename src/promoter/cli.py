"""CLI handlers for promotion commands (promote, validate, inventory).

Usage:
    image-promoter promote --manifest-file <file> [--dry-run] [--delete-extra-tags]
                           [--threads N] [--json-output] [--report-file <path>]
                           [--report-dir <dir>] [--verbose]
    image-promoter validate --manifest-file <file>
    image-promoter inventory <registry/image> [<registry/image> ...]
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from common import split_image_ref
from config import ConfigError, load_config
from inventory import ConsistencyError
from manifest import load_manifest
from promoter.executor import RequestExecutor
from promoter.reconcile import PromotionPlanner
from promoter.state import SyncContext
from registry.gcloud import GcloudRegistry, RegistryError

logger = logging.getLogger(__name__)


def _add_manifest_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--manifest-file', '-m',
        help='Path to manifest YAML file',
    )
    parser.add_argument(
        '--manifest-json',
        help='Inline manifest JSON',
    )


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )


def _setup_logging(verbose: bool, json_output: bool, verbosity: int = 0) -> None:
    """Configure logging based on flags."""
    if json_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose or verbosity >= 2:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_manifest(args):
    """Load manifest from parsed args.

    Raises:
        SystemExit: On missing source or invalid manifest
    """
    if not args.manifest_file and not args.manifest_json:
        print("Error: specify a manifest with --manifest-file or --manifest-json",
              file=sys.stderr)
        sys.exit(1)
    try:
        return load_manifest(file_path=args.manifest_file, json_str=args.manifest_json)
    except (ConfigError, ConsistencyError) as e:
        print(f"Error loading manifest: {e}", file=sys.stderr)
        sys.exit(1)


def _print_captured(report) -> None:
    """Print the requests a dry-run would have issued."""
    print("")
    print("=" * 65)
    print(f"  DRY-RUN: {len(report.captured)} requests")
    print("=" * 65)
    for request, count in report.captured.items():
        suffix = f" (x{count})" if count > 1 else ""
        print(f"  {request.describe()}{suffix}")
    print("")


def promote_main(argv: list) -> int:
    """Handle 'promote' command."""
    parser = argparse.ArgumentParser(
        prog='image-promoter promote',
        description='Promote images so the destination registry matches a manifest',
    )
    _add_manifest_args(parser)
    _add_logging_args(parser)
    parser.add_argument('--config', help='Path to promoter config YAML')
    parser.add_argument(
        '--dry-run',
        action='store_true',
        default=None,
        help='Compute and print requests without executing them',
    )
    parser.add_argument(
        '--delete-extra-tags',
        action='store_true',
        default=None,
        help='Delete destination tags the manifest does not name',
    )
    parser.add_argument('--threads', type=int, help='Worker pool width')
    parser.add_argument('--report-file', type=Path, help='Write JSON report to this path')
    parser.add_argument('--report-dir', type=Path, help='Write timestamped JSON and markdown reports here')
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        config.apply_overrides(
            threads=args.threads,
            dry_run=args.dry_run,
            delete_extra_tags=args.delete_extra_tags,
            report_dir=args.report_dir,
        )
        config.validate()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _setup_logging(args.verbose, args.json_output, config.verbosity)
    manifest = _load_manifest(args)

    registry = GcloudRegistry(service_account=manifest.service_account)
    sync_context = SyncContext.from_config(config)
    executor = RequestExecutor(sync_context, mutator=registry)

    start = time.time()
    try:
        sync_context.read_inventory(
            registry,
            manifest.registries.dest,
            [image.name for image in manifest.images],
        )
        report = executor.run(PromotionPlanner(manifest))
    except (ConfigError, ConsistencyError, RegistryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    duration = time.time() - start

    if report.dry_run and not args.json_output:
        _print_captured(report)
    report.log_errors()
    logger.info(f"{report.summary()} ({duration:.1f}s)")

    if args.report_file:
        report.write_json(args.report_file)
    if config.report_dir:
        json_path = report.write_json(report.report_filename(config.report_dir, manifest.name, 'json'))
        md_path = report.write_markdown(
            report.report_filename(config.report_dir, manifest.name, 'md'),
            title=f"Promotion: {manifest.name}",
        )
        logger.info(f"Reports written to {json_path} and {md_path}")
    if args.json_output:
        output = report.to_dict()
        output['manifest'] = manifest.name
        output['duration_seconds'] = round(duration, 2)
        print(json.dumps(output, indent=2))

    return 0 if report.success else 1


def validate_main(argv: list) -> int:
    """Handle 'validate' command: structural and consistency checks only."""
    parser = argparse.ArgumentParser(
        prog='image-promoter validate',
        description='Validate manifest structure and tag consistency',
    )
    _add_manifest_args(parser)
    _add_logging_args(parser)
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    manifest = _load_manifest(args)
    tags = len(manifest.to_reg_inv_image_tag())
    if args.json_output:
        print(json.dumps({
            'valid': True,
            'manifest': manifest.name,
            'images': len(manifest.images),
            'tags': tags,
        }, indent=2))
    else:
        print(f"Manifest '{manifest.name}' is valid: "
              f"{len(manifest.images)} images, {tags} tags "
              f"({manifest.registries.src} -> {manifest.registries.dest})")
    return 0


def inventory_main(argv: list) -> int:
    """Handle 'inventory' command: print digest -> tags for images."""
    parser = argparse.ArgumentParser(
        prog='image-promoter inventory',
        description='Show the digest -> tags inventory of registry images',
    )
    parser.add_argument('images', nargs='+', help='Image references (registry/path/image)')
    parser.add_argument('--service-account', help='Account passed to gcloud')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, json_output=True)

    registry = GcloudRegistry(service_account=args.service_account)
    output: dict = {}
    try:
        for ref in args.images:
            registry_name, image = split_image_ref(ref)
            output.setdefault(registry_name, {})[image] = registry.list_tags(registry_name, image)
    except (ValueError, RegistryError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, sort_keys=True))
    return 0
