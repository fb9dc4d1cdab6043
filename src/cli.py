#!/usr/bin/env python3
"""CLI entry point for image-promoter.

Commands:
- promote:   Converge the destination registry to a manifest
- validate:  Check a manifest without touching any registry
- inventory: Show digest -> tags for registry images
"""

import logging
import subprocess
import sys
from pathlib import Path

COMMANDS = {
    "promote": "Converge the destination registry to a manifest",
    "validate": "Check a manifest without touching any registry",
    "inventory": "Show digest -> tags for registry images",
}


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'


logger = logging.getLogger(__name__)


def print_usage() -> None:
    print("Usage: image-promoter <command> [options]")
    print()
    print("Commands:")
    for name, description in COMMANDS.items():
        print(f"  {name:<10} {description}")
    print()
    print("Run 'image-promoter <command> --help' for command-specific options.")


def dispatch(command: str, argv: list) -> int:
    """Dispatch to a command handler.

    Args:
        command: Command name (e.g., "promote")
        argv: Remaining command line arguments

    Returns:
        Exit code
    """
    if command == "promote":
        from promoter.cli import promote_main
        rc: int = promote_main(argv)
        return rc
    if command == "validate":
        from promoter.cli import validate_main
        rc = validate_main(argv)
        return rc
    if command == "inventory":
        from promoter.cli import inventory_main
        rc = inventory_main(argv)
        return rc

    print(f"Error: Unknown command '{command}'")
    print_usage()
    return 1


def main(argv=None) -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    argv = sys.argv[1:] if argv is None else argv

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0
    if argv[0] == '--version':
        print(f"image-promoter {get_version()}")
        return 0
    return dispatch(argv[0], argv[1:])


if __name__ == '__main__':
    sys.exit(main())
