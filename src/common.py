"""Common utilities for registry automation."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def split_image_ref(ref: str) -> tuple[str, str]:
    """Split 'registry/path/image' into ('registry/path', 'image').

    The image name is the last path component; everything before it is
    treated as the registry name (host plus path prefix).

    Raises:
        ValueError: If ref has no '/' separator
    """
    if '/' not in ref:
        raise ValueError(f"Image reference '{ref}' has no registry prefix")
    registry, image = ref.rsplit('/', 1)
    if not registry or not image:
        raise ValueError(f"Image reference '{ref}' is malformed")
    return registry, image
