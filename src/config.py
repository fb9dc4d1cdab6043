"""Promoter configuration management.

Configuration is loaded from a single YAML file:

    threads: 10
    dry_run: false
    delete_extra_tags: false
    verbosity: 0
    report_dir: /var/lib/image-promoter/reports

Resolution order for the config file:
1. Explicit path (--config)
2. $IMAGE_PROMOTER_CONFIG environment variable
3. ~/.config/image-promoter/config.yaml

A missing file is not an error (defaults apply) unless it was named
explicitly. Command-line flags override file values.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

CONFIG_ENV_VAR = 'IMAGE_PROMOTER_CONFIG'
DEFAULT_THREADS = 10


class ConfigError(Exception):
    """Configuration error."""


def get_default_config_path() -> Path:
    """Get the per-user config file location."""
    return Path.home() / '.config' / 'image-promoter' / 'config.yaml'


@dataclass
class PromoterConfig:
    """Run settings consumed by the promotion engine.

    Attributes:
        threads: Worker pool width (>= 1; 1 means strictly sequential)
        dry_run: Record requests instead of executing them
        delete_extra_tags: Allow DELETE requests for tags absent from the manifest
        verbosity: Log verbosity (affects logging only, never behavior)
        report_dir: Directory for JSON/markdown run reports (None disables them)
        config_file: Path the config was loaded from (None for defaults)
    """
    threads: int = DEFAULT_THREADS
    dry_run: bool = False
    delete_extra_tags: bool = False
    verbosity: int = 0
    report_dir: Optional[Path] = None
    config_file: Optional[Path] = None

    def __post_init__(self):
        if isinstance(self.report_dir, str):
            self.report_dir = Path(self.report_dir)

    def validate(self) -> None:
        """Check settings before any work begins.

        Raises:
            ConfigError: If a setting is out of range
        """
        if not isinstance(self.threads, int) or isinstance(self.threads, bool) or self.threads < 1:
            raise ConfigError(f"threads must be an integer >= 1, got {self.threads!r}")
        if not isinstance(self.verbosity, int) or self.verbosity < 0:
            raise ConfigError(f"verbosity must be an integer >= 0, got {self.verbosity!r}")
        for key in ('dry_run', 'delete_extra_tags'):
            value = getattr(self, key)
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false, got {value!r}")

    def apply_overrides(self, **overrides: Any) -> 'PromoterConfig':
        """Apply non-None overrides (typically from CLI flags) in place."""
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise ConfigError(f"Unknown config setting: {key}")
            if value is not None:
                setattr(self, key, value)
        self.__post_init__()
        return self

    @classmethod
    def from_dict(cls, data: dict, config_file: Optional[Path] = None) -> 'PromoterConfig':
        """Create PromoterConfig from dictionary."""
        known = {'threads', 'dry_run', 'delete_extra_tags', 'verbosity', 'report_dir'}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(
                f"Unknown config keys in {config_file or 'config'}: {', '.join(sorted(unknown))}"
            )
        config = cls(config_file=config_file)
        config.threads = data.get('threads', DEFAULT_THREADS)
        config.dry_run = data.get('dry_run', False)
        config.delete_extra_tags = data.get('delete_extra_tags', False)
        config.verbosity = data.get('verbosity', 0)
        if report_dir := data.get('report_dir'):
            config.report_dir = Path(report_dir)
        config.validate()
        return config


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a YAML object (dict)")
    return data


def find_config_file(path: Optional[str] = None) -> Optional[Path]:
    """Discover the config file.

    Resolution order:
    1. Explicit path argument (must exist)
    2. $IMAGE_PROMOTER_CONFIG environment variable (must exist)
    3. ~/.config/image-promoter/config.yaml (optional)
    """
    if path:
        explicit = Path(path)
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    if env_path := os.environ.get(CONFIG_ENV_VAR):
        env_file = Path(env_path)
        if env_file.exists():
            return env_file
        raise ConfigError(f"{CONFIG_ENV_VAR}={env_path} does not exist")

    default = get_default_config_path()
    if default.exists():
        return default
    return None


def load_config(path: Optional[str] = None) -> PromoterConfig:
    """Load promoter configuration.

    Args:
        path: Optional explicit config file path

    Returns:
        PromoterConfig (defaults if no config file is found)

    Raises:
        ConfigError: If the file is missing (when explicit) or invalid
    """
    config_file = find_config_file(path)
    if config_file is None:
        return PromoterConfig()
    return PromoterConfig.from_dict(_parse_yaml(config_file), config_file=config_file)
