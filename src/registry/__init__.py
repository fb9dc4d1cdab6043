"""Registry backends."""

from registry.gcloud import GcloudRegistry, RegistryError

__all__ = [
    'GcloudRegistry',
    'RegistryError',
]
