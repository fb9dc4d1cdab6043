"""Promotion manifest loading and validation.

A manifest declares the desired tag state of the destination registry:

    registries:
      src: gcr.io/example-staging
      dest: gcr.io/example-prod
    service-account: promoter@example.iam.gserviceaccount.com
    images:
    - name: app
      dmap:
        "sha256:0123...": ["1.0", "latest"]

Manifests may be partial: tags they do not mention are left alone unless
the run enables delete_extra_tags.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from config import ConfigError
from inventory import (
    DigestTags,
    ImageName,
    RegInvImage,
    RegInvImageDigest,
    RegInvImageTag,
    RegistryNames,
    to_reg_inv_image_digest,
    to_reg_inv_image_tag,
)

logger = logging.getLogger(__name__)

DIGEST_RE = re.compile(r'^sha256:[0-9a-f]{64}$')
# Docker tag grammar: [\w][\w.-]{0,127}
TAG_RE = re.compile(r'^[\w][\w.-]{0,127}$')


@dataclass
class Image:
    """One image entry in a manifest.

    Attributes:
        name: Image name without the registry prefix
        dmap: Desired digest -> tags mapping
    """
    name: ImageName
    dmap: DigestTags = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> 'Image':
        """Create Image from dictionary.

        Raises:
            ConfigError: If fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Image {index} must be a mapping")
        if 'name' not in data:
            raise ConfigError(f"Image {index} missing required field: name")
        name = data['name']
        dmap = data.get('dmap')
        if dmap is None:
            raise ConfigError(f"Image {index} ({name}) missing required field: dmap")
        if not isinstance(dmap, dict):
            raise ConfigError(f"Image {index} ({name}): dmap must be a mapping of digest to tags")

        parsed: DigestTags = {}
        for digest, tags in dmap.items():
            if not isinstance(digest, str) or not DIGEST_RE.match(digest):
                raise ConfigError(f"Image '{name}': invalid digest '{digest}'")
            if tags is None:
                tags = []
            if not isinstance(tags, list):
                raise ConfigError(f"Image '{name}': tags for {digest} must be a list")
            for tag in tags:
                # Unquoted YAML like 1.10 or yes arrives as float/bool
                if not isinstance(tag, str):
                    raise ConfigError(
                        f"Image '{name}': tag {tag!r} for {digest} must be a quoted string"
                    )
                if not TAG_RE.match(tag):
                    raise ConfigError(f"Image '{name}': invalid tag '{tag}' for {digest}")
            parsed[digest] = list(tags)
        return cls(name=str(name), dmap=parsed)

    def to_dict(self) -> dict:
        return {'name': self.name, 'dmap': {d: list(t) for d, t in self.dmap.items()}}


@dataclass
class Manifest:
    """Desired state of the destination registry.

    Attributes:
        registries: Source and destination registry names
        images: Image entries (names are unique)
        service_account: Optional account used for registry calls
        source_path: Path where manifest was loaded from (for debugging)
    """
    registries: RegistryNames
    images: list[Image] = field(default_factory=list)
    service_account: Optional[str] = None
    source_path: Optional[Path] = None

    @property
    def name(self) -> str:
        """Human-readable identifier for logs and reports."""
        if self.source_path is not None:
            return self.source_path.stem
        return self.registries.dest

    def to_reg_inv_image(self) -> RegInvImage:
        return {image.name: image.dmap for image in self.images}

    def to_reg_inv_image_digest(self) -> RegInvImageDigest:
        """Desired state in (image, digest) -> tags form."""
        return to_reg_inv_image_digest(self.to_reg_inv_image())

    def to_reg_inv_image_tag(self) -> RegInvImageTag:
        """Desired state in (image, tag) -> digest form.

        Raises:
            ConsistencyError: If a tag is claimed by two digests of one image
        """
        return to_reg_inv_image_tag(self.to_reg_inv_image())

    def validate(self) -> None:
        """Check the manifest is internally consistent.

        Raises:
            ConsistencyError: On duplicate tag claims
        """
        self.to_reg_inv_image_tag()

    def to_dict(self) -> dict:
        """Convert manifest to dictionary (for YAML/JSON serialization)."""
        result: dict[str, Any] = {
            'registries': {
                'src': self.registries.src,
                'dest': self.registries.dest,
            },
            'images': [image.to_dict() for image in self.images],
        }
        if self.service_account:
            result['service-account'] = self.service_account
        return result

    def to_json(self) -> str:
        """Serialize manifest to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict, source_path: Optional[Path] = None) -> 'Manifest':
        """Create Manifest from dictionary.

        Args:
            data: Manifest data dictionary
            source_path: Optional source path for error messages

        Returns:
            Validated Manifest instance

        Raises:
            ConfigError: If manifest structure is invalid
            ConsistencyError: If a tag is claimed by two digests
        """
        registries = data.get('registries')
        if not isinstance(registries, dict):
            raise ConfigError("Manifest missing required field: registries")
        for key in ('src', 'dest'):
            if not registries.get(key):
                raise ConfigError(f"Manifest missing required field: registries.{key}")

        images_data = data.get('images', [])
        if images_data is None:
            images_data = []
        if not isinstance(images_data, list):
            raise ConfigError("Manifest field 'images' must be a list")

        images = []
        seen: set[str] = set()
        for i, image_data in enumerate(images_data):
            image = Image.from_dict(image_data, index=i)
            if image.name in seen:
                raise ConfigError(f"Duplicate image name: '{image.name}'")
            seen.add(image.name)
            images.append(image)

        manifest = cls(
            registries=RegistryNames(
                src=str(registries['src']).rstrip('/'),
                dest=str(registries['dest']).rstrip('/'),
            ),
            images=images,
            service_account=data.get('service-account'),
            source_path=source_path,
        )
        manifest.validate()
        return manifest

    @classmethod
    def from_json(cls, json_str: str) -> 'Manifest':
        """Create Manifest from JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid manifest JSON: {e}")
        if not isinstance(data, dict):
            raise ConfigError("Manifest JSON must be an object")
        return cls.from_dict(data)


class ManifestLoader:
    """Loads manifests from YAML files."""

    def load_file(self, path: Path) -> Manifest:
        """Load manifest from specific file path.

        Args:
            path: Path to manifest YAML file

        Returns:
            Manifest instance

        Raises:
            ConfigError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigError(f"Manifest file not found: {path}")

        try:
            with open(path, encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in manifest {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Manifest {path} must be a YAML object (dict)")

        manifest = Manifest.from_dict(data, source_path=path)
        logger.debug(f"Loaded manifest {path} ({len(manifest.images)} images)")
        return manifest


def load_manifest(
    file_path: Optional[str] = None,
    json_str: Optional[str] = None,
) -> Manifest:
    """Load manifest from a file or an inline JSON string.

    Priority:
    1. json_str - Inline JSON
    2. file_path - YAML file

    Raises:
        ConfigError: If no source given, or manifest not found or invalid
    """
    if json_str:
        return Manifest.from_json(json_str)
    if file_path:
        return ManifestLoader().load_file(Path(file_path))
    raise ConfigError("No manifest source given (file path or JSON)")
