"""Registry inventory views.

A registry's state is one relation, "digest D of image I carries tag T",
indexed three ways for the comparisons the promoter needs:

- RegInvImage:        image -> digest -> [tags]   (natural listing shape)
- RegInvImageDigest:  (image, digest) -> [tags]   ("what tags point at D?")
- RegInvImageTag:     (image, tag) -> digest      ("where does T point?")

All conversions here are pure; nothing is cached or mutated.
"""

import logging
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)

RegistryName = str
ImageName = str
Digest = str
Tag = str

DigestTags = dict[Digest, list[Tag]]
RegInvImage = dict[ImageName, DigestTags]
MasterInventory = dict[RegistryName, RegInvImage]
TagSet = set[Tag]


class ConsistencyError(Exception):
    """Inventory or manifest claims one tag for two digests."""


@dataclass(frozen=True, order=True)
class ImageDigest:
    """Key for the (image, digest) view."""
    image_name: ImageName
    digest: Digest


@dataclass(frozen=True, order=True)
class ImageTag:
    """Key for the (image, tag) view."""
    image_name: ImageName
    tag: Tag


@dataclass(frozen=True, order=True)
class ImageDigestTag:
    """Fully flattened key: one edge of the digest/tag relation."""
    image_name: ImageName
    digest: Digest
    tag: Tag


@dataclass(frozen=True)
class RegistryNames:
    """Source and destination registries for a promotion."""
    src: RegistryName
    dest: RegistryName


RegInvImageDigest = dict[ImageDigest, list[Tag]]
RegInvImageTag = dict[ImageTag, Digest]
RegInvFlat = set[ImageDigestTag]


def tag_set(tags: list[Tag]) -> TagSet:
    """Return the tags of a TagSlice as a set."""
    return set(tags)


def to_reg_inv_image_digest(rii: RegInvImage) -> RegInvImageDigest:
    """Flatten image -> digest -> tags into (image, digest) -> tags.

    Digests with no tags are kept as keys: an untagged digest is present
    in the registry, which is different from absent.
    """
    riid: RegInvImageDigest = {}
    for image_name, digest_tags in rii.items():
        for digest, tags in digest_tags.items():
            riid[ImageDigest(image_name, digest)] = list(tags)
    return riid


def to_reg_inv_image(riid: RegInvImageDigest) -> RegInvImage:
    """Inverse of to_reg_inv_image_digest()."""
    rii: RegInvImage = {}
    for image_digest, tags in riid.items():
        rii.setdefault(image_digest.image_name, {})[image_digest.digest] = list(tags)
    return rii


def _assign(riit: RegInvImageTag, key: ImageTag, digest: Digest) -> None:
    existing = riit.get(key)
    if existing is not None and existing != digest:
        raise ConsistencyError(
            f"Tag '{key.tag}' of image '{key.image_name}' is claimed by two digests: "
            f"{existing} and {digest}"
        )
    riit[key] = digest


def to_reg_inv_image_tag(source: Union[RegInvImage, RegInvImageDigest]) -> RegInvImageTag:
    """Flatten to (image, tag) -> digest.

    Accepts either a RegInvImage or a RegInvImageDigest.

    Raises:
        ConsistencyError: If one (image, tag) would resolve to two digests
    """
    riit: RegInvImageTag = {}
    if _is_image_digest_view(source):
        for image_digest, tags in source.items():
            for tag in tags:
                _assign(riit, ImageTag(image_digest.image_name, tag), image_digest.digest)
        return riit

    for image_name, digest_tags in source.items():
        for digest, tags in digest_tags.items():
            for tag in tags:
                _assign(riit, ImageTag(image_name, tag), digest)
    return riit


def to_reg_inv_flat(rii: RegInvImage) -> RegInvFlat:
    """Flatten to the set of (image, digest, tag) edges. Untagged digests drop out."""
    return {
        ImageDigestTag(image_name, digest, tag)
        for image_name, digest_tags in rii.items()
        for digest, tags in digest_tags.items()
        for tag in tags
    }


def _is_image_digest_view(source: dict) -> bool:
    for key in source:
        return isinstance(key, ImageDigest)
    return False


def image_names(riid: RegInvImageDigest) -> list[ImageName]:
    """Image names of a (image, digest) view, in first-seen order."""
    seen: dict[ImageName, None] = {}
    for image_digest in riid:
        seen.setdefault(image_digest.image_name, None)
    return list(seen)
