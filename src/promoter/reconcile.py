"""Reconciliation engine.

Compares desired state (from a Manifest) with the destination registry's
actual state and produces the ordered tag operations that converge one to
the other:

- ADD:    desired tag does not exist on the image yet
- MOVE:   desired tag exists but points at another digest
- DELETE: tag exists but the manifest does not name it (opt-in only)

Within one image requests are ordered ADD, MOVE, DELETE. Requests for
different images have no ordering dependency.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from inventory import (
    ConsistencyError,
    Digest,
    ImageName,
    ImageTag,
    RegInvImageDigest,
    RegistryNames,
    Tag,
    image_names,
    to_reg_inv_image_digest,
    to_reg_inv_image_tag,
)

logger = logging.getLogger(__name__)


class TagOp(Enum):
    """Tag-modifying operation kinds."""
    ADD = 'add'
    MOVE = 'move'
    DELETE = 'delete'


@dataclass(frozen=True)
class PromotionRequest:
    """One atomic tag mutation against the destination registry.

    Attributes:
        tag_op: Operation kind
        registries: Source/destination registry pair
        image_name: Image name (no registry prefix)
        digest: Target digest (for DELETE: the digest the tag points at now)
        tag: Tag being added, moved or deleted
        digest_old: Digest being displaced (MOVE only)
    """
    tag_op: TagOp
    registries: RegistryNames
    image_name: ImageName
    digest: Digest
    tag: Tag
    digest_old: Optional[Digest] = None

    def describe(self) -> str:
        """Short human-readable form for logs and reports."""
        dest = f"{self.registries.dest}/{self.image_name}:{self.tag}"
        if self.tag_op == TagOp.MOVE:
            return f"MOVE {dest} {self.digest_old} -> {self.digest}"
        if self.tag_op == TagOp.DELETE:
            return f"DELETE {dest} (was {self.digest})"
        return f"ADD {dest} -> {self.digest}"

    def to_dict(self) -> dict:
        d = {
            'op': self.tag_op.value,
            'src': self.registries.src,
            'dest': self.registries.dest,
            'image': self.image_name,
            'digest': self.digest,
            'tag': self.tag,
        }
        if self.digest_old is not None:
            d['digest_old'] = self.digest_old
        return d


@runtime_checkable
class RequestGenerator(Protocol):
    """Protocol for anything that can plan the requests of a run."""

    def generate_requests(self, sync_context) -> list[PromotionRequest]:
        """Return the ordered requests for this run."""


def _tags_by_image(riid: RegInvImageDigest) -> dict[ImageName, dict[Tag, Digest]]:
    by_image: dict[ImageName, dict[Tag, Digest]] = {}
    for image_tag, digest in to_reg_inv_image_tag(riid).items():
        by_image.setdefault(image_tag.image_name, {})[image_tag.tag] = digest
    return by_image


def _check_exclusive(image: ImageName, *groups: list[PromotionRequest]) -> None:
    """Each (image, tag) may get at most one operation per run."""
    claimed: dict[ImageTag, TagOp] = {}
    for group in groups:
        for request in group:
            key = ImageTag(image, request.tag)
            if key in claimed:
                raise ConsistencyError(
                    f"Tag '{request.tag}' of image '{image}' would be both "
                    f"{claimed[key].value} and {request.tag_op.value}"
                )
            claimed[key] = request.tag_op


def reconcile(
    desired: RegInvImageDigest,
    actual: RegInvImageDigest,
    registries: RegistryNames,
    delete_extra_tags: bool = False,
) -> list[PromotionRequest]:
    """Compute the requests that turn `actual` into `desired`.

    Only images named in `desired` are considered; images that exist only
    in `actual` are never touched.

    Args:
        desired: Desired state, usually Manifest.to_reg_inv_image_digest()
        actual: Destination registry state in the same shape
        registries: Registry pair stamped onto every request
        delete_extra_tags: Emit DELETE for tags the manifest does not name

    Returns:
        Requests grouped by image, each group ordered ADD, MOVE, DELETE

    Raises:
        ConsistencyError: If either side claims one tag for two digests.
            Raised before any request is produced.
    """
    # Both sides are checked before any request is built
    desired_tags = _tags_by_image(desired)
    actual_tags = _tags_by_image(actual)

    requests: list[PromotionRequest] = []
    for image in image_names(desired):
        wanted = desired_tags.get(image, {})
        current = actual_tags.get(image, {})

        adds: list[PromotionRequest] = []
        moves: list[PromotionRequest] = []
        deletes: list[PromotionRequest] = []

        for tag, digest in wanted.items():
            current_digest = current.get(tag)
            if current_digest is None:
                adds.append(PromotionRequest(
                    tag_op=TagOp.ADD,
                    registries=registries,
                    image_name=image,
                    digest=digest,
                    tag=tag,
                ))
            elif current_digest != digest:
                moves.append(PromotionRequest(
                    tag_op=TagOp.MOVE,
                    registries=registries,
                    image_name=image,
                    digest=digest,
                    tag=tag,
                    digest_old=current_digest,
                ))

        if delete_extra_tags:
            for tag, digest in current.items():
                if tag not in wanted:
                    deletes.append(PromotionRequest(
                        tag_op=TagOp.DELETE,
                        registries=registries,
                        image_name=image,
                        digest=digest,
                        tag=tag,
                    ))

        _check_exclusive(image, adds, moves, deletes)

        if adds or moves or deletes:
            logger.debug(
                f"{image}: {len(adds)} add, {len(moves)} move, {len(deletes)} delete"
            )
        requests.extend(adds)
        requests.extend(moves)
        requests.extend(deletes)

    return requests


class PromotionPlanner:
    """Plans a run from a Manifest against the destination inventory.

    Implements RequestGenerator; the destination inventory must already be
    in sync_context.inv.
    """

    def __init__(self, manifest):
        self.manifest = manifest

    def generate_requests(self, sync_context) -> list[PromotionRequest]:
        registries = self.manifest.registries
        desired = self.manifest.to_reg_inv_image_digest()
        actual = to_reg_inv_image_digest(sync_context.registry_inventory(registries.dest))

        requests = reconcile(
            desired,
            actual,
            registries,
            delete_extra_tags=sync_context.delete_extra_tags,
        )
        counts = {op: sum(1 for r in requests if r.tag_op == op) for op in TagOp}
        logger.info(
            f"Planned {len(requests)} requests for {registries.dest} "
            f"(add={counts[TagOp.ADD]}, move={counts[TagOp.MOVE]}, "
            f"delete={counts[TagOp.DELETE]})"
        )
        return requests