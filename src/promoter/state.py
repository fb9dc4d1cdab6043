"""Per-run state for a promotion.

SyncContext owns the inventory snapshot for one run. RequestResult and
CapturedRequests carry what the worker pool produced back to the
aggregator.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from config import ConfigError, PromoterConfig
from inventory import DigestTags, ImageName, MasterInventory, RegistryName, RegInvImage
from promoter.reconcile import PromotionRequest

logger = logging.getLogger(__name__)


@runtime_checkable
class InventoryReader(Protocol):
    """Protocol for registry backends that can list an image's tags."""

    def list_tags(self, registry: RegistryName, image: ImageName) -> DigestTags:
        """Return the digest -> tags mapping of one image."""


@dataclass
class SyncContext:
    """Working state for one reconciliation run.

    Attributes:
        threads: Worker pool width
        verbosity: Log verbosity (no effect on behavior)
        delete_extra_tags: Allow DELETE requests
        dry_run: Record requests instead of executing them
        inv: Inventory snapshot, keyed by registry. Written once by
            read_inventory() and read-only afterwards.
    """
    threads: int = 10
    verbosity: int = 0
    delete_extra_tags: bool = False
    dry_run: bool = False
    inv: MasterInventory = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: PromoterConfig) -> 'SyncContext':
        return cls(
            threads=config.threads,
            verbosity=config.verbosity,
            delete_extra_tags=config.delete_extra_tags,
            dry_run=config.dry_run,
        )

    def validate(self) -> None:
        """Raises ConfigError if the run cannot start."""
        if not isinstance(self.threads, int) or isinstance(self.threads, bool) or self.threads < 1:
            raise ConfigError(f"threads must be an integer >= 1, got {self.threads!r}")

    def registry_inventory(self, registry: RegistryName) -> RegInvImage:
        """Inventory of one registry (empty if never read)."""
        return self.inv.get(registry, {})

    def read_inventory(
        self,
        reader: InventoryReader,
        registry: RegistryName,
        images: list[ImageName],
    ) -> RegInvImage:
        """Populate inv[registry] by listing each image's tags.

        Listing runs on a pool of `threads` workers. Errors from the reader
        propagate; no partial inventory is stored.
        """
        self.validate()
        if registry in self.inv:
            raise ConfigError(f"Inventory for {registry} was already read in this run")

        logger.info(f"Reading inventory of {len(images)} images from {registry}")
        rii: RegInvImage = {}
        with ThreadPoolExecutor(max_workers=self.threads) as pool:
            listings = pool.map(lambda image: reader.list_tags(registry, image), images)
            for image, digest_tags in zip(images, listings):
                # Absent images are left out so they read as "nothing yet"
                if digest_tags:
                    rii[image] = digest_tags

        self.inv[registry] = rii
        logger.debug(f"Inventory of {registry}: {sum(len(d) for d in rii.values())} digests")
        return rii


@dataclass
class RequestError:
    """One error attached to a request result.

    Attributes:
        context: What was being done (for logs and reports)
        error: The underlying exception
    """
    context: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.context}: {self.error}"


@dataclass
class RequestResult:
    """Outcome of one PromotionRequest.

    attempted=False marks a request left unexecuted after cancellation.
    """
    request: PromotionRequest
    errors: list[RequestError] = field(default_factory=list)
    attempted: bool = True
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.attempted and not self.errors


class CapturedRequests:
    """Lock-guarded PromotionRequest -> occurrence count map.

    Filled by every worker in dry-run mode; used for dry-run output and
    for asserting exactly which requests a run would have issued.
    """

    def __init__(self, counts: Optional[dict[PromotionRequest, int]] = None):
        self._counts: dict[PromotionRequest, int] = dict(counts or {})
        self._lock = threading.Lock()

    def record(self, request: PromotionRequest) -> int:
        """Increment the count for a request and return the new count."""
        with self._lock:
            count = self._counts.get(request, 0) + 1
            self._counts[request] = count
            return count

    def snapshot(self) -> dict[PromotionRequest, int]:
        with self._lock:
            return dict(self._counts)

    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CapturedRequests):
            return self.snapshot() == other.snapshot()
        if isinstance(other, dict):
            return self.snapshot() == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"CapturedRequests({self.snapshot()!r})"
