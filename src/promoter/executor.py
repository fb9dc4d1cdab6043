"""Request executor for promotion runs.

Fans planned requests out to a bounded pool of worker threads. All requests
for one image travel as a single unit of work, so one worker runs them in
planned order (ADD, MOVE, DELETE) while different images proceed in
parallel.

Each request produces exactly one RequestResult on the shared results
queue. A failing mutation is recorded on its own result and never stops the
pool.
"""

import logging
import queue
import threading
import time
from typing import Optional, Protocol, runtime_checkable

from config import ConfigError
from inventory import ImageName
from promoter.reconcile import PromotionRequest, RequestGenerator
from promoter.state import CapturedRequests, RequestError, RequestResult, SyncContext
from reporting.report import PromotionReport

logger = logging.getLogger(__name__)


@runtime_checkable
class TagMutator(Protocol):
    """Protocol for registry backends that apply one tag mutation.

    execute() raises on failure; returning normally means success.
    """

    def execute(self, request: PromotionRequest) -> None:
        """Apply the request to the destination registry."""


def group_by_image(requests: list[PromotionRequest]) -> list[list[PromotionRequest]]:
    """Split requests into per-image sub-sequences, keeping planned order."""
    groups: dict[ImageName, list[PromotionRequest]] = {}
    for request in requests:
        groups.setdefault(request.image_name, []).append(request)
    return list(groups.values())


class RequestExecutor:
    """Runs promotion requests on a worker pool.

    Attributes:
        sync_context: Run settings (threads, dry_run)
        mutator: Backend applying mutations (unused in dry-run)
        cancel_event: Set to stop workers after their in-flight request
        captured: Dry-run record of the latest execute() call
    """

    def __init__(
        self,
        sync_context: SyncContext,
        mutator: Optional[TagMutator] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.sync_context = sync_context
        self.mutator = mutator
        self.cancel_event = cancel_event or threading.Event()
        self.captured = CapturedRequests()

    def run(self, generator: RequestGenerator) -> PromotionReport:
        """Plan requests with `generator`, then execute them."""
        self.sync_context.validate()
        requests = generator.generate_requests(self.sync_context)
        return self.execute(requests)

    def execute(self, requests: list[PromotionRequest]) -> PromotionReport:
        """Execute requests and return the aggregated report.

        Raises:
            ConfigError: If threads < 1, or no mutator is set outside dry-run
        """
        self.sync_context.validate()
        dry_run = self.sync_context.dry_run
        if not dry_run and self.mutator is None:
            raise ConfigError("A tag mutator is required unless running in dry-run mode")

        self.captured = CapturedRequests()
        work: queue.Queue = queue.Queue()
        results: queue.Queue = queue.Queue()

        groups = group_by_image(requests)
        for group in groups:
            work.put(group)

        width = min(self.sync_context.threads, max(len(groups), 1))
        for _ in range(width):
            work.put(None)

        mode = 'DRY-RUN' if dry_run else 'LIVE'
        logger.info(
            f"[{mode}] Executing {len(requests)} requests for {len(groups)} images "
            f"on {width} worker(s)"
        )

        workers = [
            threading.Thread(
                target=self._worker,
                args=(work, results),
                name=f'promoter-worker-{i}',
                daemon=True,
            )
            for i in range(width)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        report = PromotionReport.collect(
            results,
            captured=self.captured if dry_run else None,
            dry_run=dry_run,
        )
        if len(report.results) != len(requests):
            raise RuntimeError(
                f"Executor produced {len(report.results)} results for {len(requests)} requests"
            )
        return report

    def _worker(self, work: queue.Queue, results: queue.Queue) -> None:
        """Drain units of work until the sentinel arrives."""
        while True:
            group = work.get()
            if group is None:
                return
            for request in group:
                if self.cancel_event.is_set():
                    results.put(RequestResult(request=request, attempted=False))
                    continue
                results.put(self._process(request))

    def _process(self, request: PromotionRequest) -> RequestResult:
        """Run (or record) a single request."""
        start = time.time()
        if self.sync_context.dry_run:
            self.captured.record(request)
            logger.debug(f"[dry-run] {request.describe()}")
            return RequestResult(request=request, duration=time.time() - start)

        logger.debug(f"Executing {request.describe()}")
        try:
            self.mutator.execute(request)  # type: ignore[union-attr]
        except Exception as e:
            logger.error(f"Request failed: {request.describe()}: {e}")
            return RequestResult(
                request=request,
                errors=[RequestError(context=request.describe(), error=e)],
                duration=time.time() - start,
            )
        return RequestResult(request=request, duration=time.time() - start)
