"""Promotion run reporting."""

import json
import logging
import queue
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from promoter.reconcile import PromotionRequest
from promoter.state import CapturedRequests, RequestError, RequestResult

logger = logging.getLogger(__name__)


@dataclass
class PromotionReport:
    """Aggregated outcome of one run.

    Attributes:
        results: One RequestResult per planned request
        captured: Dry-run request counts (empty for live runs)
        dry_run: Whether the run was a dry-run
        finished_at: When the results were collected
    """
    results: list[RequestResult] = field(default_factory=list)
    captured: dict[PromotionRequest, int] = field(default_factory=dict)
    dry_run: bool = False
    finished_at: Optional[datetime] = None

    @classmethod
    def collect(
        cls,
        results: queue.Queue,
        captured: Optional[CapturedRequests] = None,
        dry_run: bool = False,
    ) -> 'PromotionReport':
        """Drain the results queue into a report.

        Call only after every worker has finished (joined); the queue is
        not expected to grow while it is drained.
        """
        collected: list[RequestResult] = []
        while True:
            try:
                collected.append(results.get_nowait())
            except queue.Empty:
                break
        return cls(
            results=collected,
            captured=captured.snapshot() if captured is not None else {},
            dry_run=dry_run,
            finished_at=datetime.now(),
        )

    @property
    def errors(self) -> list[RequestError]:
        """All errors across all results."""
        return [error for result in self.results for error in result.errors]

    @property
    def failed(self) -> list[RequestResult]:
        return [r for r in self.results if r.errors]

    @property
    def not_attempted(self) -> list[RequestResult]:
        return [r for r in self.results if not r.attempted]

    @property
    def success(self) -> bool:
        """True when every request ran and none reported an error."""
        return not self.errors and not self.not_attempted

    def summary(self) -> str:
        if self.success:
            verb = 'would be applied' if self.dry_run else 'applied'
            return f"OK: {len(self.results)} requests {verb}"
        parts = [f"FAILED: {len(self.errors)} errors in {len(self.results)} requests"]
        if self.not_attempted:
            parts.append(f"{len(self.not_attempted)} not attempted")
        return ', '.join(parts)

    def log_errors(self) -> None:
        """Log each failing request with its error."""
        for error in self.errors:
            logger.error(str(error))
        for result in self.not_attempted:
            logger.warning(f"Not attempted: {result.request.describe()}")

    def to_dict(self) -> dict:
        """Return report as dictionary for JSON output."""
        data: dict = {
            'success': self.success,
            'dry_run': self.dry_run,
            'total': len(self.results),
            'error_count': len(self.errors),
            'errors': [
                {
                    'request': result.request.to_dict(),
                    'context': error.context,
                    'error': str(error.error),
                }
                for result in self.failed
                for error in result.errors
            ],
        }
        if self.not_attempted:
            data['not_attempted'] = [r.request.to_dict() for r in self.not_attempted]
        if self.dry_run:
            data['captured'] = [
                dict(request.to_dict(), count=count)
                for request, count in self.captured.items()
            ]
        return data

    def write_json(self, path: Path) -> Path:
        """Write the JSON report to path."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Wrote report to {path}")
        return path

    def write_markdown(self, path: Path, title: str = 'Promotion') -> Path:
        """Write a markdown summary to path."""
        status = 'PASSED' if self.success else 'FAILED'
        lines = [
            f"# {title}",
            "",
            f"**Status**: {status}{' (dry-run)' if self.dry_run else ''}",
            f"**Date**: {self.finished_at.strftime('%Y-%m-%d %H:%M:%S') if self.finished_at else 'N/A'}",
            f"**Requests**: {len(self.results)}",
            "",
            "## Requests",
            "",
            "| Request | Status | Duration | Message |",
            "|---------|--------|----------|---------|",
        ]
        for result in self.results:
            if not result.attempted:
                state, message = '⏭️ skipped', 'not attempted'
            elif result.errors:
                state, message = '❌ failed', '; '.join(str(e.error) for e in result.errors)
            else:
                state, message = '✅ ok', ''
            lines.append(
                f"| {result.request.describe()} | {state} | {result.duration:.1f}s | {message} |"
            )

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines))
        return path

    def report_filename(self, report_dir: Path, name: str, ext: str) -> Path:
        """Timestamped report path: {timestamp}.{name}.{status}.{ext}"""
        timestamp = self.finished_at.strftime('%Y%m%d-%H%M%S') if self.finished_at else 'unknown'
        status = 'passed' if self.success else 'failed'
        slug = name.replace('/', '-')
        return report_dir / f"{timestamp}.{slug}.{status}.{ext}"
