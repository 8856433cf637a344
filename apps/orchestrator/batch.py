"""Sequential batch runs over the catalog."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .catalog import CourseCatalog
from .collaborators import Notifier
from .errors import CourseSelectionError
from .pipeline import Orchestrator, RunSelector
from .results import RunResult

LOGGER = logging.getLogger(__name__)

RUN_LOG_GLOB = "orchestrator-*.jsonl"


@dataclass(slots=True)
class BatchReport:
    requested: int
    planned: int
    results: List[RunResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    pruned_logs: int = 0

    @property
    def successful(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful + len(self.errors)

    @property
    def attempted(self) -> int:
        return len(self.results) + len(self.errors)

    @property
    def summary(self) -> str:
        if self.planned == 0:
            return "Batch skipped: no pending courses"
        scores = [result.quality_score for result in self.results if result.quality_score is not None]
        average = f", average quality {sum(scores) / len(scores):.1f}" if scores else ""
        return f"Batch complete: {self.successful}/{self.attempted} succeeded, {self.failed} failed{average}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "planned": self.planned,
            "successful": self.successful,
            "failed": self.failed,
            "summary": self.summary,
            "errors": list(self.errors),
            "courses": [
                {
                    "id": result.course_id,
                    "title": result.course.title if result.course else None,
                    "category": result.course.category if result.course else None,
                    "status": result.status.value if result.status else None,
                    "quality_score": result.quality_score,
                    "success": result.success,
                }
                for result in self.results
            ],
        }


class BatchController:
    """Runs the orchestrator N times, one after another, with a cooldown in between."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        catalog: CourseCatalog,
        *,
        cooldown_seconds: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
        notifier: Notifier | None = None,
        logs_dir: Path | None = None,
        keep_logs: int = 50,
        prune_logs_over: int = 100,
    ) -> None:
        self.orchestrator = orchestrator
        self.catalog = catalog
        self.cooldown_seconds = cooldown_seconds
        self.sleep = sleep
        self.notifier = notifier
        self.logs_dir = logs_dir
        self.keep_logs = keep_logs
        self.prune_logs_over = prune_logs_over

    def run(self, count: int, category: Optional[str] = None) -> BatchReport:
        pending = len(self.catalog.pending(category))
        planned = max(0, min(count, pending))
        report = BatchReport(requested=count, planned=planned)
        LOGGER.info(
            "Batch starting: %s of %s requested (%s pending)",
            planned,
            count,
            pending,
            extra={"category": category},
        )

        for index in range(planned):
            if index > 0 and self.cooldown_seconds > 0:
                self.sleep(self.cooldown_seconds)
            # Pin each run to the next pending id so failed entries are not picked again.
            entry = self.catalog.next_pending(category)
            selector = RunSelector(course_id=entry.id) if entry else RunSelector(category=category)
            try:
                result = self.orchestrator.run(selector)
            except CourseSelectionError as exc:
                LOGGER.warning("Batch stopped early: %s", exc)
                report.errors.append(str(exc))
                break
            except Exception as exc:  # pragma: no cover - defensive
                LOGGER.error("Batch run %s raised: %s", index + 1, exc)
                report.errors.append(f"{type(exc).__name__}: {exc}")
                continue
            report.results.append(result)
            LOGGER.info("Batch run %s/%s: %s", index + 1, planned, result.summary)

        self._notify(report)
        if self.logs_dir is not None:
            report.pruned_logs = prune_logs(self.logs_dir, keep=self.keep_logs, threshold=self.prune_logs_over)
        LOGGER.info(report.summary)
        return report

    def _notify(self, report: BatchReport) -> None:
        notify_batch = getattr(self.notifier, "notify_batch", None)
        if notify_batch is None or report.planned == 0:
            return
        try:
            notify_batch(report)
        except Exception as exc:
            LOGGER.warning("Batch notification failed: %s", exc)


def prune_logs(logs_dir: Path, *, keep: int = 50, threshold: int = 100, pattern: str = RUN_LOG_GLOB) -> int:
    """Once more than `threshold` run logs exist, delete all but the newest `keep`."""

    if not logs_dir.exists():
        return 0
    logs = sorted(logs_dir.glob(pattern))
    if len(logs) <= threshold:
        return 0
    removed = 0
    for path in logs[: len(logs) - keep]:
        try:
            path.unlink()
            removed += 1
        except OSError as exc:
            LOGGER.warning("Could not remove %s: %s", path, exc)
    return removed


__all__ = ["BatchController", "BatchReport", "prune_logs"]
