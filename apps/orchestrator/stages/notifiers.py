"""Run and batch notifications."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

import httpx

from ..results import RunResult

if TYPE_CHECKING:  # pragma: no cover
    from ..batch import BatchReport

LOGGER = logging.getLogger(__name__)


def run_payload(result: RunResult) -> Dict[str, Any]:
    return {
        "event": "course_run",
        "run_id": result.run_id,
        "course_id": result.course_id,
        "title": result.course.title if result.course else None,
        "status": result.status.value if result.status else None,
        "success": result.success,
        "quality_score": result.quality_score,
        "summary": result.summary,
        "errors": list(result.errors),
    }


class LoggingNotifier:
    """Writes run and batch summaries to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def notify(self, result: RunResult) -> None:
        level = logging.INFO if result.success else logging.WARNING
        self.logger.log(level, "Course run %s: %s", result.run_id, result.summary, extra=run_payload(result))

    def notify_batch(self, report: "BatchReport") -> None:
        self.logger.info(report.summary, extra={"event": "course_batch", "planned": report.planned})


class WebhookNotifier:
    """POSTs JSON summaries to a webhook (Slack-compatible ``text`` field included)."""

    def __init__(self, url: str, *, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        self.url = url
        if client is None:
            self._client = httpx.Client(timeout=timeout)
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def notify(self, result: RunResult) -> None:
        payload = run_payload(result)
        payload["text"] = result.summary
        self._post(payload)

    def notify_batch(self, report: "BatchReport") -> None:
        payload = {"event": "course_batch", "text": report.summary, **report.as_dict()}
        self._post(payload)

    def _post(self, payload: Dict[str, Any]) -> None:
        response = self._client.post(self.url, json=payload)
        response.raise_for_status()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = ["LoggingNotifier", "WebhookNotifier", "run_payload"]
