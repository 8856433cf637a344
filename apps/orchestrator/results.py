"""Immutable per-stage and per-run records."""

from __future__ import annotations

import enum
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from coursemill.core.content import ContentArtifact

from .catalog import CatalogEntry, CourseStatus

STAGE_ORDER = ("select", "generate", "narrate", "slides", "render", "quiz", "cheatsheet", "gate", "persist")
RESULT_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


class StageStatus(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


def _plain(value: Any) -> Any:
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


class StageOutcome(BaseModel):
    """Tagged result of one stage: success, skipped (with a reason), or failed (with a warning)."""

    model_config = ConfigDict(frozen=True)

    stage: str
    status: StageStatus
    attempts: int = Field(default=1, ge=0)
    artifacts: Dict[str, Any] = Field(default_factory=dict)
    warning: Optional[str] = None
    detail: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is StageStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        return self.status is StageStatus.SKIPPED

    @property
    def failed(self) -> bool:
        return self.status is StageStatus.FAILED

    @classmethod
    def succeeded(cls, stage: str, *, attempts: int = 1, warning: str | None = None, **artifacts: Any) -> "StageOutcome":
        return cls(stage=stage, status=StageStatus.SUCCESS, attempts=attempts, warning=warning, artifacts=_plain(artifacts))

    @classmethod
    def skip(cls, stage: str, reason: str) -> "StageOutcome":
        return cls(stage=stage, status=StageStatus.SKIPPED, attempts=0, detail=reason)

    @classmethod
    def fail(cls, stage: str, warning: str, *, attempts: int = 1, detail: str | None = None, **artifacts: Any) -> "StageOutcome":
        return cls(
            stage=stage,
            status=StageStatus.FAILED,
            attempts=attempts,
            warning=warning,
            detail=detail,
            artifacts=_plain(artifacts),
        )


class RunResult(BaseModel):
    """Everything one pipeline run produced; written once, never rewritten."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    started_at: datetime
    finished_at: datetime
    course: Optional[CatalogEntry] = None
    workspace: Optional[str] = None
    content: Optional[ContentArtifact] = None
    stages: Dict[str, StageOutcome] = Field(default_factory=dict)
    quality: Optional[Dict[str, Any]] = None
    gates: Optional[Dict[str, Any]] = None
    quality_score: Optional[int] = None
    status: Optional[CourseStatus] = None
    success: bool = False
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    summary: str = ""

    @property
    def course_id(self) -> Optional[str]:
        return self.course.id if self.course else None

    def stage(self, name: str) -> Optional[StageOutcome]:
        return self.stages.get(name)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, by_alias=True)

    def write(self, logs_dir: Path) -> Path:
        """Write `result-<timestamp>.json`; existing records are never overwritten."""

        logs_dir.mkdir(parents=True, exist_ok=True)
        stem = f"result-{self.finished_at.strftime(RESULT_TIMESTAMP_FORMAT)}"
        payload = self.to_json()
        suffix = 0
        while True:
            path = logs_dir / (f"{stem}.json" if suffix == 0 else f"{stem}-{suffix}.json")
            try:
                with path.open("x", encoding="utf-8") as handle:
                    handle.write(payload)
                return path
            except FileExistsError:
                suffix += 1


__all__ = [
    "RESULT_TIMESTAMP_FORMAT",
    "STAGE_ORDER",
    "RunResult",
    "StageOutcome",
    "StageStatus",
]
