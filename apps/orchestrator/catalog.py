"""Course catalog: entries loaded from YAML plus a JSON status map.

The catalog object is passed into the orchestrator explicitly. Without a
``status_path`` it keeps statuses in memory only, which is what tests use.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coursemill.core.config import CatalogConfig, read_yaml_file

LOGGER = logging.getLogger(__name__)

DEFAULT_PRIORITY = 5
WORKSPACE_SUBDIRS = ("audio", "videos", "slides")
SLUG_MAX_CHARS = 50


class CourseStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs_review"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {CourseStatus.COMPLETED, CourseStatus.NEEDS_REVIEW, CourseStatus.FAILED}


class CatalogEntry(BaseModel):
    """One course to produce. `priority` sorts ascending; lower runs first."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    category: str = "General"
    subcategory: str = ""
    target_audience: str = "Working professionals"
    skill_level: str = "Beginner"
    duration: int = Field(default=60, ge=1, description="Target length in minutes.")
    objectives: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    priority: int = DEFAULT_PRIORITY
    status: CourseStatus = CourseStatus.PENDING

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("objectives", "prerequisites", "keywords", mode="before")
    @classmethod
    def split_lists(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, value: Any) -> Any:
        return DEFAULT_PRIORITY if value in (None, "", 0) else value

    @property
    def slug(self) -> str:
        slug = re.sub(r"[^a-z0-9]+", "-", self.title.lower()).strip("-")
        return slug[:SLUG_MAX_CHARS]


class CourseCatalog:
    """Catalog store: selection queries, status transitions, and workspaces."""

    def __init__(
        self,
        entries: Iterable[CatalogEntry | Dict[str, Any]],
        *,
        courses_dir: Path,
        status_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._entries: List[CatalogEntry] = [
            entry if isinstance(entry, CatalogEntry) else CatalogEntry.model_validate(entry) for entry in entries
        ]
        self.courses_dir = courses_dir
        self.status_path = status_path
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._status: Dict[str, Dict[str, Any]] = self._load_status()

    @classmethod
    def from_config(cls, config: CatalogConfig, *, clock: Callable[[], datetime] | None = None) -> "CourseCatalog":
        return cls(
            load_catalog_entries(config.entries_path),
            courses_dir=config.courses_dir,
            status_path=config.status_path,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Queries

    def entries(self) -> List[CatalogEntry]:
        """All entries in catalog order, with their current status applied."""

        return [self._with_status(entry) for entry in self._entries]

    def status_of(self, course_id: str) -> CourseStatus:
        record = self._status.get(course_id)
        if record is None:
            entry = next((item for item in self._entries if item.id == course_id), None)
            return entry.status if entry else CourseStatus.PENDING
        return CourseStatus(record["status"])

    def status_record(self, course_id: str) -> Dict[str, Any]:
        return dict(self._status.get(course_id, {}))

    def pending(self, category: str | None = None) -> List[CatalogEntry]:
        entries = [entry for entry in self.entries() if entry.status is CourseStatus.PENDING]
        if category:
            entries = [entry for entry in entries if entry.category == category]
        return sorted(entries, key=lambda entry: entry.priority)

    def next_pending(self, category: str | None = None) -> Optional[CatalogEntry]:
        pending = self.pending(category)
        return pending[0] if pending else None

    def by_id(self, course_id: str | int) -> Optional[CatalogEntry]:
        """Exact id match first; a positive integer selects the N-th entry (1-based)."""

        key = str(course_id).strip()
        entries = self.entries()
        for entry in entries:
            if entry.id == key:
                return entry
        if key.isdigit() and int(key) > 0:
            index = int(key) - 1
            return entries[index] if index < len(entries) else None
        return None

    def by_category(self, category: str) -> List[CatalogEntry]:
        return [entry for entry in self.entries() if entry.category == category]

    def categories(self) -> List[str]:
        return sorted({entry.category for entry in self._entries})

    def statistics(self) -> Dict[str, Any]:
        counts = {status.value: 0 for status in CourseStatus}
        for entry in self.entries():
            counts[entry.status.value] += 1
        total = len(self._entries)
        completion = (counts[CourseStatus.COMPLETED.value] / total * 100) if total else 0.0
        return {"total": total, **counts, "completion_rate": f"{completion:.1f}%"}

    # ------------------------------------------------------------------
    # Mutations

    def set_status(self, course_id: str, status: CourseStatus | str, **meta: Any) -> None:
        status = CourseStatus(status)
        record: Dict[str, Any] = {"status": status.value, "updated_at": self._clock().isoformat()}
        record.update(_jsonable(meta))
        self._status[course_id] = record
        self._save_status()
        LOGGER.info("Status: %s -> %s", course_id, status.value, extra={"course_id": course_id, "status": status.value})

    def create_workspace(self, entry: CatalogEntry) -> Path:
        workspace = self.courses_dir / f"{entry.id}-{entry.slug}"
        for name in WORKSPACE_SUBDIRS:
            (workspace / name).mkdir(parents=True, exist_ok=True)
        return workspace

    # ------------------------------------------------------------------

    def _with_status(self, entry: CatalogEntry) -> CatalogEntry:
        record = self._status.get(entry.id)
        if record is None:
            return entry
        return entry.model_copy(update={"status": CourseStatus(record["status"])})

    def _load_status(self) -> Dict[str, Dict[str, Any]]:
        if self.status_path is None or not self.status_path.exists():
            return {}
        try:
            data = json.loads(self.status_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Status file {self.status_path} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Status file {self.status_path} must contain a mapping")
        return {str(key): dict(value) for key, value in data.items() if isinstance(value, dict) and "status" in value}

    def _save_status(self) -> None:
        if self.status_path is None:
            return
        self.status_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.status_path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(self._status, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.status_path)


def _jsonable(meta: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(json.dumps(meta, default=str))


def load_catalog_entries(path: Path) -> List[CatalogEntry]:
    """Read `courses:` (or a bare list under `entries:`) from a catalog YAML file."""

    if not path.exists():
        raise FileNotFoundError(f"Catalog file {path} is missing")
    data = read_yaml_file(path)
    raw_entries = data.get("courses", data.get("entries"))
    if not isinstance(raw_entries, list):
        raise ValueError(f"Catalog file {path} must define a 'courses' list")
    try:
        entries = [CatalogEntry.model_validate(item) for item in raw_entries]
    except ValidationError as exc:
        raise ValueError(f"Invalid catalog entry in {path}") from exc
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            raise ValueError(f"Duplicate catalog id '{entry.id}' in {path}")
        seen.add(entry.id)
    return entries


__all__ = [
    "CatalogEntry",
    "CourseCatalog",
    "CourseStatus",
    "load_catalog_entries",
]
