"""Contracts for everything the orchestrator calls out to.

Each stage talks to exactly one collaborator. Collaborators either return the
result types below or raise; the orchestrator turns raised errors into stage
outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from coursemill.core.content import ContentArtifact, CourseMetadata, Quiz

from .catalog import CatalogEntry, CourseStatus


@dataclass(frozen=True, slots=True)
class RetryFeedback:
    """What the previous generation attempt got wrong, for the next attempt's prompt."""

    attempt: int
    overall: Optional[int] = None
    failing_dimensions: Tuple[str, ...] = ()
    hints: Dict[str, List[str]] = field(default_factory=dict)
    structural_issues: Tuple[str, ...] = ()
    error: Optional[str] = None

    def as_prompt(self) -> str:
        lines = [f"Attempt {self.attempt} was rejected."]
        if self.error:
            lines.append(f"It failed with: {self.error}")
        if self.overall is not None:
            lines.append(f"It scored {self.overall}/100.")
        lines.extend(f"Structure: {issue}" for issue in self.structural_issues)
        for dimension, issues in self.hints.items():
            lines.extend(f"Improve {dimension}: {issue}" for issue in issues)
        if self.failing_dimensions:
            lines.append("Dimensions below the minimum: " + ", ".join(self.failing_dimensions))
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class AudioFile:
    lecture_index: int
    path: Path
    duration: float = 0.0


@dataclass(frozen=True, slots=True)
class NarrationResult:
    audio_files: Tuple[AudioFile, ...] = ()
    successful_count: int = 0
    total_count: int = 0

    @property
    def partial(self) -> bool:
        return 0 < self.successful_count < self.total_count


@dataclass(frozen=True, slots=True)
class SlideDeckResult:
    slide_count: int
    path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class VideoFile:
    lecture_index: int
    path: Path


@dataclass(frozen=True, slots=True)
class RenderResult:
    video_files: Tuple[VideoFile, ...] = ()
    successful_count: int = 0
    total_count: int = 0

    @property
    def partial(self) -> bool:
        return 0 < self.successful_count < self.total_count


@runtime_checkable
class CatalogStore(Protocol):
    def next_pending(self, category: str | None = None) -> Optional[CatalogEntry]: ...

    def by_id(self, course_id: str) -> Optional[CatalogEntry]: ...

    def by_category(self, category: str) -> List[CatalogEntry]: ...

    def set_status(self, course_id: str, status: CourseStatus | str, **meta: Any) -> None: ...

    def create_workspace(self, entry: CatalogEntry) -> Path: ...


class ContentGenerator(Protocol):
    def generate(self, entry: CatalogEntry, *, feedback: RetryFeedback | None = None) -> ContentArtifact: ...


class Narrator(Protocol):
    def narrate(self, artifact: ContentArtifact, workspace: Path) -> NarrationResult: ...


class SlideMaker(Protocol):
    def present(self, artifact: ContentArtifact, workspace: Path) -> SlideDeckResult: ...

    def thumbnail(self, metadata: CourseMetadata, workspace: Path) -> Path: ...


class Renderer(Protocol):
    def render(self, artifact: ContentArtifact, workspace: Path, audio_files: Sequence[AudioFile]) -> RenderResult: ...


class QuizAuthor(Protocol):
    def final_assessment(self, artifact: ContentArtifact, count: int) -> Quiz: ...


class CheatSheetBuilder(Protocol):
    def build(self, artifact: ContentArtifact, workspace: Path) -> Path: ...


class Notifier(Protocol):
    def notify(self, result: Any) -> None: ...


@dataclass(slots=True)
class Collaborators:
    """The stage collaborators handed to one orchestrator.

    Only the generator is required; a missing optional collaborator turns its
    stage into ``skipped``.
    """

    generator: ContentGenerator
    narrator: Optional[Narrator] = None
    slides: Optional[SlideMaker] = None
    renderer: Optional[Renderer] = None
    quiz: Optional[QuizAuthor] = None
    cheatsheet: Optional[CheatSheetBuilder] = None
    notifier: Optional[Notifier] = None

    def close(self) -> None:
        """Release resources (HTTP clients) held by collaborators that own them."""
        seen: set[int] = set()
        for name in ("generator", "narrator", "slides", "renderer", "quiz", "cheatsheet", "notifier"):
            member = getattr(self, name)
            closer = getattr(member, "close", None)
            if member is None or id(member) in seen or not callable(closer):
                continue
            seen.add(id(member))
            closer()


__all__ = [
    "AudioFile",
    "CatalogStore",
    "CheatSheetBuilder",
    "Collaborators",
    "ContentGenerator",
    "NarrationResult",
    "Narrator",
    "Notifier",
    "QuizAuthor",
    "Renderer",
    "RenderResult",
    "RetryFeedback",
    "SlideDeckResult",
    "SlideMaker",
    "VideoFile",
]
