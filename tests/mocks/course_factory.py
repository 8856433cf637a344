"""Course payloads and stub collaborators shared by the orchestrator tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from apps.orchestrator.catalog import CatalogEntry, CourseCatalog
from apps.orchestrator.collaborators import (
    AudioFile,
    Collaborators,
    NarrationResult,
    RenderResult,
    RetryFeedback,
    VideoFile,
)
from apps.orchestrator.pipeline import Orchestrator
from apps.orchestrator.quality import DIMENSIONS, QualityEvaluation, QualityScorer
from coursemill.core.content import ContentArtifact
from coursemill.pipeline.context import PipelineContext

# 70 words, 7 "you", one grounding word, three example cues, one actionable verb.
PARAGRAPH = (
    "Research on planning shows that you get better results when you write down your priorities. "
    "For example, you can list three outcomes for the week and review them each morning. "
    "Tools such as a simple notebook or a calendar help you keep track. "
    "Imagine you open your calendar on Monday and every block already has a purpose. "
    "You then protect that time and you decline requests that do not fit."
)

SECTION_TITLES = (
    "Introduction to Weekly Planning",
    "Choosing Priorities",
    "Time Blocking",
    "Handling Interruptions",
    "Weekly Review",
    "Summary and Closing",
)
LECTURES_PER_SECTION = (2, 2, 1, 1, 1, 1)
LECTURE_MINUTES = (6, 6, 6, 6, 6, 5, 5, 5)
VISUAL_TYPES = ("title", "bullets", "diagram", "comparison")

DESCRIPTION = (
    "Weekly Planning for Busy Professionals teaches a repeatable routine for choosing priorities, "
    "protecting focused time, and reviewing progress every Friday. This course was created with AI "
    "assistance and reviewed by an editor before publication."
)


def _lecture(number: int) -> Dict[str, Any]:
    return {
        "title": f"Lecture {number}: Planning in practice",
        "duration": LECTURE_MINUTES[number - 1],
        "script": {
            "opening": "Welcome! Have you ever finished a week without knowing where the time went?",
            "mainContent": [
                {"heading": "Why plan", "content": PARAGRAPH},
                {"heading": "How to plan", "content": PARAGRAPH},
                {"heading": "Practice", "content": PARAGRAPH},
            ],
            "summary": "You now have a routine you can repeat every week.",
            "callToAction": "Try this on your next Monday morning.",
        },
        "slides": [
            {
                "title": f"Lecture {number} overview",
                "bullets": ["Pick three outcomes", "Block the time"],
                "speakerNotes": "Introduce the routine.",
                "visualType": VISUAL_TYPES[(2 * number) % 4],
            },
            {
                "title": "Key takeaways",
                "bullets": ["Review daily", "Protect focus"],
                "speakerNotes": "Recap the takeaways.",
                "visualType": VISUAL_TYPES[(2 * number + 1) % 4],
            },
        ],
    }


def _section_quiz(title: str) -> Dict[str, Any]:
    return {
        "title": f"{title} Quiz",
        "questions": [
            {
                "questionNumber": 1,
                "question": f"True or false: {title} helps you plan your week.",
                "type": "truefalse",
                "options": ["True", "False"],
                "correctAnswer": "True",
                "explanation": "The section shows how this step supports weekly planning.",
                "difficulty": "easy",
            }
        ],
    }


def _final_quiz(count: int = 12) -> Dict[str, Any]:
    difficulties = ("easy", "medium", "hard")
    return {
        "title": "Final Assessment",
        "questions": [
            {
                "questionNumber": index + 1,
                "question": f"Which planning step comes first in scenario {index + 1}?",
                "type": "mcq",
                "options": ["A) Pick outcomes", "B) Answer email", "C) Skip review", "D) None"],
                "correctAnswer": "A",
                "explanation": "Outcomes come first so the rest of the week has a purpose.",
                "difficulty": difficulties[index % 3],
            }
            for index in range(count)
        ],
    }


def course_payload(**overrides: Any) -> Dict[str, Any]:
    """Six sections, eight lectures, 45 minutes; every dimension scores 100."""

    sections: List[Dict[str, Any]] = []
    number = 1
    for title, lecture_count in zip(SECTION_TITLES, LECTURES_PER_SECTION):
        lectures = []
        for _ in range(lecture_count):
            lectures.append(_lecture(number))
            number += 1
        sections.append({"title": title, "lectures": lectures, "quiz": _section_quiz(title)})

    payload: Dict[str, Any] = {
        "metadata": {
            "title": "Weekly Planning for Busy Professionals",
            "description": DESCRIPTION,
            "objectives": [
                "Apply a weekly planning routine",
                "Identify your top priorities each week",
                "Create time blocks that protect focused work",
                "Evaluate your week with a short review",
            ],
            "targetAudience": ["Team leads", "Individual contributors"],
            "keywords": ["planning", "productivity"],
        },
        "sections": sections,
        "assessment": {
            "finalQuiz": _final_quiz(),
            "practicalAssignment": {
                "title": "Plan your next week",
                "requirements": ["Pick three outcomes", "Block time for each outcome"],
                "deliverables": ["A one-page weekly plan"],
            },
        },
        "cheatSheet": {
            "title": "Weekly Planning Quick Reference",
            "sections": [{"heading": "Routine", "items": ["Pick outcomes", "Block time", "Review Friday"]}],
        },
    }
    payload.update(overrides)
    return payload


def build_course(**overrides: Any) -> ContentArtifact:
    return ContentArtifact.model_validate(course_payload(**overrides))


def without_final_assessment() -> Dict[str, Any]:
    payload = course_payload()
    payload["assessment"] = {"practicalAssignment": payload["assessment"]["practicalAssignment"]}
    return payload


def catalog_entries(count: int = 3, *, category: str = "Productivity") -> List[CatalogEntry]:
    return [
        CatalogEntry(
            id=f"c{index}",
            title=f"Weekly Planning Volume {index}",
            category=category,
            priority=index,
        )
        for index in range(1, count + 1)
    ]


def make_catalog(tmp_path: Path, entries: Iterable[CatalogEntry] | None = None, *, persist: bool = False) -> CourseCatalog:
    return CourseCatalog(
        list(entries) if entries is not None else catalog_entries(),
        courses_dir=tmp_path / "courses",
        status_path=tmp_path / "status.json" if persist else None,
    )


# ----------------------------------------------------------------------
# Stub collaborators


class StubGenerator:
    """Returns queued payloads in order (the last one repeats); exceptions in the queue are raised."""

    def __init__(self, payloads: Sequence[Any] | None = None) -> None:
        self.payloads = list(payloads) if payloads else [course_payload()]
        self.feedback: List[Optional[RetryFeedback]] = []

    def generate(self, entry: CatalogEntry, *, feedback: RetryFeedback | None = None) -> ContentArtifact:
        self.feedback.append(feedback)
        index = min(len(self.feedback) - 1, len(self.payloads) - 1)
        item = self.payloads[index]
        if isinstance(item, Exception):
            raise item
        return ContentArtifact.coerce(copy.deepcopy(item))

    @property
    def calls(self) -> int:
        return len(self.feedback)


class SequenceScorer(QualityScorer):
    """Scores every dimension with the next value in `overalls`; the last value repeats."""

    def __init__(self, overalls: Sequence[int], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.overalls = list(overalls)
        self.calls = 0

    def evaluate(self, artifact: Any, production: Any = None) -> QualityEvaluation:
        value = self.overalls[min(self.calls, len(self.overalls) - 1)]
        self.calls += 1
        return self.from_scores({name: value for name in DIMENSIONS})


class StubNarrator:
    def __init__(self, *, fail_lectures: Sequence[int] = ()) -> None:
        self.fail_lectures = set(fail_lectures)

    def narrate(self, artifact: ContentArtifact, workspace: Path) -> NarrationResult:
        files = []
        total = artifact.lecture_count
        for index in range(1, total + 1):
            if index in self.fail_lectures:
                continue
            path = workspace / "audio" / f"lecture-{index:02d}.mp3"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"ID3")
            files.append(AudioFile(lecture_index=index, path=path, duration=5.0))
        return NarrationResult(audio_files=tuple(files), successful_count=len(files), total_count=total)


class StubRenderer:
    def __init__(self) -> None:
        self.received: List[AudioFile] = []

    def render(self, artifact: ContentArtifact, workspace: Path, audio_files: Sequence[AudioFile]) -> RenderResult:
        self.received = list(audio_files)
        videos = []
        for audio in audio_files:
            path = workspace / "videos" / f"lecture-{audio.lecture_index:02d}.mp4"
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"mp4")
            videos.append(VideoFile(lecture_index=audio.lecture_index, path=path))
        return RenderResult(video_files=tuple(videos), successful_count=len(videos), total_count=len(audio_files))


class RaisingCollaborator:
    """Raises from every call; stands in for any optional collaborator."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or RuntimeError("boom")

    def __getattr__(self, name: str):
        def _raise(*args: Any, **kwargs: Any) -> Any:
            raise self.exc

        return _raise


class RecordingNotifier:
    def __init__(self) -> None:
        self.results: List[Any] = []
        self.batches: List[Any] = []

    def notify(self, result: Any) -> None:
        self.results.append(result)

    def notify_batch(self, report: Any) -> None:
        self.batches.append(report)


def make_orchestrator(
    tmp_path: Path,
    *,
    generator: Any = None,
    catalog: CourseCatalog | None = None,
    scorer: QualityScorer | None = None,
    **collaborators: Any,
) -> Orchestrator:
    ctx = PipelineContext.for_directory(tmp_path)
    return Orchestrator(
        ctx,
        catalog or make_catalog(tmp_path),
        Collaborators(generator=generator or StubGenerator(), **collaborators),
        scorer=scorer,
    )
