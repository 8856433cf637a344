"""Seven-dimension quality scorer for generated courses.

Every dimension is an ordered tuple of named rubric checks. A check holds
tiers that are tried in order; the first matching tier awards its points and
records its label either as a passed check or as an issue. Point allotments
are fixed per check, so a dimension's score depends on proportions across the
course rather than on how many lectures it has.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from coursemill.core.config import QualityThresholds
from coursemill.core.content import ContentArtifact

LOGGER = logging.getLogger(__name__)

DIMENSIONS: Tuple[str, ...] = (
    "accuracy",
    "learning_objectives",
    "content_structure",
    "practical_application",
    "assessment_quality",
    "production_completeness",
    "engagement_clarity",
)

WEIGHTS: Dict[str, Decimal] = {
    "accuracy": Decimal("0.25"),
    "learning_objectives": Decimal("0.15"),
    "content_structure": Decimal("0.15"),
    "practical_application": Decimal("0.20"),
    "assessment_quality": Decimal("0.10"),
    "production_completeness": Decimal("0.10"),
    "engagement_clarity": Decimal("0.05"),
}

DEFAULT_LECTURE_MINUTES = 7

SPECULATIVE_PHRASES = ("might be", "probably", "i think", "maybe", "perhaps", "supposedly")
FILLER_PATTERN = re.compile(r"\b(?:um|uh|basically|literally|you know)\b")
GROUNDING_PATTERN = re.compile(r"research|study|according|data shows|evidence|proven|established")
ACTION_VERBS = (
    "understand",
    "apply",
    "analyze",
    "create",
    "evaluate",
    "identify",
    "implement",
    "develop",
    "design",
    "master",
    "learn",
    "build",
)
EXAMPLE_CUES = ("example", "for instance", "such as", "let's say", "imagine", "consider", "case study", "scenario")
ACTIONABLE_PATTERN = re.compile(r"try this|do this|start|implement|apply|action step")
HOOK_PATTERN = re.compile(r"\?|have you|did you|imagine|what if|today|welcome|let's")
YOU_PATTERN = re.compile(r"\byou\b")


def round_half_up(value: Decimal | float | int) -> int:
    """Round .5 away from zero, independent of float representation."""

    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ----------------------------------------------------------------------
# Production metadata


@dataclass(frozen=True, slots=True)
class ProductionMeta:
    """Media produced for a course; `exists` is injectable for tests."""

    audio_files: Tuple[Path, ...] = ()
    video_files: Tuple[Path, ...] = ()
    audio_requested: bool = False
    video_requested: bool = False
    exists: Callable[[Path], bool] = field(default=os.path.exists, compare=False, repr=False)

    @property
    def requested(self) -> bool:
        return self.audio_requested or self.video_requested or bool(self.audio_files or self.video_files)

    def audio_present(self) -> int:
        return sum(1 for path in self.audio_files if self.exists(path))

    def audio_ratio(self) -> float:
        if not self.audio_files:
            return 0.0
        return self.audio_present() / len(self.audio_files)


# ----------------------------------------------------------------------
# Course facts


@dataclass(frozen=True, slots=True)
class CourseFacts:
    """Counts the rubric predicates read; computed once per evaluation."""

    lecture_count: int
    section_count: int
    objective_count: int
    verb_objective_count: int
    has_disclosure: bool
    speculative_count: int
    filler_count: int
    grounded_lectures: int
    total_minutes: float
    has_intro_or_closing: bool
    example_count: int
    actionable_count: int
    assignment_requirements: int
    assignment_deliverables: int
    has_assignment: bool
    sections_with_quiz: int
    final_question_count: int
    final_explanations_ok: bool
    final_difficulty_count: int
    question_count: int
    question_type_count: int
    lectures_with_slides: int
    has_speaker_notes: bool
    has_cheat_sheet: bool
    audio_declared: int
    audio_present: int
    hook_count: int
    you_count: int
    visual_type_count: int

    @property
    def quiz_coverage(self) -> float:
        return self.sections_with_quiz / self.section_count if self.section_count else 0.0

    @property
    def average_lectures(self) -> float:
        return self.lecture_count / self.section_count if self.section_count else 0.0

    @property
    def average_you(self) -> float:
        return self.you_count / self.lecture_count if self.lecture_count else 0.0

    @property
    def total_minutes_label(self) -> str:
        return f"{self.total_minutes:g}"

    @classmethod
    def collect(cls, artifact: ContentArtifact, production: ProductionMeta) -> "CourseFacts":
        lectures = list(artifact.lectures())
        texts = [lecture.script.text().lower() for lecture in lectures]
        objectives = [objective.strip().lower() for objective in artifact.metadata.objectives]
        titles = [section.title.lower() for section in artifact.sections]
        final_questions = artifact.final_assessment.questions if artifact.final_assessment else []
        questions = artifact.all_questions()
        assignment = artifact.practical_assignment

        return cls(
            lecture_count=len(lectures),
            section_count=len(artifact.sections),
            objective_count=len(objectives),
            verb_objective_count=sum(1 for objective in objectives if objective.startswith(ACTION_VERBS)),
            has_disclosure=artifact.metadata.has_ai_disclosure,
            speculative_count=sum(1 for text in texts for phrase in SPECULATIVE_PHRASES if phrase in text),
            filler_count=sum(len(FILLER_PATTERN.findall(text)) for text in texts),
            grounded_lectures=sum(1 for text in texts if GROUNDING_PATTERN.search(text)),
            total_minutes=sum(
                lecture.duration if lecture.duration else DEFAULT_LECTURE_MINUTES for lecture in lectures
            ),
            has_intro_or_closing=bool(titles)
            and (
                any(word in titles[0] for word in ("intro", "foundation"))
                or any(word in titles[-1] for word in ("clos", "summar"))
            ),
            example_count=sum(1 for text in texts for cue in EXAMPLE_CUES if cue in text),
            actionable_count=sum(1 for lecture in lectures if lecture.script.call_to_action)
            + sum(1 for text in texts if ACTIONABLE_PATTERN.search(text)),
            assignment_requirements=len(assignment.requirements) if assignment else 0,
            assignment_deliverables=len(assignment.deliverables) if assignment else 0,
            has_assignment=assignment is not None,
            sections_with_quiz=sum(1 for section in artifact.sections if section.quiz and section.quiz.questions),
            final_question_count=len(final_questions),
            final_explanations_ok=all(len(question.explanation) >= 10 for question in final_questions),
            final_difficulty_count=len({question.difficulty for question in final_questions}),
            question_count=len(questions),
            question_type_count=len({question.type for question in questions}),
            lectures_with_slides=sum(1 for lecture in lectures if len(lecture.slides) >= 2),
            has_speaker_notes=any(slide.speaker_notes for lecture in lectures for slide in lecture.slides),
            has_cheat_sheet=bool(artifact.cheat_sheet and artifact.cheat_sheet.sections),
            audio_declared=len(production.audio_files),
            audio_present=production.audio_present(),
            hook_count=sum(1 for lecture in lectures if HOOK_PATTERN.search(lecture.script.opening.lower())),
            you_count=sum(len(YOU_PATTERN.findall(text)) for text in texts),
            visual_type_count=len({slide.visual_type or "bullets" for lecture in lectures for slide in lecture.slides}),
        )


# ----------------------------------------------------------------------
# Rubric structure

Predicate = Callable[[CourseFacts], bool]


def _always(_: CourseFacts) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class Tier:
    """One outcome of a check: points awarded and the label recorded."""

    predicate: Predicate
    points: int
    label: str
    passed: bool = True

    def describe(self, facts: CourseFacts) -> str:
        return self.label.format(f=facts)


@dataclass(frozen=True, slots=True)
class RubricCheck:
    name: str
    max_points: int
    tiers: Tuple[Tier, ...]
    applies: Optional[Predicate] = None

    def grade(self, facts: CourseFacts) -> Optional[Tuple[int, Tier]]:
        """Return (points, tier) for the first matching tier, or None when not applicable."""

        if self.applies is not None and not self.applies(facts):
            return None
        for tier in self.tiers:
            if tier.predicate(facts):
                return tier.points, tier
        return 0, Tier(_always, 0, f"{self.name} not satisfied", passed=False)


def check(
    name: str,
    points: int,
    predicate: Predicate,
    pass_label: str,
    fail_label: str,
    *,
    fail_points: int = 0,
    applies: Optional[Predicate] = None,
) -> RubricCheck:
    """Two-outcome check: full points on `predicate`, `fail_points` otherwise."""

    return RubricCheck(
        name=name,
        max_points=points,
        tiers=(Tier(predicate, points, pass_label), Tier(_always, fail_points, fail_label, passed=False)),
        applies=applies,
    )


def tiered(name: str, max_points: int, *tiers: Tier, applies: Optional[Predicate] = None) -> RubricCheck:
    return RubricCheck(name=name, max_points=max_points, tiers=tuple(tiers), applies=applies)


RUBRIC: Dict[str, Tuple[RubricCheck, ...]] = {
    "accuracy": (
        tiered(
            "speculative_language",
            30,
            Tier(lambda f: f.speculative_count == 0, 30, "No speculative language"),
            Tier(lambda f: f.speculative_count <= 3, 22, "{f.speculative_count} speculative phrases found", passed=False),
            Tier(_always, 10, "Too much speculative language", passed=False),
        ),
        check("ai_disclosure", 20, lambda f: f.has_disclosure, "AI disclosure present", "Missing AI disclosure in description"),
        tiered(
            "filler_words",
            25,
            Tier(lambda f: f.filler_count == 0, 25, "No filler words"),
            Tier(lambda f: f.filler_count <= 5, 18, "{f.filler_count} filler words", passed=False),
            Tier(_always, 8, "Too many filler words ({f.filler_count})", passed=False),
        ),
        tiered(
            "factual_grounding",
            25,
            Tier(lambda f: f.lecture_count > 0 and f.grounded_lectures >= f.lecture_count * 0.5, 25, "Good factual grounding"),
            Tier(lambda f: f.grounded_lectures >= 2, 18, "Add more factual references", passed=False),
            Tier(_always, 8, "Needs factual grounding", passed=False),
        ),
    ),
    "learning_objectives": (
        tiered(
            "objective_count",
            30,
            Tier(lambda f: f.objective_count >= 4, 30, "{f.objective_count} objectives defined"),
            Tier(lambda f: f.objective_count >= 3, 22, "Only {f.objective_count} objectives", passed=False),
            Tier(_always, 8, "Need 4+ objectives", passed=False),
        ),
        check(
            "action_verbs",
            30,
            lambda f: f.objective_count > 0 and f.verb_objective_count >= f.objective_count * 0.8,
            "Objectives use action verbs",
            "Use action verbs in objectives",
            fail_points=15,
        ),
        tiered(
            "objective_coverage",
            40,
            Tier(lambda f: f.section_count >= f.objective_count and f.section_count >= 5, 40, "Content covers objectives"),
            Tier(lambda f: f.section_count >= 3, 25, "Some objectives may lack coverage", passed=False),
            Tier(_always, 10, "Insufficient content for objectives", passed=False),
        ),
    ),
    "content_structure": (
        tiered(
            "section_count",
            25,
            Tier(lambda f: 5 <= f.section_count <= 15, 25, "{f.section_count} sections"),
            Tier(lambda f: f.section_count >= 3, 15, "{f.section_count} sections (need 5-15)", passed=False),
            Tier(_always, 5, "Too few sections", passed=False),
        ),
        check(
            "lecture_distribution",
            25,
            lambda f: 1 <= f.average_lectures <= 8,
            "Good lecture distribution",
            "Uneven lecture distribution",
            fail_points=12,
        ),
        check(
            "total_duration",
            25,
            lambda f: 30 <= f.total_minutes <= 90,
            "{f.total_minutes_label}min total",
            "Duration {f.total_minutes_label}min (need 30-90)",
            fail_points=12,
        ),
        check(
            "logical_flow",
            25,
            lambda f: f.has_intro_or_closing or f.section_count >= 5,
            "Logical flow",
            "Improve intro/conclusion",
            fail_points=15,
        ),
    ),
    "practical_application": (
        tiered(
            "examples",
            35,
            Tier(lambda f: f.lecture_count > 0 and f.example_count >= f.lecture_count * 2, 35, "{f.example_count} examples"),
            Tier(lambda f: f.lecture_count > 0 and f.example_count >= f.lecture_count, 22, "Add more examples", passed=False),
            Tier(_always, 8, "Needs more examples", passed=False),
        ),
        check(
            "actionable_takeaways",
            30,
            lambda f: f.lecture_count > 0 and f.actionable_count >= f.lecture_count,
            "Actionable content",
            "Add action steps",
            fail_points=15,
        ),
        tiered(
            "practical_assignment",
            35,
            Tier(lambda f: f.assignment_requirements >= 2 and f.assignment_deliverables >= 1, 35, "Good assignment"),
            Tier(lambda f: f.has_assignment, 20, "Strengthen assignment", passed=False),
            Tier(_always, 8, "Missing assignment", passed=False),
        ),
    ),
    "assessment_quality": (
        tiered(
            "section_quizzes",
            35,
            Tier(lambda f: f.quiz_coverage >= 0.7, 35, "Good quiz coverage"),
            Tier(lambda f: f.quiz_coverage >= 0.4, 20, "Add more section quizzes", passed=False),
            Tier(_always, 8, "Missing section quizzes", passed=False),
        ),
        tiered(
            "final_quiz",
            35,
            Tier(
                lambda f: f.final_question_count >= 10 and f.final_explanations_ok and f.final_difficulty_count >= 2,
                35,
                "High quality final quiz",
            ),
            Tier(lambda f: f.final_question_count >= 10, 22, "Improve quiz explanations/difficulty", passed=False),
            Tier(lambda f: f.final_question_count >= 5, 18, "Need 10+ final quiz questions", passed=False),
            Tier(_always, 5, "Missing or insufficient final quiz", passed=False),
        ),
        tiered(
            "question_variety",
            30,
            Tier(lambda f: f.question_type_count >= 2, 30, "Good question variety"),
            Tier(lambda f: f.question_count > 0, 18, "Add question type variety", passed=False),
            Tier(_always, 5, "No questions found", passed=False),
        ),
    ),
    "production_completeness": (
        check("lectures_present", 70, lambda f: f.lecture_count > 0, "Lectures present", "No lectures to produce"),
        check(
            "slides",
            15,
            lambda f: f.lecture_count > 0 and f.lectures_with_slides == f.lecture_count,
            "All lectures have slides",
            "Some lectures lack slides",
        ),
        check("speaker_notes", 10, lambda f: f.has_speaker_notes, "Speaker notes present", "Add speaker notes"),
        check("cheat_sheet", 5, lambda f: f.has_cheat_sheet, "Cheat sheet present", "Missing cheat sheet"),
        check(
            "audio_files",
            10,
            lambda f: f.audio_present >= f.audio_declared * 0.5,
            "{f.audio_present}/{f.audio_declared} audio files on disk",
            "Only {f.audio_present}/{f.audio_declared} audio files on disk",
            applies=lambda f: f.audio_declared > 0,
        ),
    ),
    "engagement_clarity": (
        check(
            "hooks",
            40,
            lambda f: f.lecture_count > 0 and f.hook_count >= f.lecture_count * 0.7,
            "Strong hooks",
            "Improve lecture hooks",
            fail_points=20,
        ),
        tiered(
            "conversational_tone",
            30,
            Tier(lambda f: f.average_you >= 8, 30, "Conversational tone"),
            Tier(lambda f: f.average_you >= 4, 20, 'Use more "you" language', passed=False),
            Tier(_always, 10, "Needs conversational tone", passed=False),
        ),
        tiered(
            "slide_variety",
            30,
            Tier(lambda f: f.visual_type_count >= 4, 30, "Good visual variety"),
            Tier(lambda f: f.visual_type_count >= 2, 20, "Add slide variety", passed=False),
            Tier(_always, 10, "Slides lack variety", passed=False),
        ),
    ),
}


# ----------------------------------------------------------------------
# Results


@dataclass(frozen=True, slots=True)
class DimensionScore:
    name: str
    score: int
    weight: Decimal
    passed: Tuple[str, ...] = ()
    issues: Tuple[str, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "score": self.score,
            "weight": float(self.weight),
            "passed": list(self.passed),
            "issues": list(self.issues),
        }


@dataclass(frozen=True, slots=True)
class QualityEvaluation:
    dimensions: Mapping[str, DimensionScore]
    overall: int
    passing: bool
    failing_dimensions: Tuple[str, ...]
    thresholds: QualityThresholds

    @property
    def summary(self) -> str:
        if self.passing:
            return f"PASSED ({self.overall}/100)"
        if self.failing_dimensions:
            return (
                f"FAILED ({self.overall}/100): {len(self.failing_dimensions)} dimension(s) below {self.thresholds.minimum}"
            )
        return f"FAILED ({self.overall}/100): overall below {self.thresholds.minimum}"

    @property
    def meets_target(self) -> bool:
        return self.overall >= self.thresholds.target

    @property
    def meets_acceptable(self) -> bool:
        return self.overall >= self.thresholds.acceptable

    @property
    def meets_minimum(self) -> bool:
        return self.overall >= self.thresholds.minimum

    def score(self, name: str) -> int:
        return self.dimensions[name].score

    def issues(self) -> List[str]:
        return [issue for dimension in self.dimensions.values() for issue in dimension.issues]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "passing": self.passing,
            "summary": self.summary,
            "failing_dimensions": list(self.failing_dimensions),
            "thresholds": self.thresholds.model_dump(),
            "dimensions": {name: dimension.as_dict() for name, dimension in self.dimensions.items()},
        }


# ----------------------------------------------------------------------
# Scoring


def aggregate(scores: Mapping[str, int | DimensionScore], weights: Mapping[str, Decimal] = WEIGHTS) -> int:
    """Weighted overall score; dimensions missing from `scores` count as zero."""

    total = Decimal(0)
    for name, weight in weights.items():
        value = scores.get(name, 0)
        if isinstance(value, DimensionScore):
            value = value.score
        total += Decimal(int(value)) * weight
    return round_half_up(total)


def score_dimension(name: str, facts: CourseFacts, checks: Sequence[RubricCheck]) -> DimensionScore:
    earned = 0
    available = 0
    passed: List[str] = []
    issues: List[str] = []
    for rubric_check in checks:
        graded = rubric_check.grade(facts)
        if graded is None:
            continue
        points, tier = graded
        earned += points
        available += rubric_check.max_points
        (passed if tier.passed else issues).append(tier.describe(facts))
    score = round_half_up(Decimal(100 * earned) / Decimal(available)) if available else 0
    return DimensionScore(name=name, score=min(score, 100), weight=WEIGHTS[name], passed=tuple(passed), issues=tuple(issues))


class QualityScorer:
    """Stateless scorer; thresholds only decide `passing`, never the scores."""

    def __init__(
        self,
        thresholds: QualityThresholds | None = None,
        rubric: Mapping[str, Sequence[RubricCheck]] | None = None,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.rubric = dict(rubric or RUBRIC)

    def evaluate(
        self,
        artifact: ContentArtifact | Mapping[str, Any] | None,
        production: ProductionMeta | None = None,
    ) -> QualityEvaluation:
        content = ContentArtifact.coerce(artifact)
        facts = CourseFacts.collect(content, production or ProductionMeta())
        dimensions = {name: score_dimension(name, facts, self.rubric[name]) for name in DIMENSIONS}
        evaluation = self.from_dimensions(dimensions)
        LOGGER.debug(
            "Quality evaluated",
            extra={"overall": evaluation.overall, "failing": list(evaluation.failing_dimensions)},
        )
        return evaluation

    def from_dimensions(self, dimensions: Mapping[str, DimensionScore]) -> QualityEvaluation:
        minimum = self.thresholds.minimum
        overall = aggregate(dimensions)
        failing = tuple(name for name, dimension in dimensions.items() if dimension.score < minimum)
        return QualityEvaluation(
            dimensions=dict(dimensions),
            overall=overall,
            passing=overall >= minimum and not failing,
            failing_dimensions=failing,
            thresholds=self.thresholds,
        )

    def from_scores(self, scores: Mapping[str, int]) -> QualityEvaluation:
        """Build an evaluation from raw dimension scores (no rubric detail)."""

        dimensions = {
            name: DimensionScore(name=name, score=int(scores.get(name, 0)), weight=WEIGHTS[name]) for name in DIMENSIONS
        }
        return self.from_dimensions(dimensions)


def evaluate(
    artifact: ContentArtifact | Mapping[str, Any] | None,
    production: ProductionMeta | None = None,
    *,
    thresholds: QualityThresholds | None = None,
) -> QualityEvaluation:
    return QualityScorer(thresholds).evaluate(artifact, production)


def format_quality_report(evaluation: QualityEvaluation, *, width: int = 70) -> str:
    """Plain-text report listing every dimension with its passed checks and issues."""

    lines = ["=" * width, "QUALITY REPORT", "=" * width, f"Overall: {evaluation.overall}/100 ({evaluation.summary})", "-" * width]
    for name, dimension in evaluation.dimensions.items():
        lines.append(f"{name} ({int(dimension.weight * 100)}%): {dimension.score}/100")
        lines.extend(f"  + {item}" for item in dimension.passed)
        lines.extend(f"  - {item}" for item in dimension.issues)
    lines.append("=" * width)
    return "\n".join(lines)


def improvement_hints(evaluation: QualityEvaluation, *, limit: int = 3) -> Dict[str, List[str]]:
    """Issues for each dimension below target, weakest dimension first."""

    target = evaluation.thresholds.target
    weak = sorted(
        (dimension for dimension in evaluation.dimensions.values() if dimension.score < target),
        key=lambda dimension: (dimension.score, dimension.name),
    )
    return {dimension.name: list(dimension.issues[:limit]) for dimension in weak if dimension.issues}


__all__ = [
    "DIMENSIONS",
    "RUBRIC",
    "WEIGHTS",
    "CourseFacts",
    "DimensionScore",
    "ProductionMeta",
    "QualityEvaluation",
    "QualityScorer",
    "RubricCheck",
    "Tier",
    "aggregate",
    "check",
    "evaluate",
    "format_quality_report",
    "improvement_hints",
    "round_half_up",
    "tiered",
]
