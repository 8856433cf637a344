"""Four ordered quality gates run before a course is declared complete.

Gates run strictly in order and the chain stops at the first failure. Gate 3
has a third outcome, ``skipped``, used when no media was requested. Results
carry no timestamps, so evaluating the same course twice produces identical
output.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from coursemill.core.config import GateConfig, QualityThresholds
from coursemill.core.content import ContentArtifact, structural_issues

from .quality import ProductionMeta, QualityScorer

LOGGER = logging.getLogger(__name__)

TITLE_MIN_CHARS = 10
TITLE_MAX_CHARS = 80
DESCRIPTION_MIN_CHARS = 200
MIN_OBJECTIVES = 3


class GateStatus(str, enum.Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class GateCheck:
    name: str
    value: str


@dataclass(frozen=True, slots=True)
class GateFailure:
    name: str
    issue: str
    value: str = ""


@dataclass(frozen=True, slots=True)
class GateResult:
    number: int
    name: str
    status: GateStatus
    checks: Tuple[GateCheck, ...] = ()
    failures: Tuple[GateFailure, ...] = ()
    overall: Optional[int] = None

    @property
    def passed(self) -> bool:
        return self.status is GateStatus.PASSED

    @property
    def skipped(self) -> bool:
        return self.status is GateStatus.SKIPPED

    def failure_names(self) -> List[str]:
        return [failure.name for failure in self.failures]

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "gate": self.number,
            "name": self.name,
            "status": self.status.value,
            "checks": [{"name": item.name, "value": item.value} for item in self.checks],
            "failures": [{"name": item.name, "issue": item.issue, "value": item.value} for item in self.failures],
        }
        if self.overall is not None:
            payload["overall"] = self.overall
        return payload


@dataclass(frozen=True, slots=True)
class ChainResult:
    passed: bool
    gates: Tuple[GateResult, ...] = ()
    failed_at_gate: Optional[int] = None
    overall: Optional[int] = None

    def gate(self, number: int) -> Optional[GateResult]:
        """Return the result for gate `number`, or None when it never ran."""

        for result in self.gates:
            if result.number == number:
                return result
        return None

    def failures(self) -> List[str]:
        return [
            f"Gate {result.number} ({result.name}): {failure.name}: {failure.issue}"
            for result in self.gates
            for failure in result.failures
        ]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "failed_at_gate": self.failed_at_gate,
            "overall": self.overall,
            "gates": [result.as_dict() for result in self.gates],
        }

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), indent=2, sort_keys=True)


@dataclass(slots=True)
class _GateBuilder:
    """Collects checks for one gate; every check runs regardless of earlier failures."""

    number: int
    name: str
    checks: List[GateCheck] = field(default_factory=list)
    failures: List[GateFailure] = field(default_factory=list)

    def check(self, condition: bool, name: str, value: Any, issue: str) -> None:
        if condition:
            self.checks.append(GateCheck(name, str(value)))
        else:
            self.failures.append(GateFailure(name, issue, str(value)))

    def build(self, *, overall: Optional[int] = None) -> GateResult:
        status = GateStatus.FAILED if self.failures else GateStatus.PASSED
        return GateResult(
            number=self.number,
            name=self.name,
            status=status,
            checks=tuple(self.checks),
            failures=tuple(self.failures),
            overall=overall,
        )


class GateChain:
    """Curriculum, lectures, production, final assembly; stops at the first failure."""

    def __init__(
        self,
        thresholds: QualityThresholds | None = None,
        config: GateConfig | None = None,
        *,
        scorer: QualityScorer | None = None,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.config = config or GateConfig()
        self.scorer = scorer or QualityScorer(self.thresholds)

    def run(self, artifact: ContentArtifact | Dict[str, Any] | None, production: ProductionMeta | None = None) -> ChainResult:
        content = ContentArtifact.coerce(artifact)
        production = production or ProductionMeta()
        steps: Tuple[Callable[[], GateResult], ...] = (
            lambda: self.curriculum(content),
            lambda: self.lectures(content),
            lambda: self.production(production),
            lambda: self.final_assembly(content, production),
        )

        results: List[GateResult] = []
        for step in steps:
            result = step()
            results.append(result)
            LOGGER.info(
                "Gate %s (%s): %s",
                result.number,
                result.name,
                result.status.value.upper(),
                extra={"gate": result.number, "failures": result.failure_names()},
            )
            if result.status is GateStatus.FAILED:
                return ChainResult(passed=False, gates=tuple(results), failed_at_gate=result.number)
        return ChainResult(passed=True, gates=tuple(results), overall=results[-1].overall)

    # ------------------------------------------------------------------

    def curriculum(self, content: ContentArtifact) -> GateResult:
        gate = _GateBuilder(1, "Curriculum")
        meta = content.metadata
        title_length = len(meta.title)
        description_length = len(meta.description)
        objective_count = len(meta.objectives)
        section_count = len(content.sections)
        lecture_count = content.lecture_count
        structure = structural_issues(content)

        gate.check(
            TITLE_MIN_CHARS <= title_length <= TITLE_MAX_CHARS,
            "title",
            f"{title_length} chars",
            f"Title must be {TITLE_MIN_CHARS}-{TITLE_MAX_CHARS} chars",
        )
        gate.check(
            description_length >= DESCRIPTION_MIN_CHARS,
            "description",
            f"{description_length} chars",
            f"Description needs {DESCRIPTION_MIN_CHARS}+ chars",
        )
        gate.check(objective_count >= MIN_OBJECTIVES, "objectives", objective_count, f"Need {MIN_OBJECTIVES}+ objectives")
        section_issue = next((issue for issue in structure if "sections" in issue), None)
        lecture_issue = next((issue for issue in structure if "lectures" in issue), None)
        gate.check(section_issue is None, "sections", section_count, section_issue or "")
        gate.check(lecture_issue is None, "lectures", lecture_count, lecture_issue or "")
        return gate.build()

    def lectures(self, content: ContentArtifact) -> GateResult:
        gate = _GateBuilder(2, "Lectures")
        cfg = self.config
        lectures = list(content.lectures())
        total = len(lectures)
        defective = sum(
            1 for lecture in lectures if lecture.word_count() < cfg.min_lecture_words or len(lecture.slides) < cfg.min_lecture_slides
        )
        declared_minutes = sum(lecture.duration or 0 for lecture in lectures)

        if total == 0:
            gate.check(False, "lecture_depth", "0/0", "No lectures to evaluate")
        else:
            gate.check(
                defective / total <= cfg.max_defective_lecture_ratio,
                "lecture_depth",
                f"{total - defective}/{total} OK",
                f"{defective}/{total} lectures under {cfg.min_lecture_words} words or {cfg.min_lecture_slides} slides",
            )
        gate.check(
            cfg.min_course_minutes <= declared_minutes <= cfg.max_course_minutes,
            "duration",
            f"{declared_minutes:g}min",
            f"Total duration must be {cfg.min_course_minutes:g}-{cfg.max_course_minutes:g} minutes",
        )
        return gate.build()

    def production(self, production: ProductionMeta) -> GateResult:
        if not production.requested:
            return GateResult(number=3, name="Production", status=GateStatus.SKIPPED)

        gate = _GateBuilder(3, "Production")
        declared = len(production.audio_files)
        present = production.audio_present()
        ratio = self.config.min_audio_present_ratio
        gate.check(
            declared == 0 or present >= declared * ratio,
            "audio_files",
            f"{present}/{declared}",
            f"Fewer than {ratio:.0%} of declared audio files exist",
        )
        if production.video_files:
            gate.check(True, "video_files", len(production.video_files), "")
        return gate.build()

    def final_assembly(self, content: ContentArtifact, production: ProductionMeta) -> GateResult:
        gate = _GateBuilder(4, "Final Assembly")
        evaluation = self.scorer.evaluate(content, production)
        minimum = evaluation.thresholds.minimum

        for name, dimension in evaluation.dimensions.items():
            gate.check(
                dimension.score >= minimum,
                name,
                f"{dimension.score}/100",
                "; ".join(dimension.issues) or f"Below {minimum}",
            )
        if not evaluation.passing and not evaluation.failing_dimensions:
            gate.check(False, "overall", f"{evaluation.overall}/100", f"Overall below {minimum}")
        gate.check(
            content.metadata.has_ai_disclosure,
            "ai_disclosure_compliance",
            "present" if content.metadata.has_ai_disclosure else "missing",
            "AI disclosure required in the course description",
        )
        return gate.build(overall=evaluation.overall)


def run_gates(
    artifact: ContentArtifact | Dict[str, Any] | None,
    production: ProductionMeta | None = None,
    *,
    thresholds: QualityThresholds | None = None,
    config: GateConfig | None = None,
) -> ChainResult:
    return GateChain(thresholds, config).run(artifact, production)


__all__ = [
    "ChainResult",
    "GateChain",
    "GateCheck",
    "GateFailure",
    "GateResult",
    "GateStatus",
    "run_gates",
]
