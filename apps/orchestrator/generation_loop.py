"""Bounded retry loop around the content generator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from coursemill.core.config import GenerationConfig, QualityThresholds
from coursemill.core.content import ContentArtifact, structural_issues

from .catalog import CatalogEntry
from .collaborators import ContentGenerator, RetryFeedback
from .errors import GenerationError
from .quality import QualityEvaluation, QualityScorer, improvement_hints

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationAttempt:
    attempt: int
    overall: Optional[int] = None
    failing_dimensions: Tuple[str, ...] = ()
    structural_issues: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def outcome(self) -> str:
        if self.error:
            return "error"
        if self.structural_issues:
            return "structure"
        return "scored"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.attempt,
            "outcome": self.outcome,
            "overall": self.overall,
            "failing_dimensions": list(self.failing_dimensions),
            "structural_issues": list(self.structural_issues),
            "error": self.error,
        }


@dataclass(slots=True)
class GenerationOutcome:
    artifact: Optional[ContentArtifact]
    evaluation: Optional[QualityEvaluation]
    attempts: List[GenerationAttempt] = field(default_factory=list)
    accepted_attempt: Optional[int] = None
    warning: Optional[str] = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class GenerationLoop:
    """Generate, check structure, score; retry until the target or the attempt budget.

    A candidate at or above the minimum is remembered while the loop keeps
    trying for the target. Once attempts run out the best remembered candidate
    is accepted with a warning; with none, the loop raises ``GenerationError``
    carrying every attempt record.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        *,
        scorer: QualityScorer,
        thresholds: QualityThresholds,
        config: GenerationConfig,
        on_attempt: Callable[[GenerationAttempt], None] | None = None,
    ) -> None:
        self.generator = generator
        self.scorer = scorer
        self.thresholds = thresholds
        self.config = config
        self.on_attempt = on_attempt

    def run(self, entry: CatalogEntry) -> GenerationOutcome:
        outcome = GenerationOutcome(artifact=None, evaluation=None)
        best: Optional[Tuple[int, ContentArtifact, QualityEvaluation]] = None
        feedback: RetryFeedback | None = None

        for attempt in range(1, self.config.max_attempts + 1):
            record = GenerationAttempt(attempt=attempt)
            outcome.attempts.append(record)
            try:
                artifact = ContentArtifact.coerce(self.generator.generate(entry, feedback=feedback))
            except Exception as exc:
                LOGGER.warning("Generation attempt %s for %s failed: %s", attempt, entry.id, exc)
                record.error = f"{type(exc).__name__}: {exc}"
                feedback = RetryFeedback(attempt=attempt, error=record.error)
                self._notify(record)
                continue

            issues = structural_issues(artifact)
            if issues:
                record.structural_issues = tuple(issues)
                feedback = RetryFeedback(attempt=attempt, structural_issues=tuple(issues))
                LOGGER.info("Generation attempt %s rejected on structure: %s", attempt, "; ".join(issues))
                self._notify(record)
                continue

            evaluation = self.scorer.evaluate(artifact)
            record.overall = evaluation.overall
            record.failing_dimensions = tuple(evaluation.failing_dimensions)
            self._notify(record)
            LOGGER.info(
                "Generation attempt %s scored %s/100",
                attempt,
                evaluation.overall,
                extra={"course_id": entry.id, "attempt": attempt, "overall": evaluation.overall},
            )

            if evaluation.overall >= self.thresholds.target:
                outcome.artifact, outcome.evaluation, outcome.accepted_attempt = artifact, evaluation, attempt
                return outcome
            if evaluation.overall >= self.thresholds.minimum and (best is None or evaluation.overall > best[2].overall):
                best = (attempt, artifact, evaluation)
            feedback = RetryFeedback(
                attempt=attempt,
                overall=evaluation.overall,
                failing_dimensions=tuple(evaluation.failing_dimensions),
                hints=improvement_hints(evaluation),
            )

        if best is not None and self.config.accept_minimum_on_exhaustion:
            attempt, artifact, evaluation = best
            band = "acceptable" if evaluation.overall >= self.thresholds.acceptable else "minimum"
            outcome.artifact, outcome.evaluation, outcome.accepted_attempt = artifact, evaluation, attempt
            outcome.warning = (
                f"Accepted attempt {attempt} at {evaluation.overall}/100 ({band} band) "
                f"after {len(outcome.attempts)} attempts; target is {self.thresholds.target}"
            )
            return outcome

        raise GenerationError(
            self._exhausted_message(outcome.attempts),
            attempts=len(outcome.attempts),
            history=[record.as_dict() for record in outcome.attempts],
        )

    # ------------------------------------------------------------------

    def _notify(self, record: GenerationAttempt) -> None:
        if self.on_attempt is not None:
            self.on_attempt(record)

    def _exhausted_message(self, attempts: List[GenerationAttempt]) -> str:
        scores = [record.overall for record in attempts if record.overall is not None]
        if scores:
            return (
                f"Generation exhausted {len(attempts)} attempts below minimum {self.thresholds.minimum} "
                f"(best {max(scores)}/100)"
            )
        last = attempts[-1] if attempts else None
        reason = (last.error or "; ".join(last.structural_issues)) if last else "no attempts"
        return f"Generation exhausted {len(attempts)} attempts without usable content ({reason})"


__all__ = ["GenerationAttempt", "GenerationLoop", "GenerationOutcome"]
