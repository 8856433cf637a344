"""Quality-gated course pipeline.

One run walks a fixed sequence of stages::

    select -> generate (retried) -> narrate -> slides -> render -> quiz
           -> cheatsheet -> gate -> persist

Only ``select`` can abort a run with an exception. Generation failures end
the run as ``failed``; every later stage is best-effort and reports through
its `StageOutcome`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from coursemill.core.content import ContentArtifact, Quiz
from coursemill.core.provenance import ProvenanceEvent, ProvenanceLogger
from coursemill.pipeline.context import PipelineContext

from .catalog import CatalogEntry, CourseStatus
from .collaborators import CatalogStore, Collaborators, NarrationResult, RenderResult
from .errors import CourseSelectionError, GenerationError
from .gates import ChainResult, GateChain
from .generation_loop import GenerationAttempt, GenerationLoop
from .quality import ProductionMeta, QualityEvaluation, QualityScorer
from .results import RESULT_TIMESTAMP_FORMAT, RunResult, StageOutcome
from .stages.quiz import fallback_assessment

LOGGER_NAME = "coursemill.orchestrator"


@dataclass(frozen=True, slots=True)
class RunSelector:
    """Explicit id (or 1-based catalog position), else category, else next pending."""

    course_id: Optional[str] = None
    category: Optional[str] = None

    def describe(self) -> str:
        if self.course_id:
            return f"course '{self.course_id}'"
        if self.category:
            return f"category '{self.category}'"
        return "next pending course"


@dataclass(slots=True)
class _RunState:
    run_id: str
    started_at: datetime
    run_log: ProvenanceLogger
    entry: Optional[CatalogEntry] = None
    workspace: Optional[Path] = None
    artifact: Optional[ContentArtifact] = None
    narration: Optional[NarrationResult] = None
    render: Optional[RenderResult] = None
    evaluation: Optional[QualityEvaluation] = None
    chain: Optional[ChainResult] = None
    stages: Dict[str, StageOutcome] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class Orchestrator:
    """Runs one catalog entry through the pipeline and records a RunResult."""

    def __init__(
        self,
        ctx: PipelineContext,
        catalog: CatalogStore,
        collaborators: Collaborators,
        *,
        scorer: QualityScorer | None = None,
        gates: GateChain | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.ctx = ctx
        self.catalog = catalog
        self.collaborators = collaborators
        self.config = ctx.config
        self.scorer = scorer or QualityScorer(self.config.quality)
        self.gates = gates or GateChain(self.config.quality, self.config.gates, scorer=self.scorer)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    # ------------------------------------------------------------------

    def run(self, selector: RunSelector | None = None) -> RunResult:
        selector = selector or RunSelector()
        state = self._start_run()

        try:
            entry = self._select(selector)
        except CourseSelectionError as exc:
            state.errors.append(str(exc))
            state.stages["select"] = StageOutcome.fail("select", str(exc))
            self._event(state, "select", str(exc), level="error", selector=selector.describe())
            result = self._build_result(state, status=None, summary=f"Selection failed: {exc}")
            self._write_result(result)
            raise

        self._acquire(state, entry)
        if not self._generate(state):
            return self._persist(state)

        self._record(state, self._narrate(state))
        self._record(state, self._slides(state))
        self._record(state, self._render(state))
        self._record(state, self._quiz(state))
        self._record(state, self._cheatsheet(state))
        self._gate(state)
        return self._persist(state)

    # ------------------------------------------------------------------
    # SELECT

    def _start_run(self) -> _RunState:
        started = self.clock()
        stamp = started.strftime(RESULT_TIMESTAMP_FORMAT)
        logs_dir = self.ctx.paths.logs_dir
        return _RunState(
            run_id=f"run-{stamp}",
            started_at=started,
            run_log=ProvenanceLogger(logs_dir / f"orchestrator-{stamp}.jsonl"),
        )

    def _select(self, selector: RunSelector) -> CatalogEntry:
        entry: Optional[CatalogEntry]
        if selector.course_id:
            entry = self.catalog.by_id(selector.course_id)
        elif selector.category:
            candidates = [
                item
                for item in self.catalog.by_category(selector.category)
                if item.status not in (CourseStatus.COMPLETED, CourseStatus.IN_PROGRESS)
            ]
            entry = min(candidates, key=lambda item: item.priority) if candidates else None
        else:
            entry = self.catalog.next_pending()
        if entry is None:
            raise CourseSelectionError(f"No catalog entry found for {selector.describe()}", selector=selector)
        return entry

    def _acquire(self, state: _RunState, entry: CatalogEntry) -> None:
        state.entry = entry
        state.workspace = self.catalog.create_workspace(entry)
        self.catalog.set_status(entry.id, CourseStatus.IN_PROGRESS, run_id=state.run_id, workspace=str(state.workspace))
        self.logger.info(
            "Selected %s (%s)",
            entry.id,
            entry.title,
            extra={"course_id": entry.id, "run_id": state.run_id, "workspace": str(state.workspace)},
        )
        outcome = StageOutcome.succeeded("select", course_id=entry.id, workspace=state.workspace)
        self._record(state, outcome)

    # ------------------------------------------------------------------
    # GENERATE

    def _generate(self, state: _RunState) -> bool:
        assert state.entry is not None
        loop = GenerationLoop(
            self.collaborators.generator,
            scorer=self.scorer,
            thresholds=self.config.quality,
            config=self.config.generation,
            on_attempt=lambda attempt: self._log_attempt(state, attempt),
        )
        try:
            outcome = loop.run(state.entry)
        except GenerationError as exc:
            state.errors.append(str(exc))
            self._record(state, StageOutcome.fail("generate", str(exc), attempts=exc.attempts, history=exc.history))
            return False
        attempts = [record.as_dict() for record in outcome.attempts]

        assert outcome.artifact is not None and outcome.evaluation is not None
        meta = {
            **outcome.artifact.generation_meta,
            "course_id": state.entry.id,
            "attempts": outcome.attempt_count,
            "accepted_attempt": outcome.accepted_attempt,
            "generated_at": self.clock().isoformat(),
        }
        state.artifact = outcome.artifact.model_copy(update={"generation_meta": meta})
        state.evaluation = outcome.evaluation
        self._record(
            state,
            StageOutcome.succeeded(
                "generate",
                attempts=outcome.attempt_count,
                warning=outcome.warning,
                overall=outcome.evaluation.overall,
                accepted_attempt=outcome.accepted_attempt,
                history=attempts,
            ),
        )
        return True

    def _log_attempt(self, state: _RunState, attempt: GenerationAttempt) -> None:
        self._event(state, "generate", f"Attempt {attempt.attempt}: {attempt.outcome}", **attempt.as_dict())

    # ------------------------------------------------------------------
    # Best-effort stages

    def _best_effort(self, stage: str, action: Callable[[], StageOutcome], *, enabled: bool, available: bool) -> StageOutcome:
        if not enabled:
            return StageOutcome.skip(stage, "disabled")
        if not available:
            return StageOutcome.skip(stage, "no_collaborator")
        try:
            return action()
        except Exception as exc:
            self.logger.warning("Stage %s failed: %s", stage, exc, extra={"stage": stage})
            return StageOutcome.fail(stage, f"{type(exc).__name__}: {exc}")

    def _narrate(self, state: _RunState) -> StageOutcome:
        narrator = self.collaborators.narrator

        def action() -> StageOutcome:
            result = narrator.narrate(state.artifact, state.workspace)
            state.narration = result
            files = [item.path for item in result.audio_files]
            if not result.audio_files:
                return StageOutcome.fail("narrate", f"No audio produced (0/{result.total_count} lectures)")
            warning = None
            if result.successful_count < result.total_count:
                warning = f"Narrated {result.successful_count}/{result.total_count} lectures"
            return StageOutcome.succeeded(
                "narrate",
                warning=warning,
                audio_files=files,
                successful=result.successful_count,
                total=result.total_count,
            )

        return self._best_effort("narrate", action, enabled=self.config.stages.narrate, available=narrator is not None)

    def _slides(self, state: _RunState) -> StageOutcome:
        maker = self.collaborators.slides

        def action() -> StageOutcome:
            deck = maker.present(state.artifact, state.workspace)
            warning = None
            thumbnail: Optional[Path] = None
            try:
                thumbnail = maker.thumbnail(state.artifact.metadata, state.workspace)
            except Exception as exc:
                warning = f"Thumbnail failed: {exc}"
            return StageOutcome.succeeded(
                "slides",
                warning=warning,
                slide_count=deck.slide_count,
                deck=deck.path,
                thumbnail=thumbnail,
            )

        return self._best_effort("slides", action, enabled=self.config.stages.slides, available=maker is not None)

    def _render(self, state: _RunState) -> StageOutcome:
        renderer = self.collaborators.renderer
        if self.config.stages.render and renderer is not None and not (state.narration and state.narration.audio_files):
            return StageOutcome.skip("render", "no_audio")

        def action() -> StageOutcome:
            result = renderer.render(state.artifact, state.workspace, list(state.narration.audio_files))
            state.render = result
            files = [item.path for item in result.video_files]
            if not result.video_files:
                return StageOutcome.fail("render", f"No video produced (0/{result.total_count} lectures)")
            warning = None
            if result.successful_count < result.total_count:
                warning = f"Rendered {result.successful_count}/{result.total_count} lectures"
            return StageOutcome.succeeded(
                "render",
                warning=warning,
                video_files=files,
                successful=result.successful_count,
                total=result.total_count,
            )

        return self._best_effort("render", action, enabled=self.config.stages.render, available=renderer is not None)

    def _quiz(self, state: _RunState) -> StageOutcome:
        count = self.config.stages.final_quiz_questions

        def action() -> StageOutcome:
            artifact = state.artifact
            warning = None
            final = artifact.final_assessment
            if final is None or not final.questions:
                final, warning = self._author_quiz(artifact, count)
                state.artifact = artifact.model_copy(update={"final_assessment": final})
            path = state.workspace / "quiz.json"
            path.write_text(json.dumps(_quiz_document(state.artifact), indent=2), encoding="utf-8")
            return StageOutcome.succeeded(
                "quiz",
                warning=warning,
                path=path,
                questions=len(final.questions),
                needs_review=final.needs_review,
            )

        return self._best_effort("quiz", action, enabled=self.config.stages.quiz, available=True)

    def _author_quiz(self, artifact: ContentArtifact, count: int) -> tuple[Quiz, Optional[str]]:
        author = self.collaborators.quiz
        if author is None:
            return fallback_assessment(artifact, count), "No quiz author configured; used fallback quiz"
        try:
            quiz = author.final_assessment(artifact, count)
        except Exception as exc:
            self.logger.warning("Quiz author failed: %s", exc)
            return fallback_assessment(artifact, count), f"Quiz author failed ({exc}); used fallback quiz"
        if not quiz.questions:
            return fallback_assessment(artifact, count), "Quiz author returned no questions; used fallback quiz"
        return quiz, None

    def _cheatsheet(self, state: _RunState) -> StageOutcome:
        builder = self.collaborators.cheatsheet

        def action() -> StageOutcome:
            path = builder.build(state.artifact, state.workspace)
            return StageOutcome.succeeded("cheatsheet", path=path)

        return self._best_effort(
            "cheatsheet", action, enabled=self.config.stages.cheatsheet, available=builder is not None
        )

    # ------------------------------------------------------------------
    # GATE

    def _production_meta(self, state: _RunState) -> ProductionMeta:
        narrate = state.stages.get("narrate")
        render = state.stages.get("render")
        return ProductionMeta(
            audio_files=tuple(item.path for item in state.narration.audio_files) if state.narration else (),
            video_files=tuple(item.path for item in state.render.video_files) if state.render else (),
            audio_requested=bool(narrate and not narrate.skipped),
            video_requested=bool(render and not render.skipped),
        )

    def _gate(self, state: _RunState) -> None:
        production = self._production_meta(state)
        try:
            state.evaluation = self.scorer.evaluate(state.artifact, production)
            state.chain = self.gates.run(state.artifact, production)
        except Exception as exc:  # pragma: no cover - defensive
            self.logger.error("Gate evaluation raised: %s", exc)
            state.errors.append(f"Gate evaluation failed: {exc}")
            self._record(state, StageOutcome.fail("gate", str(exc)))
            return

        chain = state.chain
        if chain.passed:
            outcome = StageOutcome.succeeded("gate", overall=chain.overall)
        else:
            failures = chain.failures()
            state.errors.extend(failures)
            outcome = StageOutcome.fail(
                "gate",
                f"Failed at gate {chain.failed_at_gate}",
                failed_at_gate=chain.failed_at_gate,
                failures=failures,
            )
        self._record(state, outcome)

    # ------------------------------------------------------------------
    # PERSIST

    def _persist(self, state: _RunState) -> RunResult:
        entry = state.entry
        assert entry is not None
        if state.artifact is None:
            status = CourseStatus.FAILED
        elif state.chain is not None and state.chain.passed:
            status = CourseStatus.COMPLETED
        else:
            status = CourseStatus.NEEDS_REVIEW
        quality_score = state.evaluation.overall if state.evaluation else None

        written: Dict[str, Any] = {}
        persist_warnings: List[str] = []
        if state.artifact is not None and state.workspace is not None:
            try:
                content_path = state.workspace / "content.json"
                content_path.write_text(state.artifact.to_json(), encoding="utf-8")
                written["content"] = content_path
            except OSError as exc:
                persist_warnings.append(f"Could not write content.json: {exc}")
        try:
            self.catalog.set_status(
                entry.id,
                status,
                run_id=state.run_id,
                quality_score=quality_score,
                workspace=str(state.workspace) if state.workspace else None,
                failed_at_gate=state.chain.failed_at_gate if state.chain else None,
            )
        except Exception as exc:  # pragma: no cover - defensive
            persist_warnings.append(f"Could not update catalog status: {exc}")

        if persist_warnings:
            self._record(state, StageOutcome.fail("persist", "; ".join(persist_warnings), **written))
        else:
            self._record(state, StageOutcome.succeeded("persist", status=status.value, **written))

        result = self._build_result(state, status=status, summary=self._summarize(state, status, quality_score))
        self._write_result(result)
        self.logger.info(result.summary, extra={"course_id": entry.id, "status": status.value, "quality": quality_score})
        self._notify(result)
        return result

    def _summarize(self, state: _RunState, status: CourseStatus, quality_score: Optional[int]) -> str:
        entry = state.entry
        head = f"{entry.id} '{entry.title}': {status.value}"
        if status is CourseStatus.FAILED:
            return f"{head} ({state.errors[0] if state.errors else 'no usable content'})"
        gate_note = "all gates passed"
        if state.chain is None:
            gate_note = "gates not evaluated"
        elif not state.chain.passed:
            gate_note = f"failed at gate {state.chain.failed_at_gate}"
        parts = [f"quality {quality_score}/100", gate_note]
        if state.warnings:
            parts.append(f"{len(state.warnings)} warning(s)")
        return f"{head} ({', '.join(parts)})"

    def _build_result(self, state: _RunState, *, status: Optional[CourseStatus], summary: str) -> RunResult:
        return RunResult(
            run_id=state.run_id,
            started_at=state.started_at,
            finished_at=self.clock(),
            course=state.entry,
            workspace=str(state.workspace) if state.workspace else None,
            content=state.artifact,
            stages=dict(state.stages),
            quality=state.evaluation.as_dict() if state.evaluation else None,
            gates=state.chain.as_dict() if state.chain else None,
            quality_score=state.evaluation.overall if state.evaluation else None,
            status=status,
            success=status in (CourseStatus.COMPLETED, CourseStatus.NEEDS_REVIEW),
            errors=list(state.errors),
            warnings=list(state.warnings),
            summary=summary,
        )

    def _write_result(self, result: RunResult) -> Optional[Path]:
        try:
            path = result.write(self.ctx.paths.logs_dir)
        except OSError as exc:
            self.logger.error("Could not write run result: %s", exc)
            return None
        self.ctx.provenance.log(
            ProvenanceEvent(
                stage="persist",
                message=result.summary,
                agent="apps.orchestrator",
                payload={"run_id": result.run_id, "result": str(path), "status": result.status},
            )
        )
        return path

    def _notify(self, result: RunResult) -> None:
        notifier = self.collaborators.notifier
        if notifier is None:
            return
        try:
            notifier.notify(result)
        except Exception as exc:
            self.logger.warning("Notification failed: %s", exc)

    # ------------------------------------------------------------------

    def _record(self, state: _RunState, outcome: StageOutcome) -> None:
        state.stages[outcome.stage] = outcome
        if outcome.warning and outcome.stage != "gate":
            state.warnings.append(f"{outcome.stage}: {outcome.warning}")
        level = "warning" if outcome.failed else "info"
        self._event(
            state,
            outcome.stage,
            f"Stage {outcome.stage} {outcome.status.value}",
            level=level,
            attempts=outcome.attempts,
            warning=outcome.warning,
            detail=outcome.detail,
        )

    def _event(self, state: _RunState, stage: str, message: str, *, level: str = "info", **payload: Any) -> None:
        try:
            state.run_log.log(
                ProvenanceEvent(
                    timestamp=self.clock(),
                    stage=stage,
                    message=message,
                    agent="apps.orchestrator",
                    level=level,
                    payload=json.loads(json.dumps(payload, default=str)),
                )
            )
        except OSError as exc:  # pragma: no cover - defensive
            self.logger.error("Run log write failed: %s", exc)


def _quiz_document(artifact: ContentArtifact) -> Dict[str, Any]:
    final = artifact.final_assessment
    return {
        "courseTitle": artifact.metadata.title,
        "finalAssessment": final.model_dump(by_alias=True) if final else None,
        "sectionQuizzes": [
            {"section": section.title, **section.quiz.model_dump(by_alias=True)}
            for section in artifact.sections
            if section.quiz and section.quiz.questions
        ],
    }


__all__ = ["Orchestrator", "RunSelector"]
