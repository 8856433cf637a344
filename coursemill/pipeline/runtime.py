"""Wire a bootstrapped context into an orchestrator and batch controller."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from apps.orchestrator.batch import BatchController, BatchReport
from apps.orchestrator.catalog import CourseCatalog
from apps.orchestrator.collaborators import Collaborators, Notifier
from apps.orchestrator.pipeline import Orchestrator, RunSelector
from apps.orchestrator.results import RunResult
from apps.orchestrator.stages import (
    FFmpegRenderer,
    LMCourseWriter,
    LMQuizAuthor,
    LoggingNotifier,
    MarkdownCheatSheetBuilder,
    MarkdownSlideMaker,
    SpeechNarrator,
    TemplateCourseWriter,
    WebhookNotifier,
)

from .context import PipelineContext

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineRuntime:
    orchestrator: Orchestrator
    catalog: CourseCatalog
    batch: BatchController
    collaborators: Collaborators

    def close(self) -> None:
        self.collaborators.close()

    def __enter__(self) -> "PipelineRuntime":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_notifier(ctx: PipelineContext) -> Notifier:
    cfg = ctx.config.notifications
    url = cfg.resolved_webhook_url()
    if url:
        return WebhookNotifier(url, timeout=cfg.timeout_seconds)
    return LoggingNotifier()


def build_collaborators(ctx: PipelineContext) -> Collaborators:
    """Reference collaborators for the context.

    Offline contexts get the template writer and the fallback quiz, and no
    narrator or renderer, so nothing leaves the machine.
    """

    config = ctx.config
    notifier = build_notifier(ctx)
    if ctx.offline or ctx.dspy_handles is None:
        return Collaborators(
            generator=TemplateCourseWriter(),
            slides=MarkdownSlideMaker(),
            cheatsheet=MarkdownCheatSheetBuilder(),
            notifier=notifier,
        )
    handles = ctx.dspy_handles
    return Collaborators(
        generator=LMCourseWriter(handles.writer),
        narrator=SpeechNarrator(config.narration),
        slides=MarkdownSlideMaker(),
        renderer=FFmpegRenderer(config.render),
        quiz=LMQuizAuthor(handles.quiz),
        cheatsheet=MarkdownCheatSheetBuilder(),
        notifier=notifier,
    )


def build_runtime(
    ctx: PipelineContext,
    *,
    catalog: CourseCatalog | None = None,
    collaborators: Collaborators | None = None,
) -> PipelineRuntime:
    config = ctx.config
    catalog = catalog or CourseCatalog.from_config(config.catalog)
    collaborators = collaborators or build_collaborators(ctx)
    orchestrator = Orchestrator(ctx, catalog, collaborators)
    batch = BatchController(
        orchestrator,
        catalog,
        cooldown_seconds=config.batch.cooldown_seconds,
        notifier=collaborators.notifier,
        logs_dir=ctx.paths.logs_dir,
        keep_logs=config.batch.keep_logs,
        prune_logs_over=config.batch.prune_logs_over,
    )
    return PipelineRuntime(orchestrator=orchestrator, catalog=catalog, batch=batch, collaborators=collaborators)


def run_course(ctx: PipelineContext, selector: RunSelector | None = None) -> RunResult:
    with build_runtime(ctx) as runtime:
        return runtime.orchestrator.run(selector)


def run_batch(ctx: PipelineContext, count: Optional[int] = None, category: Optional[str] = None) -> BatchReport:
    with build_runtime(ctx) as runtime:
        return runtime.batch.run(count or ctx.config.batch.default_count, category)


__all__ = ["PipelineRuntime", "build_collaborators", "build_notifier", "build_runtime", "run_batch", "run_course"]
