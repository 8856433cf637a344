"""CLI entry point for the quality-gated course pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from apps.orchestrator.batch import BatchReport
from apps.orchestrator.errors import CourseSelectionError
from apps.orchestrator.pipeline import RunSelector
from apps.orchestrator.results import RunResult
from coursemill.pipeline import PipelineContext, bootstrap_pipeline
from coursemill.pipeline.bootstrap import SKIP_FLAGS
from coursemill.pipeline.runtime import build_runtime

REPO_ROOT = Path(__file__).resolve().parents[2]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate, grade, and gate courses from the catalog.")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--course", default=None, help="Catalog id (or 1-based catalog position) to run.")
    target.add_argument(
        "--batch",
        type=int,
        default=None,
        metavar="N",
        help="Run up to N pending courses one after another.",
    )
    parser.add_argument("--category", default=None, help="Restrict selection to one catalog category.")
    parser.add_argument(
        "--config",
        default="config/pipeline.yaml",
        help="Path to the pipeline YAML (default: config/pipeline.yaml)",
    )
    parser.add_argument(
        "--repo-root",
        default=str(REPO_ROOT),
        help=f"Repository root (default: {REPO_ROOT})",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for run logs and results (default: <repo-root>/outputs)",
    )
    for name in SKIP_FLAGS:
        parser.add_argument(
            f"--skip-{name}",
            action="append_const",
            const=name,
            dest="skip",
            help=f"Disable the {name} stage for this run.",
        )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the template writer and fallback quiz; no LM, TTS, or ffmpeg calls.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Bootstrap and show what would run without invoking the orchestrator.",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress the run summary on stdout.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _resolve_path(value: str | Path, *, base: Path | None = None) -> Path:
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate.resolve()
    anchor = Path(base).expanduser().resolve() if base is not None else Path.cwd()
    return (anchor / candidate).resolve()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        repo_root = _resolve_path(args.repo_root)
        config_path = _resolve_path(args.config, base=repo_root)
        if not config_path.exists():
            raise FileNotFoundError(f"Pipeline config not found: {config_path}")
        if args.batch is not None and args.batch < 1:
            raise ValueError("--batch must be at least 1")
        output_dir = _resolve_path(args.output_dir, base=repo_root) if args.output_dir else None

        ctx = bootstrap_pipeline(
            config_path=config_path,
            repo_root=repo_root,
            output_dir=output_dir,
            offline=True if args.offline else None,
            skip=args.skip or (),
        )
        with build_runtime(ctx) as runtime:
            if args.dry_run:
                _print_plan(ctx, runtime.catalog, args)
                return 0
            if args.batch is not None:
                report = runtime.batch.run(args.batch, args.category)
                _print_batch(report, quiet=args.quiet)
                return 0 if report.failed == 0 else 1

            result = runtime.orchestrator.run(RunSelector(course_id=args.course, category=args.category))
            _print_result(result, quiet=args.quiet)
            return 0 if result.success else 1
    except CourseSelectionError as exc:
        print(f"[run_course] {exc}", file=sys.stderr)
        return 2
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))
    except Exception as exc:  # noqa: BLE001 - bubble up to CLI for now
        print(f"[run_course] error: {exc}", file=sys.stderr)
        return 1

    return 0


def _print_plan(ctx: PipelineContext, catalog, args: argparse.Namespace) -> None:
    stages = ctx.config.stages
    enabled = [name for name in ("narrate", "slides", "render", "quiz", "cheatsheet") if getattr(stages, name)]
    if args.batch is not None:
        pending = catalog.pending(args.category)
        planned = pending[: args.batch]
        print(f"[dry-run] batch of {len(planned)} (requested {args.batch}, {len(pending)} pending)")
        for entry in planned:
            print(f"  - {entry.id}: {entry.title}")
    else:
        entry = catalog.by_id(args.course) if args.course else catalog.next_pending(args.category)
        print(f"[dry-run] course: {f'{entry.id}: {entry.title}' if entry else 'none selected'}")
    thresholds = ctx.config.quality
    print(f"[dry-run] stages: {', '.join(enabled) or 'none'} | offline={ctx.offline}")
    print(f"[dry-run] thresholds: target={thresholds.target} acceptable={thresholds.acceptable} minimum={thresholds.minimum}")


def _print_result(result: RunResult, *, quiet: bool = False) -> None:
    if quiet:
        return
    print(f"[run] {result.summary}")
    for name, outcome in result.stages.items():
        line = f"  {name:<11} {outcome.status.value}"
        if outcome.warning:
            line += f" ({outcome.warning})"
        print(line)
    errors: List[str] = list(result.errors)
    for error in errors[:10]:
        print(f"  ! {error}")
    if result.workspace:
        print(f"[run] workspace={result.workspace}")


def _print_batch(report: BatchReport, *, quiet: bool = False) -> None:
    if quiet:
        return
    print(f"[batch] {report.summary}")
    for result in report.results:
        score = result.quality_score if result.quality_score is not None else "-"
        status = result.status.value if result.status else "unknown"
        print(f"  {result.course_id}: {status} (quality {score})")
    for error in report.errors:
        print(f"  ! {error}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
