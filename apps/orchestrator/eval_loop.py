"""Standalone entry point for scoring and gating generated courses offline."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import typer
from rich.console import Console
from rich.table import Table

from coursemill.core.config import PipelineConfig, apply_threshold_env, load_pipeline_config
from coursemill.core.content import ContentArtifact

try:  # pragma: no cover - fallback when executed as a script
    from .gates import ChainResult, GateChain
    from .quality import ProductionMeta, QualityEvaluation, QualityScorer, format_quality_report
except ImportError:  # pragma: no cover
    from apps.orchestrator.gates import ChainResult, GateChain
    from apps.orchestrator.quality import ProductionMeta, QualityEvaluation, QualityScorer, format_quality_report


ENV_REPO_ROOT = "COURSEMILL_REPO_ROOT"
_MODULE_REPO_ROOT = Path(__file__).resolve().parents[2]

app = typer.Typer(help="Score generated courses and run the gate chain without regenerating them.")
console = Console()


def _resolve_repo_root(explicit: Path | None = None) -> Path:
    if explicit is not None:
        return explicit.expanduser().resolve()
    env_root = os.environ.get(ENV_REPO_ROOT)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return _MODULE_REPO_ROOT


def _load_config(repo_root: Path, config: Path | None) -> PipelineConfig:
    path = (config or repo_root / "config" / "pipeline.yaml").expanduser().resolve()
    if config is None and not path.exists():
        return apply_threshold_env(PipelineConfig())
    return apply_threshold_env(load_pipeline_config(path, base_dir=repo_root))


def _content_path(target: Path) -> Path:
    return target / "content.json" if target.is_dir() else target


def production_for(workspace: Path) -> ProductionMeta:
    """Describe audio/video already present in a course workspace."""

    audio = tuple(sorted((workspace / "audio").glob("lecture-*.*"))) if (workspace / "audio").is_dir() else ()
    video = tuple(sorted((workspace / "videos").glob("lecture-*.mp4"))) if (workspace / "videos").is_dir() else ()
    return ProductionMeta(audio_files=audio, video_files=video)


def load_content(path: Path) -> ContentArtifact:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    return ContentArtifact.coerce(payload)


def _gate_table(chain: ChainResult) -> Table:
    table = Table(title=f"Gate chain: {'PASSED' if chain.passed else f'FAILED at gate {chain.failed_at_gate}'}")
    table.add_column("Gate", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Failures")
    for gate in chain.gates:
        table.add_row(str(gate.number), gate.name, gate.status.value, ", ".join(gate.failure_names()) or "-")
    return table


@app.command()
def score(
    targets: List[Path] = typer.Argument(..., help="content.json files or course workspace directories."),
    repo_root: Path | None = typer.Option(None, "--repo-root", help="Repository root used to resolve the default config."),
    config: Path | None = typer.Option(None, "--config", help="Pipeline YAML with thresholds and gate settings."),
    gates: bool = typer.Option(True, "--gates/--no-gates", help="Also run the four-gate chain."),
    output_dir: Path | None = typer.Option(
        None,
        help="Directory where evaluation JSONL results should be written (omit to skip writing).",
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Only print the final summary line."),
) -> None:
    """Score each course on the seven quality dimensions."""

    repo_root = _resolve_repo_root(repo_root)
    try:
        pipeline_config = _load_config(repo_root, config)
    except FileNotFoundError:
        typer.echo(f"Pipeline config not found: {config}", err=True)
        raise typer.Exit(code=2) from None
    except ValueError as exc:
        typer.echo(f"Invalid pipeline config: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    scorer = QualityScorer(pipeline_config.quality)
    chain_runner = GateChain(pipeline_config.quality, pipeline_config.gates, scorer=scorer)
    records: List[Dict[str, Any]] = []
    failing = 0
    for target in targets:
        path = _content_path(target.expanduser().resolve())
        if not path.exists():
            typer.echo(f"Course content not found: {path}", err=True)
            raise typer.Exit(code=1)
        try:
            artifact = load_content(path)
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=1) from exc

        production = production_for(path.parent)
        evaluation: QualityEvaluation = scorer.evaluate(artifact, production)
        record: Dict[str, Any] = {"artifact": str(path), "quality": evaluation.as_dict()}
        passed = evaluation.passing
        if not quiet:
            console.print(f"[bold]{artifact.metadata.title or path}[/bold]")
            console.print(format_quality_report(evaluation), markup=False)
        if gates:
            chain = chain_runner.run(artifact, production)
            record["gates"] = chain.as_dict()
            passed = passed and chain.passed
            if not quiet:
                console.print(_gate_table(chain))
        if not passed:
            failing += 1
        records.append(record)

    if output_dir is not None:
        output_dir = output_dir.expanduser().resolve()
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        output_path = output_dir / f"eval-{timestamp}.jsonl"
        with output_path.open("w", encoding="utf-8") as handle:
            for record in records:
                handle.write(json.dumps(record) + "\n")
        typer.echo(f"Results written to {output_path}")

    typer.echo(f"Scored {len(records)} course(s); {failing} did not pass.")
    if failing:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
