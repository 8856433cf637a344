"""Inspect catalog entries and their pipeline status."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from apps.orchestrator.catalog import CourseCatalog, CourseStatus
from coursemill.core.config import CatalogConfig, load_pipeline_config

ENV_REPO_ROOT = "COURSEMILL_REPO_ROOT"

app = typer.Typer(help="List catalog entries, completion statistics, and reset entries to pending.")
console = Console()

STATUS_STYLES = {
    CourseStatus.PENDING: "white",
    CourseStatus.IN_PROGRESS: "cyan",
    CourseStatus.COMPLETED: "green",
    CourseStatus.NEEDS_REVIEW: "yellow",
    CourseStatus.FAILED: "bold red",
}


def _resolve_repo_root() -> Path:
    override = os.environ.get(ENV_REPO_ROOT)
    if override:
        return Path(override).expanduser().resolve()
    return REPO_ROOT


def load_catalog(config: Path | None = None) -> CourseCatalog:
    repo_root = _resolve_repo_root()
    path = (config or repo_root / "config" / "pipeline.yaml").expanduser().resolve()
    if path.exists():
        catalog_config = load_pipeline_config(path, base_dir=repo_root).catalog
    elif config is not None:
        raise typer.BadParameter(f"Pipeline config not found at {path}")
    else:
        catalog_config = CatalogConfig(
            entries_path=repo_root / "config" / "catalog.yaml",
            status_path=repo_root / "data" / "status.json",
            courses_dir=repo_root / "data" / "courses",
        )
    if not catalog_config.entries_path.exists():
        raise typer.BadParameter(f"Catalog not found at {catalog_config.entries_path}")
    return CourseCatalog.from_config(catalog_config)


@app.command("list")
def list_entries(
    category: Optional[str] = typer.Option(None, "--category", help="Only show one category."),
    status: Optional[CourseStatus] = typer.Option(None, "--status", help="Only show entries with this status."),
    config: Path | None = typer.Option(None, "--config", help="Pipeline YAML (default: config/pipeline.yaml)."),
) -> None:
    catalog = load_catalog(config)
    table = Table(title="Course catalog", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Status")
    table.add_column("Quality", justify="right")
    for position, entry in enumerate(catalog.entries(), start=1):
        if category and entry.category != category:
            continue
        if status and entry.status is not status:
            continue
        quality = catalog.status_record(entry.id).get("quality_score")
        table.add_row(
            str(position),
            entry.id,
            entry.title,
            entry.category,
            str(entry.priority),
            entry.status.value,
            "-" if quality is None else str(quality),
            style=STATUS_STYLES.get(entry.status),
        )
    console.print(table)


@app.command()
def stats(
    config: Path | None = typer.Option(None, "--config", help="Pipeline YAML (default: config/pipeline.yaml)."),
) -> None:
    catalog = load_catalog(config)
    summary = catalog.statistics()
    table = Table(title="Catalog statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in summary.items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)
    categories = catalog.categories()
    if categories:
        console.print(f"Categories: {', '.join(categories)}")


@app.command()
def reset(
    course_id: str = typer.Argument(..., help="Catalog id (or 1-based position) to mark pending again."),
    config: Path | None = typer.Option(None, "--config", help="Pipeline YAML (default: config/pipeline.yaml)."),
) -> None:
    catalog = load_catalog(config)
    entry = catalog.by_id(course_id)
    if entry is None:
        console.print(f"[red]No catalog entry {course_id!r}[/red]")
        raise typer.Exit(code=1)
    catalog.set_status(entry.id, CourseStatus.PENDING, reset=True)
    console.print(f"[green]{entry.id} reset to pending[/green]")


if __name__ == "__main__":
    app()
