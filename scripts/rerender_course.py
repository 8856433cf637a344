"""Re-render lecture videos (and optionally slides) for an existing course workspace."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from apps.orchestrator.collaborators import AudioFile
from apps.orchestrator.errors import RenderError
from apps.orchestrator.stages.renderer import FFmpegRenderer
from apps.orchestrator.stages.slides import MarkdownSlideMaker
from coursemill.core.config import RenderConfig, load_pipeline_config
from coursemill.core.content import ContentArtifact

app = typer.Typer(help="Rebuild videos from a workspace's content.json and narrated audio.")
console = Console()


def collect_audio(workspace: Path) -> List[AudioFile]:
    """Audio files named ``lecture-NN.<ext>`` under ``audio/``, ordered by lecture."""

    files: List[AudioFile] = []
    for path in sorted((workspace / "audio").glob("lecture-*.*")):
        number = path.stem.split("-", 1)[-1]
        if number.isdigit():
            files.append(AudioFile(lecture_index=int(number), path=path))
    return files


def _render_config(config: Path | None) -> RenderConfig:
    if config is None:
        default = REPO_ROOT / "config" / "pipeline.yaml"
        return load_pipeline_config(default, base_dir=REPO_ROOT).render if default.exists() else RenderConfig()
    return load_pipeline_config(config.expanduser().resolve(), base_dir=REPO_ROOT).render


@app.command()
def rerender(
    workspace: Path = typer.Argument(..., exists=True, file_okay=False, help="Course workspace directory."),
    slides: bool = typer.Option(False, "--slides", help="Also rebuild the slide deck and thumbnail."),
    config: Path | None = typer.Option(None, "--config", help="Pipeline YAML with render settings."),
) -> None:
    content_path = workspace / "content.json"
    if not content_path.exists():
        console.print(f"[red]No content.json in {workspace}[/red]")
        raise typer.Exit(code=1)
    artifact = ContentArtifact.coerce(json.loads(content_path.read_text(encoding="utf-8")))

    if slides:
        maker = MarkdownSlideMaker()
        deck = maker.present(artifact, workspace)
        maker.thumbnail(artifact.metadata, workspace)
        console.print(f"Slides: {deck.slide_count} written to {deck.path}")

    audio = collect_audio(workspace)
    if not audio:
        console.print(f"[yellow]No narrated audio under {workspace / 'audio'}; nothing to render[/yellow]")
        raise typer.Exit(code=1)

    try:
        result = FFmpegRenderer(_render_config(config)).render(artifact, workspace, audio)
    except RenderError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Rendered {result.successful_count}/{result.total_count} lectures", show_header=True)
    table.add_column("Lecture", justify="right")
    table.add_column("Video")
    for video in result.video_files:
        table.add_row(str(video.lecture_index), str(video.path))
    console.print(table)
    if result.successful_count < result.total_count:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
