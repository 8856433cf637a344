"""Marp slide decks and Pillow title cards."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from PIL import Image, ImageDraw, ImageFont

from coursemill.core.content import ContentArtifact, CourseMetadata

from ..collaborators import SlideDeckResult

LOGGER = logging.getLogger(__name__)

BACKGROUND = (32, 32, 48)
FOREGROUND = (235, 235, 235)
ACCENT = (120, 170, 255)
MARGIN = 60


def _font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size=size)
    except OSError:
        return ImageFont.load_default()


def _wrap(draw: ImageDraw.ImageDraw, text: str, font: ImageFont.ImageFont, max_width: int) -> List[str]:
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}".strip()
        if draw.textlength(candidate, font=font) < max_width:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def render_card(path: Path, title: str, subtitle: str = "", *, width: int = 1280, height: int = 720) -> Path:
    """Draw a centered title card (title plus optional subtitle) and save it as PNG."""

    image = Image.new("RGB", (width, height), color=BACKGROUND)
    draw = ImageDraw.Draw(image)
    title_font = _font(max(28, min(width, height) // 12))
    subtitle_font = _font(max(18, min(width, height) // 28))

    blocks = [(line, title_font, FOREGROUND) for line in _wrap(draw, title, title_font, width - MARGIN * 2)[:4]]
    blocks += [(line, subtitle_font, ACCENT) for line in _wrap(draw, subtitle, subtitle_font, width - MARGIN * 2)[:3]]
    line_heights = [getattr(font, "size", 12) + 10 for _, font, _ in blocks]
    y = (height - sum(line_heights)) / 2
    for (line, font, color), line_height in zip(blocks, line_heights):
        line_width = draw.textlength(line, font=font)
        draw.text(((width - line_width) / 2, y), line, fill=color, font=font)
        y += line_height

    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path


class MarkdownSlideMaker:
    """Writes the course slides as one Marp markdown deck under ``slides/``."""

    def __init__(self, *, theme: str = "default", thumbnail_size: tuple[int, int] = (1280, 720)) -> None:
        self.theme = theme
        self.thumbnail_size = thumbnail_size

    def present(self, artifact: ContentArtifact, workspace: Path) -> SlideDeckResult:
        lines = ["---", "marp: true", f"theme: {self.theme}", "paginate: true", "---", ""]
        lines += [f"# {artifact.metadata.title or 'Untitled course'}", ""]
        if artifact.metadata.description:
            lines += [artifact.metadata.description, ""]

        count = 0
        for section in artifact.sections:
            lines += ["---", "", f"# {section.title}", ""]
            for lecture in section.lectures:
                for slide in lecture.slides:
                    count += 1
                    lines += ["---", "", f"<!-- visual: {slide.visual_type} -->", f"## {slide.title or lecture.title}", ""]
                    lines += [f"- {bullet}" for bullet in slide.bullets]
                    if slide.speaker_notes:
                        lines += ["", f"<!-- {slide.speaker_notes} -->"]
                    lines.append("")

        if count == 0:
            raise ValueError("Course has no slides to present")

        path = workspace / "slides" / "course.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines), encoding="utf-8")
        LOGGER.info("Wrote %s slides", count, extra={"path": str(path)})
        return SlideDeckResult(slide_count=count, path=path)

    def thumbnail(self, metadata: CourseMetadata, workspace: Path) -> Path:
        width, height = self.thumbnail_size
        return render_card(
            workspace / "thumbnail.png",
            metadata.title or "Untitled course",
            metadata.target_audience,
            width=width,
            height=height,
        )


__all__ = ["MarkdownSlideMaker", "render_card"]
