"""Markdown cheat sheet export."""

from __future__ import annotations

from pathlib import Path
from typing import List

from coursemill.core.content import ContentArtifact


class MarkdownCheatSheetBuilder:
    """Writes ``cheatsheet.md``, deriving one from the outline when the course has none."""

    filename = "cheatsheet.md"

    def build(self, artifact: ContentArtifact, workspace: Path) -> Path:
        title = artifact.metadata.title or "Course"
        lines: List[str] = []
        sheet = artifact.cheat_sheet
        if sheet and sheet.sections:
            lines += [f"# {sheet.title or f'{title} Quick Reference'}", ""]
            for block in sheet.sections:
                lines += [f"## {block.heading}", ""]
                lines += [f"- {item}" for item in block.items]
                lines.append("")
        else:
            lines += [f"# {title} Quick Reference", ""]
            if artifact.metadata.objectives:
                lines += ["## Objectives", ""]
                lines += [f"- {objective}" for objective in artifact.metadata.objectives]
                lines.append("")
            for section in artifact.sections:
                lines += [f"## {section.title}", ""]
                lines += [f"- {lecture.title}" for lecture in section.lectures]
                lines.append("")

        path = workspace / self.filename
        path.write_text("\n".join(lines), encoding="utf-8")
        return path


__all__ = ["MarkdownCheatSheetBuilder"]
