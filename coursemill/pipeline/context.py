"""Shared context objects for the coursemill pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coursemill.core.config import PipelineConfig
from coursemill.core.provenance import ProvenanceLogger


class PipelinePaths(BaseModel):
    """Canonical directories used during a pipeline run."""

    repo_root: Path
    output_dir: Path
    logs_dir: Path

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("repo_root", "output_dir", "logs_dir", mode="before")
    @classmethod
    def _expand(cls, value: Path | str) -> Path:
        return Path(value).expanduser().resolve()

    @classmethod
    def under(cls, root: Path, *, output_dir: Path | None = None) -> "PipelinePaths":
        output_dir = output_dir or root / "outputs"
        return cls(repo_root=root, output_dir=output_dir, logs_dir=output_dir / "logs")

    def ensure_directories(self) -> None:
        """Create directories if they do not yet exist."""
        for path in (self.output_dir, self.logs_dir):
            path.mkdir(parents=True, exist_ok=True)


class PipelineContext(BaseModel):
    """Aggregated runtime context for orchestrator execution."""

    config: PipelineConfig
    paths: PipelinePaths
    env: Dict[str, str] = Field(default_factory=dict)
    provenance: ProvenanceLogger
    offline: bool = False
    dspy_handles: Optional[object] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def for_directory(cls, root: Path, config: PipelineConfig | None = None, *, offline: bool = True) -> "PipelineContext":
        """Context rooted at `root` with default config; used by tests and scripts."""

        paths = PipelinePaths.under(root)
        paths.ensure_directories()
        return cls(
            config=config or PipelineConfig(),
            paths=paths,
            provenance=ProvenanceLogger(paths.logs_dir / "provenance.jsonl"),
            offline=offline,
        )
