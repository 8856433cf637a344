"""Pipeline bootstrap utilities for coursemill.

Orchestrator wiring lives in `coursemill.pipeline.runtime`, which imports the
orchestrator package and is therefore not re-exported here.
"""

from __future__ import annotations

from .bootstrap import bootstrap_pipeline
from .context import PipelineContext, PipelinePaths

__all__ = [
    "PipelineContext",
    "PipelinePaths",
    "bootstrap_pipeline",
]
