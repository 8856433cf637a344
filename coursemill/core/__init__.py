"""
Foundational configuration, content model, and logging utilities for coursemill.

The orchestrator, gate chain, and CLIs depend on these modules; nothing here
imports from ``apps``.
"""

from .config import PipelineConfig, QualityThresholds, load_pipeline_config
from .content import ContentArtifact, structural_issues
from .provenance import ProvenanceEvent, ProvenanceLogger

__all__ = [
    "ContentArtifact",
    "PipelineConfig",
    "ProvenanceEvent",
    "ProvenanceLogger",
    "QualityThresholds",
    "load_pipeline_config",
    "structural_issues",
]
