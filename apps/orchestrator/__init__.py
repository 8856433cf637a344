"""Quality-gated course orchestration: scorer, gates, orchestrator, batch."""
from .batch import BatchController, BatchReport
from .catalog import CatalogEntry, CourseCatalog, CourseStatus
from .collaborators import Collaborators, RetryFeedback
from .errors import CourseSelectionError, PipelineError
from .gates import ChainResult, GateChain, run_gates
from .pipeline import Orchestrator, RunSelector
from .quality import ProductionMeta, QualityEvaluation, QualityScorer, format_quality_report
from .results import RunResult, StageOutcome, StageStatus

__all__ = [
    "BatchController",
    "BatchReport",
    "CatalogEntry",
    "ChainResult",
    "Collaborators",
    "CourseCatalog",
    "CourseSelectionError",
    "CourseStatus",
    "GateChain",
    "Orchestrator",
    "PipelineError",
    "ProductionMeta",
    "QualityEvaluation",
    "QualityScorer",
    "RetryFeedback",
    "RunResult",
    "RunSelector",
    "StageOutcome",
    "StageStatus",
    "format_quality_report",
    "run_gates",
]
