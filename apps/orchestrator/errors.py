"""Exception types raised by the orchestrator and its reference collaborators."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for orchestrator failures."""


class CourseSelectionError(PipelineError):
    """No catalog entry matched the selector; the only error a run lets escape."""

    def __init__(self, message: str, *, selector: object | None = None) -> None:
        super().__init__(message)
        self.selector = selector


class GenerationError(PipelineError):
    """Content generation never produced a course at or above the minimum score."""

    def __init__(self, message: str, *, attempts: int = 0, history: list | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.history = list(history or [])


class CollaboratorError(PipelineError):
    """A stage collaborator could not complete its call."""


class ServiceUnavailableError(CollaboratorError):
    """An external service (speech endpoint, LM provider) did not respond."""


class RenderError(CollaboratorError):
    """The video renderer exited with an error or timed out."""


__all__ = [
    "CollaboratorError",
    "CourseSelectionError",
    "GenerationError",
    "PipelineError",
    "RenderError",
    "ServiceUnavailableError",
]
