"""Reference collaborators for each pipeline stage."""

from .cheatsheet import MarkdownCheatSheetBuilder
from .narrator import SpeechNarrator
from .notifiers import LoggingNotifier, WebhookNotifier
from .quiz import LMQuizAuthor, fallback_assessment
from .renderer import FFmpegRenderer
from .slides import MarkdownSlideMaker
from .writer import LMCourseWriter, TemplateCourseWriter

__all__ = [
    "FFmpegRenderer",
    "LMCourseWriter",
    "LMQuizAuthor",
    "LoggingNotifier",
    "MarkdownCheatSheetBuilder",
    "MarkdownSlideMaker",
    "SpeechNarrator",
    "TemplateCourseWriter",
    "WebhookNotifier",
    "fallback_assessment",
]
