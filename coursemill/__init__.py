"""
Core package for the coursemill course production pipeline.

Kept import-light so CLIs and tests can read the version before the
orchestrator, collaborators, or LM runtime are configured.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("coursemill")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
