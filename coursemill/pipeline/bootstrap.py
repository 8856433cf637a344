"""Bootstrap helpers for the coursemill pipeline."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterable

from dotenv import load_dotenv

from coursemill.core.config import PipelineConfig, apply_threshold_env, load_pipeline_config
from coursemill.core.dspy_runtime import DSPyConfigurationError, configure_dspy_models
from coursemill.core.provenance import ProvenanceEvent, ProvenanceLogger

from .context import PipelineContext, PipelinePaths

DEFAULT_CONFIG_PATH = Path("config/pipeline.yaml")
DEFAULT_OUTPUT_DIR = Path("outputs")
OFFLINE_ENV = "COURSEMILL_OFFLINE"
LOGGER = logging.getLogger(__name__)

# CLI skip names -> StageToggles fields.
SKIP_FLAGS: Dict[str, str] = {
    "voice": "narrate",
    "slides": "slides",
    "video": "render",
    "quiz": "quiz",
    "cheatsheet": "cheatsheet",
}


def _capture_env(keys: tuple[str, ...]) -> Dict[str, str]:
    """Return a filtered snapshot of environment variables for provenance."""
    snapshot: Dict[str, str] = {}
    for key in keys:
        value = os.getenv(key)
        if value is not None:
            snapshot[key] = value
    return snapshot


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def apply_stage_skips(config: PipelineConfig, skip: Iterable[str]) -> PipelineConfig:
    """Disable the stages named by CLI skip flags (``voice``, ``video``...)."""

    updates: Dict[str, bool] = {}
    for name in skip:
        field = SKIP_FLAGS.get(name)
        if field is None:
            raise ValueError(f"Unknown stage to skip: {name!r} (choose from {', '.join(SKIP_FLAGS)})")
        updates[field] = False
    if not updates:
        return config
    return config.model_copy(update={"stages": config.stages.model_copy(update=updates)})


def bootstrap_pipeline(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    output_dir: Path | None = None,
    offline: bool | None = None,
    skip: Iterable[str] = (),
    env_keys: tuple[str, ...] = ("OPENAI_API_KEY", "TTS_API_URL", "QUALITY_THRESHOLD_TARGET", "QUALITY_THRESHOLD_MINIMUM"),
) -> PipelineContext:
    """
    Load configuration, environment variables, and construct the pipeline context.

    Parameters
    ----------
    config_path:
        Path to the pipeline YAML. Defaults to ``config/pipeline.yaml`` under
        the repo root; built-in defaults are used when that file is absent.
    repo_root:
        Root of the repository. Defaults to ``Path.cwd()``.
    output_dir:
        Directory for run logs and results. Defaults to ``repo_root / 'outputs'``.
    offline:
        Skip LM configuration. Defaults to the ``COURSEMILL_OFFLINE`` env flag.
    skip:
        CLI stage names to disable (see `SKIP_FLAGS`).
    """

    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")
    offline = _env_flag(OFFLINE_ENV) if offline is None else offline

    if config_path is not None:
        config = load_pipeline_config(config_path.resolve(), base_dir=repo_root)
    elif (repo_root / DEFAULT_CONFIG_PATH).exists():
        config = load_pipeline_config(repo_root / DEFAULT_CONFIG_PATH, base_dir=repo_root)
    else:
        LOGGER.info("No pipeline config at %s; using defaults", repo_root / DEFAULT_CONFIG_PATH)
        config = PipelineConfig.model_validate({"catalog": _default_catalog(repo_root)})
    config = apply_stage_skips(apply_threshold_env(config), skip)

    paths = PipelinePaths.under(repo_root, output_dir=(output_dir or repo_root / DEFAULT_OUTPUT_DIR))
    paths.ensure_directories()
    ctx = PipelineContext(
        config=config,
        paths=paths,
        env=_capture_env(env_keys),
        provenance=ProvenanceLogger(paths.logs_dir / "provenance.jsonl"),
        offline=offline,
    )

    if offline:
        LOGGER.info("Offline mode: LM roles not configured")
    else:
        try:
            ctx.dspy_handles = configure_dspy_models(config.models)
        except DSPyConfigurationError as exc:
            raise RuntimeError("Unable to configure DSPy/OpenAI models") from exc

    ctx.provenance.log(
        ProvenanceEvent(
            stage="bootstrap",
            message="Pipeline bootstrapped",
            agent="coursemill.pipeline",
            payload={
                "offline": offline,
                "writer_model": config.models.writer.model,
                "quiz_model": config.models.quiz.model,
                "thresholds": config.quality.model_dump(),
                "stages": config.stages.model_dump(),
            },
        )
    )
    return ctx


def _default_catalog(repo_root: Path) -> Dict[str, str]:
    return {
        "entries_path": str(repo_root / "config" / "catalog.yaml"),
        "status_path": str(repo_root / "data" / "status.json"),
        "courses_dir": str(repo_root / "data" / "courses"),
    }


__all__ = ["DEFAULT_CONFIG_PATH", "OFFLINE_ENV", "SKIP_FLAGS", "apply_stage_skips", "bootstrap_pipeline"]
