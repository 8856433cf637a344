"""
Typed configuration for the coursemill pipeline.

The YAML layout mirrors these models one-to-one; `load_pipeline_config`
resolves relative paths against the config file so the CLI can run from any
working directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

TARGET_ENV = "QUALITY_THRESHOLD_TARGET"
MINIMUM_ENV = "QUALITY_THRESHOLD_MINIMUM"


class QualityThresholds(BaseModel):
    """Ascending score thresholds. Only `minimum` decides pass/fail."""

    target: int = Field(default=95, ge=0, le=100)
    acceptable: int = Field(default=90, ge=0, le=100)
    minimum: int = Field(default=85, ge=0, le=100)

    @model_validator(mode="after")
    def check_order(self) -> "QualityThresholds":
        if not self.minimum <= self.acceptable <= self.target:
            raise ValueError(
                f"Thresholds must satisfy minimum <= acceptable <= target (got {self.minimum}/{self.acceptable}/{self.target})"
            )
        return self


class GateConfig(BaseModel):
    """Heuristic cutoffs used by the lecture and production gates."""

    max_defective_lecture_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    min_lecture_words: int = Field(default=200, ge=0)
    min_lecture_slides: int = Field(default=2, ge=0)
    min_course_minutes: float = Field(default=30, ge=0)
    max_course_minutes: float = Field(default=120, ge=0)
    min_audio_present_ratio: float = Field(default=0.5, ge=0.0, le=1.0)


class GenerationConfig(BaseModel):
    """Retry policy around the content generator."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    accept_minimum_on_exhaustion: bool = Field(
        default=True,
        description="Accept the best attempt at or above the minimum once attempts run out.",
    )


class StageToggles(BaseModel):
    """Which best-effort stages run after generation."""

    narrate: bool = True
    slides: bool = True
    render: bool = True
    quiz: bool = True
    cheatsheet: bool = True
    final_quiz_questions: int = Field(default=15, ge=1, le=100)


class NarrationConfig(BaseModel):
    api_base: str = Field(default="http://localhost:8000")
    api_base_env: str = "TTS_API_URL"
    voice: str = "reference"
    model: str = "tts-1"
    response_format: Literal["mp3", "wav"] = "mp3"
    timeout_seconds: float = Field(default=120.0, gt=0)
    max_chunk_chars: int = Field(default=3000, ge=200)
    chunk_delay_seconds: float = Field(default=0.5, ge=0.0)

    def resolved_api_base(self) -> str:
        return os.getenv(self.api_base_env) or self.api_base


class RenderConfig(BaseModel):
    ffmpeg_binary: str = "ffmpeg"
    width: int = Field(default=1920, ge=320)
    height: int = Field(default=1080, ge=240)
    timeout_seconds: float = Field(default=300.0, gt=0)


class BatchConfig(BaseModel):
    cooldown_seconds: float = Field(default=3.0, ge=0.0)
    default_count: int = Field(default=5, ge=1)
    keep_logs: int = Field(default=50, ge=1)
    prune_logs_over: int = Field(default=100, ge=1)


class CatalogConfig(BaseModel):
    """Where catalog entries, their status map, and course workspaces live."""

    model_config = ConfigDict()

    entries_path: Path = Field(default=Path("config/catalog.yaml"))
    status_path: Path = Field(default=Path("data/status.json"))
    courses_dir: Path = Field(default=Path("data/courses"))

    @field_validator("entries_path", "status_path", "courses_dir", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()


class RoleModelConfig(BaseModel):
    """Provider-specific configuration for a single LM role."""

    model_config = ConfigDict(extra="allow")

    provider: Literal["openai"] = "openai"
    model: str
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=64)
    api_key_env: str | None = None
    api_base: str | None = None
    api_base_env: str | None = None

    @property
    def extra_kwargs(self) -> Dict[str, Any]:
        return getattr(self, "model_extra", {})


class ModelConfig(BaseModel):
    """LM defaults for the course writer and quiz author roles."""

    model_config = ConfigDict(extra="ignore")

    writer: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(model="gpt-4o"))
    quiz: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(model="gpt-4o-mini"))
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=16000, ge=256)

    @model_validator(mode="before")
    @classmethod
    def coerce_flat_format(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        # Accept the shorthand `writer_model: gpt-4o` alongside the nested form.
        for role in ("writer", "quiz"):
            flat = payload.pop(f"{role}_model", None)
            if flat and role not in payload:
                payload[role] = {"provider": "openai", "model": flat}
        return payload

    def get_role(self, role: Literal["writer", "quiz"]) -> RoleModelConfig:
        return getattr(self, role)


class NotificationConfig(BaseModel):
    webhook_url: Optional[str] = None
    webhook_url_env: str = "COURSEMILL_WEBHOOK_URL"
    timeout_seconds: float = Field(default=10.0, gt=0)

    def resolved_webhook_url(self) -> Optional[str]:
        return os.getenv(self.webhook_url_env) or self.webhook_url


class PipelineConfig(BaseModel):
    """Top-level configuration for the orchestrator pipeline."""

    quality: QualityThresholds = Field(default_factory=QualityThresholds)
    gates: GateConfig = Field(default_factory=GateConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    stages: StageToggles = Field(default_factory=StageToggles)
    narration: NarrationConfig = Field(default_factory=NarrationConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_pipeline_paths(data: Dict[str, Any], base_dir: Path) -> None:
    catalog = data.get("catalog")
    if isinstance(catalog, dict):
        for key in ("entries_path", "status_path", "courses_dir"):
            if catalog.get(key):
                catalog[key] = _resolve_config_path(catalog[key], base_dir)
    else:
        data["catalog"] = {
            key: _resolve_config_path(default, base_dir)
            for key, default in (
                ("entries_path", "config/catalog.yaml"),
                ("status_path", "data/status.json"),
                ("courses_dir", "data/courses"),
            )
        }


def apply_threshold_env(config: PipelineConfig) -> PipelineConfig:
    """Apply `QUALITY_THRESHOLD_TARGET` / `QUALITY_THRESHOLD_MINIMUM` overrides."""

    updates: Dict[str, int] = {}
    for env_var, key in ((TARGET_ENV, "target"), (MINIMUM_ENV, "minimum")):
        raw = os.getenv(env_var)
        if raw is None or not raw.strip():
            continue
        try:
            updates[key] = int(raw)
        except ValueError as exc:
            raise ValueError(f"{env_var} must be an integer, got {raw!r}") from exc
    if not updates:
        return config
    payload = {**config.quality.model_dump(), **updates}
    # A single override drags `acceptable` along so the bands stay ordered.
    payload["acceptable"] = min(max(payload["acceptable"], payload["minimum"]), payload["target"])
    try:
        quality = QualityThresholds.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid quality threshold overrides: {updates}") from exc
    return config.model_copy(update={"quality": quality})


def load_pipeline_config(path: Path, *, base_dir: Path | None = None) -> PipelineConfig:
    """Load the full pipeline config used by the run_course CLI."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_pipeline_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid pipeline config in {path}") from exc


__all__ = [
    "BatchConfig",
    "CatalogConfig",
    "GateConfig",
    "GenerationConfig",
    "ModelConfig",
    "NarrationConfig",
    "NotificationConfig",
    "PipelineConfig",
    "QualityThresholds",
    "RenderConfig",
    "RoleModelConfig",
    "StageToggles",
    "apply_threshold_env",
    "load_pipeline_config",
    "read_yaml_file",
]
