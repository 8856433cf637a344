"""Build the DSPy LM handles used by the course writer and the quiz author."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import dspy

from coursemill.core.config import ModelConfig, RoleModelConfig

ROLES = ("writer", "quiz")


class DSPyConfigurationError(RuntimeError):
    """Raised when DSPy cannot be configured for the requested run."""


@dataclass(frozen=True, slots=True)
class RoleSettings:
    """Fully resolved LM settings for one role (no env lookups left)."""

    role: str
    model: str
    api_key: str
    temperature: float
    max_tokens: int
    api_base: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def lm_kwargs(self) -> Dict[str, Any]:
        # LiteLLM routes bare model names through the provider prefix.
        model = self.model if "/" in self.model else f"openai/{self.model}"
        kwargs: Dict[str, Any] = {
            "model": model,
            "api_key": self.api_key,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            **self.extra,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs


@dataclass(frozen=True, slots=True)
class DSPyModelHandles:
    """LM handles for the course writer and the quiz author."""

    writer: object
    quiz: object


def _first_env(env: Mapping[str, str], *names: Optional[str]) -> Optional[str]:
    for name in names:
        if name and env.get(name):
            return env[name]
    return None


def resolve_role_settings(
    role: str,
    model_cfg: ModelConfig,
    *,
    api_key: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RoleSettings:
    """Merge role config, model defaults and environment into ``RoleSettings``.

    Keys are looked up as ``<api_key_env>``, ``OPENAI_API_KEY_<ROLE>`` and then
    ``OPENAI_API_KEY``; base URLs follow the same order with ``OPENAI_API_BASE``.
    """

    if role not in ROLES:
        raise DSPyConfigurationError(f"Unknown model role '{role}'")
    role_cfg: RoleModelConfig = getattr(model_cfg, role)
    if role_cfg.provider != "openai":
        raise DSPyConfigurationError(f"Unsupported provider '{role_cfg.provider}' for role '{role}'")

    env = os.environ if env is None else env
    suffix = role.upper()
    key = api_key or _first_env(env, role_cfg.api_key_env, f"OPENAI_API_KEY_{suffix}", "OPENAI_API_KEY")
    if not key:
        hint = role_cfg.api_key_env or f"OPENAI_API_KEY_{suffix}"
        raise DSPyConfigurationError(f"Missing API key for the {role} model; set {hint} or OPENAI_API_KEY.")

    return RoleSettings(
        role=role,
        model=role_cfg.model,
        api_key=key,
        temperature=model_cfg.default_temperature if role_cfg.temperature is None else role_cfg.temperature,
        max_tokens=model_cfg.default_max_tokens if role_cfg.max_tokens is None else role_cfg.max_tokens,
        api_base=role_cfg.api_base
        or _first_env(env, role_cfg.api_base_env, f"OPENAI_API_BASE_{suffix}", "OPENAI_API_BASE"),
        extra=dict(role_cfg.extra_kwargs or {}),
    )


def configure_dspy_models(model_cfg: ModelConfig, *, api_key: str | None = None) -> DSPyModelHandles:
    """Instantiate both LMs; the writer becomes DSPy's default LM."""

    writer = dspy.LM(**resolve_role_settings("writer", model_cfg, api_key=api_key).lm_kwargs())
    quiz = dspy.LM(**resolve_role_settings("quiz", model_cfg, api_key=api_key).lm_kwargs())
    dspy.settings.configure(lm=writer)
    return DSPyModelHandles(writer=writer, quiz=quiz)


__all__ = [
    "DSPyConfigurationError",
    "DSPyModelHandles",
    "RoleSettings",
    "configure_dspy_models",
    "resolve_role_settings",
]
