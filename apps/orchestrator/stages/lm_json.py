"""Helpers for prompting a DSPy LM and reading JSON back."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

LOGGER = logging.getLogger(__name__)


def normalize_lm_output(raw: Any) -> str:
    if isinstance(raw, list):
        return "\n".join(str(part) for part in raw)
    return str(raw)


def extract_json(text: str) -> Dict[str, Any] | None:
    """Return the outermost JSON object in `text`, ignoring surrounding prose or fences."""

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    snippet = text[start : end + 1]
    try:
        data = json.loads(snippet)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def call_lm_json(lm: Any, prompt: str) -> Dict[str, Any]:
    """Call `lm(prompt=...)` and parse a JSON object; raises ValueError when none is found."""

    raw = lm(prompt=prompt)
    data = extract_json(normalize_lm_output(raw))
    if data is None:
        raise ValueError("LM response did not contain a JSON object")
    return data


__all__ = ["call_lm_json", "extract_json", "normalize_lm_output"]
