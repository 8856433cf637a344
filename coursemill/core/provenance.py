"""Append-only JSONL run log for coursemill pipeline runs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

from pydantic import BaseModel, Field


class ProvenanceEvent(BaseModel):
    """Structured record for one pipeline event."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage: str = Field(..., description="Pipeline stage, e.g. 'select', 'generate' or 'gate'.")
    message: str = Field(..., description="Human-readable description of the event.")
    agent: str = Field(default="orchestrator")
    level: str = Field(default="info")
    payload: Dict[str, Any] = Field(default_factory=dict)


class ProvenanceLogger:
    """Append-only JSONL logger; lines are never rewritten once written."""

    def __init__(self, output_path: Path):
        self.output_path = output_path
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: ProvenanceEvent | Dict[str, Any]) -> ProvenanceEvent:
        """Write a single event to disk and return the normalized object."""
        if not isinstance(event, ProvenanceEvent):
            event = ProvenanceEvent(**event)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def extend(self, events: Iterable[ProvenanceEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def read(self) -> List[ProvenanceEvent]:
        return list(self.iter_events())

    def iter_events(self) -> Iterator[ProvenanceEvent]:
        if not self.output_path.exists():
            return
        with self.output_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if line.strip():
                    yield ProvenanceEvent.model_validate_json(line)


__all__ = ["ProvenanceEvent", "ProvenanceLogger"]
