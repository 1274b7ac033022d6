"""Data models for build progress events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json

COMPLETE_PREFIX = "COMPLETE:"
ERROR_PREFIX = "ERROR:"


class EventKind(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    index: int
    text: str
    kind: EventKind = EventKind.PROGRESS

    @property
    def is_terminal(self) -> bool:
        return self.kind != EventKind.PROGRESS

    @property
    def message(self) -> str:
        """Text as transmitted on the wire, terminal prefixes included."""
        if self.kind == EventKind.COMPLETE:
            return f"{COMPLETE_PREFIX}{self.text}"
        if self.kind == EventKind.ERROR:
            return f"{ERROR_PREFIX}{self.text}"
        return self.text

    def to_frame(self) -> str:
        return f"data: {json.dumps({'message': self.message})}\n\n"
