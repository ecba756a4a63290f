"""
Outbound collaborator surface.

The session core reports everything user-visible through four callbacks:
status changes, audio level, log entries and error messages. The
presentation layer (server event broadcaster, tests) supplies them.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from orchestrator.enums.state import State


class LogSource(str, Enum):
    """Who a log line is attributed to."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Severity(str, Enum):
    """Display severity of a log line."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """One line for the operator-facing log panel."""
    id: str
    timestamp: str
    source: LogSource
    message: str
    severity: Severity

    @staticmethod
    def create(source: LogSource, severity: Severity, message: str) -> LogEntry:
        """Stamp a new entry with a unique id and the local wall-clock time."""
        return LogEntry(
            id=uuid.uuid4().hex,
            timestamp=time.strftime("%H:%M:%S"),
            source=source,
            message=message,
            severity=severity,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for the event stream."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "source": self.source.value,
            "message": self.message,
            "severity": self.severity.value,
        }


def _ignore(*_: Any) -> None:
    return None


@dataclass(frozen=True)
class SessionCallbacks:
    """
    on_status_change:
        Called with the new lifecycle state on every transition.
    on_audio_level:
        Called with a loudness value in [0, 1] for mic and speaker audio.
    on_log:
        Called with every user-visible log entry.
    on_error:
        Called with a categorised, human-readable error message.

    All callbacks run on the event loop and must not block.
    """
    on_status_change: Callable[[State], None] = field(default=_ignore)
    on_audio_level: Callable[[float], None] = field(default=_ignore)
    on_log: Callable[[LogEntry], None] = field(default=_ignore)
    on_error: Callable[[str], None] = field(default=_ignore)
