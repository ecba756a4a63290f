"""
Live session container.

- Holds the resources of one connect attempt: capture device handle,
  output sink, live channel, receive-loop task.
- Created by the runtime when an attempt succeeds, dropped on
  disconnect / close / error.
- NOT a state machine. Contains no orchestration logic.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from adapters.live.base import LiveChannel
from audio.devices import CaptureHandle, OutputSink


def new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


@dataclass
class LiveSession:
    """Mutable runtime container for a single live session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    attempt_id: int
    session_id: str = field(default_factory=new_session_id)
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Acquired resources
    # ------------------------------------------------------------------

    capture_handle: CaptureHandle | None = None
    sink: OutputSink | None = None
    channel: LiveChannel | None = None

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    receive_task: asyncio.Task[None] | None = None

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "attempt_id": self.attempt_id,
        }
