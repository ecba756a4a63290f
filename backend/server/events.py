"""
Fan-out of session callbacks to WebSocket subscribers.

Each subscriber gets its own bounded queue. A slow panel loses its oldest
messages, never blocks the session.
"""

from __future__ import annotations

import asyncio
from typing import Any

from orchestrator.enums.state import State
from session.callbacks import LogEntry, SessionCallbacks
from spec import EVENT_SUBSCRIBER_QUEUE_MAX


class EventBroadcaster:
    """Publishes {"type": status|level|log|error, ...} messages."""

    def __init__(self, *, max_queue: int = EVENT_SUBSCRIBER_QUEUE_MAX) -> None:
        self._max_queue = max_queue
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def publish(self, message: dict[str, Any]) -> None:
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)

    # ------------------------------------------------------------------
    # SessionCallbacks adapter
    # ------------------------------------------------------------------

    def callbacks(self) -> SessionCallbacks:
        return SessionCallbacks(
            on_status_change=self._on_status_change,
            on_audio_level=self._on_audio_level,
            on_log=self._on_log,
            on_error=self._on_error,
        )

    def _on_status_change(self, state: State) -> None:
        self.publish({"type": "status", "state": state.value})

    def _on_audio_level(self, level: float) -> None:
        self.publish({"type": "level", "value": round(level, 4)})

    def _on_log(self, entry: LogEntry) -> None:
        self.publish({"type": "log", **entry.to_dict()})

    def _on_error(self, message: str) -> None:
        self.publish({"type": "error", "message": message})
