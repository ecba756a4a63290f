"""
Authoritative session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.

Imperative session state (mute flag, playback cursor, live channel) is
owned by the pipelines and the runtime, not by this snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import State


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all reducer-owned state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: State = State.DISCONNECTED

    # ------------------------------------------------------------------
    # Attempt tracking
    # ------------------------------------------------------------------
    # Bumped on every ConnectRequested accepted and on every disconnect;
    # events tagged with any other value are stale.
    attempt_id: int = 0

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
