"""
Authoritative session lifecycle enumeration.

Rules:
- This enum defines ONLY the lifecycle states of the live session.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    Lifecycle of the single duplex session.

    DISCONNECTED is both initial and terminal.
    ERROR is entered only when a connect attempt fails; the next connect()
    leaves it.
    """

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"
