"""
Event definitions for the session reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior, no live resources).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Channel events carry the attempt_id of the connect attempt that produced
them; the reducer ignores events from any attempt but the current one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from protocol.live_messages import ServerMessage


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Caller control
    # ------------------------------------------------------------------
    CONNECT_REQUESTED = "CONNECT_REQUESTED"
    DISCONNECT_REQUESTED = "DISCONNECT_REQUESTED"

    # ------------------------------------------------------------------
    # Connect attempt outcome
    # ------------------------------------------------------------------
    CHANNEL_OPENED = "CHANNEL_OPENED"
    CONNECT_FAILED = "CONNECT_FAILED"

    # ------------------------------------------------------------------
    # Live channel
    # ------------------------------------------------------------------
    SERVER_MESSAGE = "SERVER_MESSAGE"
    TRANSPORT_FAULT = "TRANSPORT_FAULT"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class AttemptEvent(Event):
    """
    Base class for events produced by one connect attempt.

    The reducer MUST ignore events whose attempt_id does not match the
    current attempt.
    """

    attempt_id: int


# =============================================================================
# Caller Control
# =============================================================================

@dataclass(frozen=True)
class ConnectRequested(Event):
    """Caller asked for a session."""


@dataclass(frozen=True)
class DisconnectRequested(Event):
    """Caller asked to end the session. Valid in every state."""


# =============================================================================
# Connect Attempt Outcome
# =============================================================================

@dataclass(frozen=True)
class ChannelOpened(AttemptEvent):
    """
    Devices were acquired and the service acknowledged setup.

    The resources themselves are parked in the runtime under attempt_id.
    """


@dataclass(frozen=True)
class ConnectFailed(AttemptEvent):
    """
    The attempt failed. Everything it acquired is already released.

    message:
        Categorised user-facing text.
    detail:
        Raw exception text for the JSONL log.
    """

    message: str
    detail: str = ""


# =============================================================================
# Live Channel
# =============================================================================

@dataclass(frozen=True)
class ServerMessageReceived(AttemptEvent):
    """One demultiplexed inbound message."""

    message: ServerMessage


@dataclass(frozen=True)
class TransportFault(AttemptEvent):
    """Mid-session communication error. A close usually follows."""

    reason: str


@dataclass(frozen=True)
class ChannelClosed(AttemptEvent):
    """The remote side closed the channel (or it dropped)."""

    reason: str = ""
