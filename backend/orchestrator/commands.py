"""
Side-effect command definitions for the session runtime.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.enums.state import State
from protocol.live_messages import ToolInvocation
from session.callbacks import LogSource, Severity

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging, replay,
    and runtime dispatch.
    """

    # Collaborator notifications
    NOTIFY_STATUS = "NOTIFY_STATUS"
    NOTIFY_LOG = "NOTIFY_LOG"
    NOTIFY_ERROR = "NOTIFY_ERROR"

    # Session lifecycle
    OPEN_SESSION = "OPEN_SESSION"
    BIND_SESSION = "BIND_SESSION"
    DISCARD_SESSION = "DISCARD_SESSION"
    START_CAPTURE = "START_CAPTURE"
    START_RECEIVING = "START_RECEIVING"
    TEARDOWN_AUDIO = "TEARDOWN_AUDIO"
    CLOSE_CHANNEL = "CLOSE_CHANNEL"

    # Playback
    ENQUEUE_PLAYBACK = "ENQUEUE_PLAYBACK"
    INTERRUPT_PLAYBACK = "INTERRUPT_PLAYBACK"

    # Tools
    DISPATCH_TOOL = "DISPATCH_TOOL"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Collaborator Notifications
# =============================================================================

@dataclass(frozen=True)
class NotifyStatus(Command):
    """Report a lifecycle transition to the collaborator."""
    state: State
    command_type: CommandType = CommandType.NOTIFY_STATUS


@dataclass(frozen=True)
class NotifyLog(Command):
    """Emit one user-visible log entry."""
    source: LogSource
    severity: Severity
    message: str
    command_type: CommandType = CommandType.NOTIFY_LOG


@dataclass(frozen=True)
class NotifyError(Command):
    """Report a categorised error message."""
    message: str
    command_type: CommandType = CommandType.NOTIFY_ERROR


# =============================================================================
# Session Lifecycle
# =============================================================================

@dataclass(frozen=True)
class OpenSession(Command):
    """
    Start a connect attempt: acquire devices, open the channel.

    Runs in the background; its outcome comes back as ChannelOpened or
    ConnectFailed carrying the same attempt_id.
    """
    attempt_id: int
    command_type: CommandType = CommandType.OPEN_SESSION


@dataclass(frozen=True)
class BindSession(Command):
    """Promote the parked resources of attempt_id to the live session."""
    attempt_id: int
    command_type: CommandType = CommandType.BIND_SESSION


@dataclass(frozen=True)
class DiscardSession(Command):
    """Release the parked resources of a stale attempt."""
    attempt_id: int
    command_type: CommandType = CommandType.DISCARD_SESSION


@dataclass(frozen=True)
class StartCapture(Command):
    """Start pulling microphone frames into the live channel."""
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StartReceiving(Command):
    """Start the inbound message loop of the live channel."""
    attempt_id: int
    command_type: CommandType = CommandType.START_RECEIVING


@dataclass(frozen=True)
class TeardownAudio(Command):
    """Stop capture and playback, release both devices. Idempotent."""
    command_type: CommandType = CommandType.TEARDOWN_AUDIO


@dataclass(frozen=True)
class CloseChannel(Command):
    """Close the live channel, swallowing close-time errors. Idempotent."""
    command_type: CommandType = CommandType.CLOSE_CHANNEL


# =============================================================================
# Playback
# =============================================================================

@dataclass(frozen=True)
class EnqueuePlayback(Command):
    """
    Schedule one response chunk.

    data is the transport-encoded payload exactly as received.
    """
    data: str
    sample_rate_hz: int | None = None
    command_type: CommandType = CommandType.ENQUEUE_PLAYBACK


@dataclass(frozen=True)
class InterruptPlayback(Command):
    """Barge-in: discard all buffered response audio."""
    command_type: CommandType = CommandType.INTERRUPT_PLAYBACK


# =============================================================================
# Tools
# =============================================================================

@dataclass(frozen=True)
class DispatchTool(Command):
    """Run one tool invocation and reply to it."""
    invocation: ToolInvocation
    command_type: CommandType = CommandType.DISPATCH_TOOL


# =============================================================================
# Observability
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
