"""
Pure session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).

Transitions:
    DISCONNECTED --ConnectRequested--> CONNECTING
    ERROR        --ConnectRequested--> CONNECTING
    CONNECTING   --ChannelOpened-----> CONNECTED
    CONNECTING   --ConnectFailed-----> ERROR
    CONNECTED    --ConnectFailed-----> ERROR          (capture failed to start)
    CONNECTED    --ChannelClosed-----> DISCONNECTED
    any          --DisconnectRequested--> DISCONNECTED
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from orchestrator.commands import (
    BindSession,
    CloseChannel,
    Command,
    DiscardSession,
    DispatchTool,
    EnqueuePlayback,
    InterruptPlayback,
    LogEvent,
    NotifyError,
    NotifyLog,
    NotifyStatus,
    OpenSession,
    StartCapture,
    StartReceiving,
    TeardownAudio,
)
from orchestrator.enums.state import State
from orchestrator.events import (
    AttemptEvent,
    ChannelClosed,
    ChannelOpened,
    ConnectFailed,
    ConnectRequested,
    DisconnectRequested,
    Event,
    ServerMessageReceived,
    TransportFault,
)
from orchestrator.state_dataclass import SessionState
from session.callbacks import LogSource, Severity
from spec import ERROR_TRANSPORT_INTERRUPTED

# =============================================================================
# User-visible log text
# =============================================================================

MSG_ONLINE = "Live session online"
MSG_OFFLINE = "Live session offline"
MSG_ATTEMPT_CANCELLED = "Connection attempt cancelled"
MSG_INTERRUPTED = "Output interrupted"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "attempt_id": state.attempt_id,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _state_changed(
    old: SessionState, new: SessionState, event: Event, source: str
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": old.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _ignore(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _system(severity: Severity, message: str) -> NotifyLog:
    return NotifyLog(source=LogSource.SYSTEM, severity=severity, message=message)


def _is_current(state: SessionState, event: AttemptEvent) -> bool:
    return event.attempt_id == state.attempt_id


# =============================================================================
# Reducer
# =============================================================================

def reduce(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the live session state machine.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Version-safe: ignores events from stale connect attempts
    """
    if isinstance(event, DisconnectRequested):
        return _on_disconnect(state, event)

    if isinstance(event, ConnectRequested):
        return _on_connect(state, event)

    if isinstance(event, ChannelOpened):
        return _on_channel_opened(state, event)

    if isinstance(event, ConnectFailed):
        return _on_connect_failed(state, event)

    if isinstance(event, ServerMessageReceived):
        return _on_server_message(state, event)

    if isinstance(event, TransportFault):
        return _on_transport_fault(state, event)

    if isinstance(event, ChannelClosed):
        return _on_channel_closed(state, event)

    return _ignore(state, event, "unknown_event")


# =============================================================================
# Caller control
# =============================================================================

def _on_connect(
    state: SessionState, event: ConnectRequested
) -> tuple[SessionState, tuple[Command, ...]]:
    if state.state in (State.CONNECTING, State.CONNECTED):
        return _ignore(state, event, f"already_{state.state.value.lower()}")

    new_state = replace(
        state,
        state=State.CONNECTING,
        attempt_id=state.attempt_id + 1,
        last_error=None,
    )
    return new_state, _logs_last((
        NotifyStatus(State.CONNECTING),
        OpenSession(attempt_id=new_state.attempt_id),
        _state_changed(state, new_state, event, "connect"),
    ))


def _on_disconnect(
    state: SessionState, event: DisconnectRequested
) -> tuple[SessionState, tuple[Command, ...]]:
    # Teardown always runs; it is idempotent and covers a session that
    # is half-way through a remote close.
    commands: list[Command] = [TeardownAudio(), CloseChannel()]

    if state.state is State.DISCONNECTED:
        commands.append(_log(state, event, "already_disconnected"))
        return state, _logs_last(tuple(commands))

    # Bumping the attempt invalidates a connect still in flight.
    new_state = replace(
        state,
        state=State.DISCONNECTED,
        attempt_id=state.attempt_id + 1,
    )
    commands.append(NotifyStatus(State.DISCONNECTED))

    if state.state is State.CONNECTED:
        commands.append(_system(Severity.WARNING, MSG_OFFLINE))
    elif state.state is State.CONNECTING:
        commands.append(_system(Severity.INFO, MSG_ATTEMPT_CANCELLED))

    commands.append(_state_changed(state, new_state, event, "disconnect"))
    return new_state, _logs_last(tuple(commands))


# =============================================================================
# Connect attempt outcome
# =============================================================================

def _on_channel_opened(
    state: SessionState, event: ChannelOpened
) -> tuple[SessionState, tuple[Command, ...]]:
    if not _is_current(state, event) or state.state is not State.CONNECTING:
        # The caller gave up on this attempt; release what it acquired.
        return state, (
            DiscardSession(attempt_id=event.attempt_id),
            _log(state, event, "ignore", {
                "reason": "stale_attempt",
                "event_attempt_id": event.attempt_id,
            }),
        )

    new_state = replace(state, state=State.CONNECTED)
    return new_state, _logs_last((
        BindSession(attempt_id=event.attempt_id),
        NotifyStatus(State.CONNECTED),
        _system(Severity.SUCCESS, MSG_ONLINE),
        StartCapture(),
        StartReceiving(attempt_id=event.attempt_id),
        _state_changed(state, new_state, event, "channel_opened"),
    ))


def _on_connect_failed(
    state: SessionState, event: ConnectFailed
) -> tuple[SessionState, tuple[Command, ...]]:
    if not _is_current(state, event) or state.state not in (State.CONNECTING, State.CONNECTED):
        return _ignore(state, event, "stale_attempt")

    # CONNECTED here means capture failed to start right after open;
    # the bound session has to be torn down.
    teardown: tuple[Command, ...] = ()
    if state.state is State.CONNECTED:
        teardown = (TeardownAudio(), CloseChannel())

    new_state = replace(state, state=State.ERROR, last_error=event.message)
    return new_state, _logs_last((
        *teardown,
        NotifyStatus(State.ERROR),
        NotifyError(event.message),
        _system(Severity.ERROR, f"Connection failed: {event.message}"),
        _log(new_state, event, "connect_failed", {
            "message": event.message,
            "detail": event.detail,
        }),
        _state_changed(state, new_state, event, "connect_failed"),
    ))


# =============================================================================
# Live channel
# =============================================================================

def _on_server_message(
    state: SessionState, event: ServerMessageReceived
) -> tuple[SessionState, tuple[Command, ...]]:
    if not _is_current(state, event) or state.state is not State.CONNECTED:
        return _ignore(state, event, "not_connected")

    message = event.message
    commands: list[Command] = []

    # Tool calls first, then audio, then the interruption flag.
    for invocation in message.tool_calls:
        commands.append(NotifyLog(
            source=LogSource.ASSISTANT,
            severity=Severity.INFO,
            message=f"Executing tool: {invocation.name or invocation.id}",
        ))
        commands.append(DispatchTool(invocation=invocation))

    for chunk in message.audio_chunks:
        commands.append(EnqueuePlayback(data=chunk.data, sample_rate_hz=chunk.sample_rate_hz))

    if message.interrupted:
        commands.append(InterruptPlayback())
        commands.append(_system(Severity.WARNING, MSG_INTERRUPTED))

    if not commands:
        return _ignore(state, event, "nothing_to_handle")

    return state, tuple(commands)


def _on_transport_fault(
    state: SessionState, event: TransportFault
) -> tuple[SessionState, tuple[Command, ...]]:
    if not _is_current(state, event) or state.state is not State.CONNECTED:
        return _ignore(state, event, "not_connected")

    # Reported only; audio keeps running until the close arrives.
    return state, _logs_last((
        NotifyError(ERROR_TRANSPORT_INTERRUPTED),
        _system(Severity.ERROR, f"Protocol error detected: {ERROR_TRANSPORT_INTERRUPTED}"),
        _log(state, event, "transport_fault", {"reason": event.reason}),
    ))


def _on_channel_closed(
    state: SessionState, event: ChannelClosed
) -> tuple[SessionState, tuple[Command, ...]]:
    if not _is_current(state, event) or state.state is not State.CONNECTED:
        return _ignore(state, event, "not_connected")

    new_state = replace(state, state=State.DISCONNECTED)
    return new_state, _logs_last((
        TeardownAudio(),
        CloseChannel(),
        NotifyStatus(State.DISCONNECTED),
        _system(Severity.WARNING, MSG_OFFLINE),
        _log(new_state, event, "channel_closed", {"reason": event.reason}),
        _state_changed(state, new_state, event, "channel_closed"),
    ))
