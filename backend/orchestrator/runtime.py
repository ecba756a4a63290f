"""
Runtime execution shell for the live session.

Responsibilities:
- Own reducer state
- Consume events from one queue, in arrival order, on one loop task
- Call the pure reducer
- Execute commands with side effects (devices, channel, pipelines, tools)
- Turn background outcomes (connect attempt, receive loop) into events

Non-responsibilities:
- Lifecycle decisions (reducer)
- Public API surface (SessionGateway)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from adapters.live.base import LiveChannel
from audio.devices import CaptureHandle, OutputSink
from audio.pcm import AudioCodecError, decode_transport
from observability.logger import log_event
from observability.metrics import timed
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
    ChannelClosed,
    ChannelOpened,
    ConnectFailed,
    Event,
    EventType,
    ServerMessageReceived,
    TransportFault,
)
from orchestrator.reducer import reduce
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import SessionState
from session.callbacks import LogEntry, LogSource, Severity
from session.failures import describe_connect_failure
from session.voice_session import LiveSession
from spec import CHANNEL_CLOSE_TIMEOUT_S


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


_QueueItem = tuple[Event, "asyncio.Future[None] | None"]


class Runtime:
    """
    Runtime execution boundary for the live session.

    Architectural role:
    Runtime is the bridge between the pure orchestration layer
    (reducer + immutable state) and the imperative world
    (devices, WebSocket, callbacks, time).

    Guarantees:
    - Reducer is called exactly once per event, on the loop task only
    - State is updated before any side effects execute
    - Commands are executed in reducer-emitted order
    - Nothing raised by a command escapes the loop task
    """

    def __init__(
        self,
        *,
        context: RuntimeExecutionContext,
        initial_state: SessionState | None = None,
    ) -> None:
        self._state = initial_state or SessionState()
        self._ctx = context

        self._queue: asyncio.Queue[_QueueItem] = asyncio.Queue()
        self._loop_task: asyncio.Task[None] | None = None

        # attempt_id -> resources of an attempt that opened but is not bound yet
        self._pending: dict[int, LiveSession] = {}
        self._open_tasks: set[asyncio.Task[None]] = set()
        self._send_tasks: set[asyncio.Task[None]] = set()
        self._settle_waiters: list[asyncio.Future[None]] = []

    @property
    def state(self) -> SessionState:
        """
        Return the current immutable session state.

        Consumers must never modify this state directly.
        """
        return self._state

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the event loop task. Idempotent. Needs a running loop."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run())

    async def shutdown(self) -> None:
        """
        Stop the event loop task.

        Waits for connect attempts still in flight and releases whatever
        they acquired. The gateway disconnects before calling this.
        """
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._open_tasks:
            await asyncio.gather(*list(self._open_tasks), return_exceptions=True)
        for attempt_id in list(self._pending):
            await self._discard(attempt_id)

        self._resolve_settle_waiters()

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def post(self, event: Event) -> None:
        """Queue an event without waiting for it. Safe from any loop task."""
        self._queue.put_nowait((event, None))

    async def dispatch(self, event: Event) -> None:
        """
        Queue an event and wait until its commands have executed.

        Must not be called from the runtime loop task itself.
        """
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((event, done))
        await done

    async def wait_settled(self) -> None:
        """Wait until the current connect attempt succeeded or failed."""
        while self._state.state is State.CONNECTING and self.running:
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._settle_waiters.append(waiter)
            await waiter

    async def _run(self) -> None:
        while True:
            event, done = await self._queue.get()
            try:
                await self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "RUNTIME_EVENT_ERROR",
                    "handled_event": event.event_type.value,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            finally:
                if done is not None and not done.done():
                    done.set_result(None)

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands sequentially
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

        if self._state.state is not State.CONNECTING:
            self._resolve_settle_waiters()

    def _resolve_settle_waiters(self) -> None:
        waiters, self._settle_waiters = self._settle_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    # ------------------------------------------------------------------
    # Imperative helpers (no reducer involvement)
    # ------------------------------------------------------------------

    def emit_log(self, source: LogSource, severity: Severity, message: str) -> None:
        """Publish one user-visible log entry (JSONL + collaborator)."""
        entry = LogEntry.create(source, severity, message)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "session_log",
            "session_id": self._ctx.session_id,
            "source": entry.source.value,
            "severity": entry.severity.value,
            "message": entry.message,
        })
        self._notify(self._ctx.callbacks.on_log, entry)

    def set_muted(self, muted: bool) -> None:
        """Local, instantaneous mute toggle."""
        if self._ctx.capture.muted == muted:
            return
        self._ctx.capture.set_muted(muted)
        self.emit_log(
            LogSource.SYSTEM,
            Severity.WARNING if muted else Severity.INFO,
            "Audio input disabled" if muted else "Audio input enabled",
        )

    def _notify(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CALLBACK_ERROR",
                "callback": getattr(callback, "__name__", repr(callback)),
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, NotifyStatus):
            self._notify(self._ctx.callbacks.on_status_change, cmd.state)

        elif isinstance(cmd, NotifyLog):
            self.emit_log(cmd.source, cmd.severity, cmd.message)

        elif isinstance(cmd, NotifyError):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "session_error",
                "session_id": self._ctx.session_id,
                "message": cmd.message,
            })
            self._notify(self._ctx.callbacks.on_error, cmd.message)

        elif isinstance(cmd, OpenSession):
            task = asyncio.create_task(self._open_session(cmd.attempt_id))
            self._open_tasks.add(task)
            task.add_done_callback(self._open_tasks.discard)

        elif isinstance(cmd, BindSession):
            session = self._pending.pop(cmd.attempt_id)
            self._ctx.session = session
            assert session.sink is not None, "bound session without sink"
            self._ctx.playback.start(session.sink)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "session_bound",
                **session.log_context(),
            })

        elif isinstance(cmd, DiscardSession):
            await self._discard(cmd.attempt_id)

        elif isinstance(cmd, StartCapture):
            self._start_capture()

        elif isinstance(cmd, StartReceiving):
            session = self._ctx.session
            if session is None or session.channel is None:
                return
            session.receive_task = asyncio.create_task(
                self._receive_loop(cmd.attempt_id, session.channel)
            )

        elif isinstance(cmd, EnqueuePlayback):
            try:
                chunk_bytes = decode_transport(cmd.data)
                self._ctx.playback.enqueue(chunk_bytes, sample_rate_hz=cmd.sample_rate_hz)
            except (AudioCodecError, ValueError) as exc:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "playback_chunk_rejected",
                    "session_id": self._ctx.session_id,
                    "message": str(exc),
                })

        elif isinstance(cmd, InterruptPlayback):
            self._ctx.playback.interrupt()

        elif isinstance(cmd, DispatchTool):
            session = self._ctx.session
            if session is None or session.channel is None:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "tool_dispatch_skipped",
                    "tool": cmd.invocation.name,
                    "id": cmd.invocation.id,
                })
                return
            self._ctx.tools.spawn(cmd.invocation, session.channel, session_id=session.session_id)

        elif isinstance(cmd, TeardownAudio):
            self._ctx.capture.stop()
            self._ctx.playback.stop()

        elif isinstance(cmd, CloseChannel):
            session, self._ctx.session = self._ctx.session, None
            if session is not None:
                await self._close_session(session)

        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "command_type": type(cmd).__name__,
            })

    # ------------------------------------------------------------------
    # Connect attempt
    # ------------------------------------------------------------------

    async def _open_session(self, attempt_id: int) -> None:
        """
        Acquire both devices and open the channel, then report back.

        On failure everything acquired so far is released before
        ConnectFailed is posted.
        """
        session = LiveSession(attempt_id=attempt_id)
        try:
            with timed("live_connect", session_id=session.session_id, details={"attempt_id": attempt_id}):
                session.capture_handle = await asyncio.to_thread(self._ctx.capture_device.acquire)
                session.sink = await asyncio.to_thread(self._ctx.output_device.acquire)
                session.channel = await self._ctx.transport.open(self._ctx.session_config)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self._release(session)
            self.post(ConnectFailed(
                event_type=EventType.CONNECT_FAILED,
                ts_ms=_now_ms(),
                attempt_id=attempt_id,
                message=describe_connect_failure(exc),
                detail=f"{type(exc).__name__}: {exc}",
            ))
            return

        self._pending[attempt_id] = session
        self.post(ChannelOpened(
            event_type=EventType.CHANNEL_OPENED,
            ts_ms=_now_ms(),
            attempt_id=attempt_id,
        ))

    def _start_capture(self) -> None:
        session = self._ctx.session
        if session is None or session.capture_handle is None:
            return
        try:
            self._ctx.capture.start(session.capture_handle, self._send_frame)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Still part of the connect sequence: report it as a failed attempt.
            self.post(ConnectFailed(
                event_type=EventType.CONNECT_FAILED,
                ts_ms=_now_ms(),
                attempt_id=session.attempt_id,
                message=describe_connect_failure(exc),
                detail=f"{type(exc).__name__}: {exc}",
            ))

    async def _discard(self, attempt_id: int) -> None:
        session = self._pending.pop(attempt_id, None)
        if session is None:
            return
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "session_discarded",
            **session.log_context(),
        })
        await self._release(session)

    async def _release(self, session: LiveSession) -> None:
        """Release resources that never reached the pipelines."""
        handle: CaptureHandle | None = session.capture_handle
        sink: OutputSink | None = session.sink
        session.capture_handle = None
        session.sink = None

        for label, release in (
            ("capture_handle", handle.release if handle is not None else None),
            ("sink", sink.close if sink is not None else None),
        ):
            if release is None:
                continue
            try:
                release()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "RESOURCE_RELEASE_ERROR",
                    "resource": label,
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

        await self._close_session(session)

    async def _close_session(self, session: LiveSession) -> None:
        task, session.receive_task = session.receive_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        channel, session.channel = session.channel, None
        if channel is None:
            return
        try:
            await asyncio.wait_for(channel.close(), CHANNEL_CLOSE_TIMEOUT_S)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CHANNEL_CLOSE_ERROR",
                **session.log_context(),
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    # ------------------------------------------------------------------
    # Channel IO
    # ------------------------------------------------------------------

    async def _receive_loop(self, attempt_id: int, channel: LiveChannel) -> None:
        """Turn inbound traffic into events until the channel ends."""
        reason = ""
        try:
            async for message in channel.messages():
                self.post(ServerMessageReceived(
                    event_type=EventType.SERVER_MESSAGE,
                    ts_ms=_now_ms(),
                    attempt_id=attempt_id,
                    message=message,
                ))
            reason = channel.close_reason or ""
        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = str(exc)
            self.post(TransportFault(
                event_type=EventType.TRANSPORT_FAULT,
                ts_ms=_now_ms(),
                attempt_id=attempt_id,
                reason=reason,
            ))

        self.post(ChannelClosed(
            event_type=EventType.CHANNEL_CLOSED,
            ts_ms=_now_ms(),
            attempt_id=attempt_id,
            reason=reason,
        ))

    def _send_frame(self, data: str, mime_type: str) -> None:
        """Fire-and-forget upload of one capture frame."""
        session = self._ctx.session
        if session is None or session.channel is None:
            return
        task = asyncio.create_task(session.channel.send_realtime_audio(data, mime_type))
        self._send_tasks.add(task)
        task.add_done_callback(self._on_send_done)

    def _on_send_done(self, task: asyncio.Task[None]) -> None:
        self._send_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "audio_frame_dropped",
                "session_id": self._ctx.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
