"""
Session gateway.

Responsibilities:
- Public face of the live session: connect(), disconnect(), set_mute(),
  set_voice(), state
- Wire pipelines, tool dispatcher and runtime together once
- Translate caller intent into runtime events and wait for the outcome

NOT responsible for:
- Any state machine logic (reducer)
- Executing side effects (runtime)
- Error categorisation (session.failures)

Every public coroutine returns normally; failures surface through the
callbacks, never as exceptions.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from audio.capture import CapturePipeline
from audio.playback import PlaybackPipeline
from observability.logger import log_event
from orchestrator.enums.state import State
from orchestrator.events import ConnectRequested, DisconnectRequested, EventType
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.tools import ToolDispatcher, ToolHandler
from session.callbacks import LogSource, SessionCallbacks, Severity
from session.live_config import LiveSessionConfig
from spec import LIVE_VOICES

if TYPE_CHECKING:
    from adapters.live.base import LiveTransport
    from audio.devices import CaptureDevice, OutputDevice


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SessionGateway:
    """
    One gateway == one (re)connectable live session.

    All methods must be called from the same asyncio event loop.
    """

    def __init__(
        self,
        *,
        transport: LiveTransport,
        capture_device: CaptureDevice,
        output_device: OutputDevice,
        tool_handler: ToolHandler,
        session_config: LiveSessionConfig | None = None,
        callbacks: SessionCallbacks | None = None,
    ) -> None:
        callbacks = callbacks or SessionCallbacks()

        self._capture = CapturePipeline(on_level=callbacks.on_audio_level)
        self._playback = PlaybackPipeline(on_level=callbacks.on_audio_level)
        self._tools = ToolDispatcher(handler=tool_handler, emit_log=self.emit_log)

        self._ctx = RuntimeExecutionContext(
            transport=transport,
            capture_device=capture_device,
            output_device=output_device,
            session_config=session_config or LiveSessionConfig(),
            callbacks=callbacks,
            capture=self._capture,
            playback=self._playback,
            tools=self._tools,
        )
        self._runtime = Runtime(context=self._ctx)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> State:
        return self._runtime.state.state

    @property
    def muted(self) -> bool:
        return self._capture.muted

    @property
    def voice(self) -> str:
        return self._ctx.session_config.voice

    @property
    def last_error(self) -> str | None:
        return self._runtime.state.last_error

    @property
    def capture(self) -> CapturePipeline:
        return self._capture

    @property
    def playback(self) -> PlaybackPipeline:
        return self._playback

    @property
    def tools(self) -> ToolDispatcher:
        return self._tools

    # ------------------------------------------------------------------
    # Caller intent
    # ------------------------------------------------------------------

    async def connect(self) -> State:
        """
        Open the session.

        Returns once the attempt settled: CONNECTED on success, ERROR on
        failure (already reported through on_error / on_log).
        """
        self._runtime.start()
        await self._runtime.dispatch(ConnectRequested(
            event_type=EventType.CONNECT_REQUESTED,
            ts_ms=_now_ms(),
        ))
        await self._runtime.wait_settled()
        return self.state

    async def disconnect(self) -> None:
        """
        End the session. Always ends DISCONNECTED.

        Safe in every state, including before connect() and twice in a row.
        """
        self._runtime.start()
        await self._runtime.dispatch(DisconnectRequested(
            event_type=EventType.DISCONNECT_REQUESTED,
            ts_ms=_now_ms(),
        ))

    def set_mute(self, muted: bool) -> None:
        """Drop (or resume) capture frames immediately. No reconnect."""
        self._runtime.set_muted(muted)

    async def set_voice(self, voice: str) -> None:
        """
        Select the synthesis voice.

        The voice is fixed at setup time, so a live session is reconnected.

        Raises:
            ValueError for an unknown voice name.
        """
        if voice not in LIVE_VOICES:
            raise ValueError(f"unknown voice {voice!r}; expected one of {', '.join(LIVE_VOICES)}")

        if voice == self.voice:
            return

        self._ctx.session_config = self._ctx.session_config.with_voice(voice)
        self.emit_log(LogSource.SYSTEM, Severity.INFO, f"Voice changed to {voice}")
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "voice_changed",
            "voice": voice,
            "state": self.state.value,
        })

        if self.state is State.CONNECTED:
            await self.disconnect()
            await self.connect()

    async def close(self) -> None:
        """Disconnect and stop the runtime. For process shutdown."""
        await self.disconnect()
        await self._runtime.shutdown()

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def emit_log(self, source: LogSource, severity: Severity, message: str) -> None:
        self._runtime.emit_log(source, severity, message)
