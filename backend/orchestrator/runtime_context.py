"""
Runtime execution context.

Provides Runtime with live access to the imperative resources it needs for
command execution: device factories, the live transport, the pipelines,
the tool dispatcher and the collaborator callbacks.

This module contains:
- Zero orchestration logic
- Zero reducer state
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adapters.live.base import LiveTransport
    from audio.capture import CapturePipeline
    from audio.devices import CaptureDevice, OutputDevice
    from audio.playback import PlaybackPipeline
    from orchestrator.tools import ToolDispatcher
    from session.callbacks import SessionCallbacks
    from session.live_config import LiveSessionConfig
    from session.voice_session import LiveSession


class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    Runtime is allowed to:
    - Acquire and release devices
    - Open, use and close the live channel
    - Drive the pipelines and the tool dispatcher
    - Call the collaborator callbacks

    Runtime is NOT allowed to:
    - Make lifecycle decisions (the reducer does)
    """

    def __init__(
        self,
        *,
        transport: LiveTransport,
        capture_device: CaptureDevice,
        output_device: OutputDevice,
        session_config: LiveSessionConfig,
        callbacks: SessionCallbacks,
        capture: CapturePipeline,
        playback: PlaybackPipeline,
        tools: ToolDispatcher,
    ) -> None:
        self.transport = transport
        self.capture_device = capture_device
        self.output_device = output_device
        self.session_config = session_config
        self.callbacks = callbacks
        self.capture = capture
        self.playback = playback
        self.tools = tools

        # Bound only while CONNECTED.
        self.session: LiveSession | None = None

    @property
    def session_id(self) -> str | None:
        return self.session.session_id if self.session is not None else None
