"""
Microphone capture pipeline.

Per frame (unless muted):
1. RMS loudness -> level callback (above the noise floor only)
2. float32 -> PCM16 LE -> transport encoding
3. Hand the payload to the session for transmission (fire-and-forget)

Muted frames are dropped before step 1: no level, nothing sent.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

import numpy as np

from audio.devices import CaptureHandle, CaptureStream
from audio.frames import AudioFrame
from audio.pcm import encode_transport, float32_to_pcm16le, level_from_rms, rms_float32
from observability.logger import log_event
from spec import (
    CAPTURE_FRAME_SAMPLES,
    CAPTURE_MIME_TYPE,
    CAPTURE_NOISE_FLOOR_RMS,
    CAPTURE_SAMPLE_RATE_HZ,
)

# (base64 payload, mime type) -> None. Must not block.
FrameSender = Callable[[str, str], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class CapturePipeline:
    """
    Owns the input stream for one session.

    Device callbacks arrive on the PortAudio thread and are re-posted onto
    the asyncio loop, so process_frame() always runs on the loop.
    """

    def __init__(
        self,
        *,
        on_level: Callable[[float], None],
        sample_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ,
        frame_samples: int = CAPTURE_FRAME_SAMPLES,
    ) -> None:
        self._on_level = on_level
        self._sample_rate_hz = sample_rate_hz
        self._frame_samples = frame_samples

        self.muted: bool = False
        self.frames_sent: int = 0

        self._loop: asyncio.AbstractEventLoop | None = None
        self._handle: CaptureHandle | None = None
        self._stream: CaptureStream | None = None
        self._send: FrameSender | None = None

    @property
    def running(self) -> bool:
        """True between start() and stop()."""
        return self._stream is not None

    def start(self, handle: CaptureHandle, send: FrameSender) -> None:
        """
        Open the capture graph on an acquired device and begin pulling frames.

        Must be called from the event loop thread.
        """
        if self._stream is not None:
            self.stop()

        self._loop = asyncio.get_running_loop()
        self._handle = handle
        self._send = send
        self.frames_sent = 0

        stream = handle.open_stream(
            sample_rate_hz=self._sample_rate_hz,
            block_samples=self._frame_samples,
            on_block=self._on_device_block,
        )
        self._stream = stream
        stream.start()

    def set_muted(self, muted: bool) -> None:
        """Local, instantaneous toggle. No acknowledgement round-trip."""
        self.muted = muted

    def process_frame(self, frame: AudioFrame) -> None:
        """Level, encode and forward a single frame."""
        if self.muted or self._send is None:
            return

        rms = rms_float32(frame.samples)
        if rms > CAPTURE_NOISE_FLOOR_RMS:
            self._on_level(level_from_rms(rms))

        payload = encode_transport(float32_to_pcm16le(frame.samples))
        self._send(payload, CAPTURE_MIME_TYPE)
        self.frames_sent += 1

    def stop(self) -> None:
        """
        Disconnect the device and release the capture graph.

        Idempotent; safe when never started.
        """
        stream, handle = self._stream, self._handle
        self._stream = None
        self._handle = None
        self._send = None

        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "CAPTURE_STREAM_CLOSE_ERROR",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

        if handle is not None:
            handle.release()

        if stream is not None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "capture_stopped",
                "frames_sent": self.frames_sent,
            })

    # ------------------------------------------------------------------
    # Device thread
    # ------------------------------------------------------------------

    def _on_device_block(self, samples: np.ndarray) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        frame = AudioFrame(samples=samples, sample_rate_hz=self._sample_rate_hz)
        try:
            loop.call_soon_threadsafe(self.process_frame, frame)
        except RuntimeError:
            # Loop closed between the check and the call.
            return
