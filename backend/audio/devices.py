"""
Audio device boundary.

This module defines:
- Narrow Protocols for the capture device and the playback sink
  (capabilities, not implementations)
- sounddevice-backed implementations used by the server process

The session core only ever talks to the Protocols; tests substitute fakes.

Threading:
- PortAudio invokes stream callbacks on its own thread.
- Implementations here call the supplied callbacks on that thread.
  Marshalling back onto the asyncio loop is the pipelines' job.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable, Any

import numpy as np
import sounddevice as sd

from audio.frames import PlaybackChunk
from audio.pcm import resample_linear
from spec import CAPTURE_CHANNELS, PLAYBACK_BLOCK_SAMPLES, PLAYBACK_SAMPLE_RATE_HZ


class DeviceAccessError(RuntimeError):
    """The capture or playback device could not be acquired."""


# ---------------------------------------------------------------------
# Capture Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class CaptureStream(Protocol):
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def close(self) -> None: ...


@runtime_checkable
class CaptureHandle(Protocol):
    """An acquired input device. Frames flow only after open_stream().start()."""

    def open_stream(
        self,
        *,
        sample_rate_hz: int,
        block_samples: int,
        on_block: Callable[[np.ndarray], None],
    ) -> CaptureStream: ...

    def release(self) -> None: ...


@runtime_checkable
class CaptureDevice(Protocol):
    def acquire(self) -> CaptureHandle:
        """
        Acquire the input device.

        Raises:
            DeviceAccessError if the device is missing or access is refused.
        """


# ---------------------------------------------------------------------
# Playback Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class ScheduledSource(Protocol):
    def stop(self) -> None: ...


@runtime_checkable
class OutputSink(Protocol):
    """
    Output graph with its own clock, modelled on a browser AudioContext.

    current_time:
        Seconds of audio rendered since the sink was opened.
    schedule():
        Start `chunk` at `start_time` on the sink clock. `on_ended` fires once
        when the chunk finishes naturally (not when stopped).
    """

    sample_rate_hz: int

    @property
    def current_time(self) -> float: ...

    def schedule(
        self,
        chunk: PlaybackChunk,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> ScheduledSource: ...

    def close(self) -> None: ...


@runtime_checkable
class OutputDevice(Protocol):
    def acquire(self) -> OutputSink:
        """
        Open the playback sink.

        Raises:
            DeviceAccessError if the device is missing or cannot be opened.
        """


# ---------------------------------------------------------------------
# sounddevice: capture
# ---------------------------------------------------------------------

class _SoundDeviceCaptureHandle:
    def __init__(self, device: int | None) -> None:
        self._device = device

    def open_stream(
        self,
        *,
        sample_rate_hz: int,
        block_samples: int,
        on_block: Callable[[np.ndarray], None],
    ) -> CaptureStream:
        def _callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
            on_block(indata[:, 0].copy())

        try:
            return sd.InputStream(
                samplerate=sample_rate_hz,
                blocksize=block_samples,
                channels=CAPTURE_CHANNELS,
                dtype="float32",
                device=self._device,
                callback=_callback,
            )
        except sd.PortAudioError as e:
            raise DeviceAccessError(f"input stream unavailable: {e}") from e

    def release(self) -> None:
        # PortAudio holds no per-handle state once the stream is closed.
        return None


class SoundDeviceCapture:
    """Default microphone, or the PortAudio device index given."""

    def __init__(self, *, device: int | None = None, sample_rate_hz: int) -> None:
        self._device = device
        self._sample_rate_hz = sample_rate_hz

    def acquire(self) -> CaptureHandle:
        try:
            sd.check_input_settings(
                device=self._device,
                channels=CAPTURE_CHANNELS,
                dtype="float32",
                samplerate=self._sample_rate_hz,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceAccessError(f"input device unavailable: {e}") from e
        return _SoundDeviceCaptureHandle(self._device)


# ---------------------------------------------------------------------
# sounddevice: playback
# ---------------------------------------------------------------------

@dataclass
class _Voice:
    samples: np.ndarray  # mono float32
    start_frame: int
    on_ended: Callable[[], None]
    stopped: bool = False

    @property
    def end_frame(self) -> int:
        return self.start_frame + int(self.samples.shape[0])


class _VoiceHandle:
    def __init__(self, sink: _SoundDeviceSink, voice: _Voice) -> None:
        self._sink = sink
        self._voice = voice

    def stop(self) -> None:
        self._sink.stop_voice(self._voice)


class _SoundDeviceSink:
    """
    Sample-accurate mixer over a sounddevice.OutputStream.

    The render callback owns the clock: every callback advances it by the
    number of frames written, whether or not anything was scheduled.
    """

    def __init__(self, *, device: int | None, sample_rate_hz: int) -> None:
        self.sample_rate_hz = sample_rate_hz
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._rendered_frames = 0
        self._closed = False

        try:
            self._stream = sd.OutputStream(
                samplerate=sample_rate_hz,
                blocksize=PLAYBACK_BLOCK_SAMPLES,
                channels=1,
                dtype="float32",
                device=device,
                callback=self._render,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceAccessError(f"output device unavailable: {e}") from e

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._rendered_frames / self.sample_rate_hz

    def schedule(
        self,
        chunk: PlaybackChunk,
        start_time: float,
        on_ended: Callable[[], None],
    ) -> ScheduledSource:
        samples = resample_linear(chunk.samples, chunk.sample_rate_hz, self.sample_rate_hz)
        mono = samples.mean(axis=1) if chunk.channels > 1 else samples[:, 0]
        voice = _Voice(
            samples=np.ascontiguousarray(mono, dtype=np.float32),
            start_frame=int(round(start_time * self.sample_rate_hz)),
            on_ended=on_ended,
        )
        with self._lock:
            self._voices.append(voice)
        return _VoiceHandle(self, voice)

    def stop_voice(self, voice: _Voice) -> None:
        with self._lock:
            voice.stopped = True
            if voice in self._voices:
                self._voices.remove(voice)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._voices.clear()
        self._stream.stop()
        self._stream.close()

    def _render(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
        outdata.fill(0.0)
        finished: list[_Voice] = []

        with self._lock:
            block_start = self._rendered_frames
            block_end = block_start + frames

            for voice in self._voices:
                lo = max(voice.start_frame, block_start)
                hi = min(voice.end_frame, block_end)
                if hi > lo:
                    outdata[lo - block_start:hi - block_start, 0] += (
                        voice.samples[lo - voice.start_frame:hi - voice.start_frame]
                    )
                if voice.end_frame <= block_end:
                    finished.append(voice)

            for voice in finished:
                self._voices.remove(voice)

            self._rendered_frames = block_end

        np.clip(outdata, -1.0, 1.0, out=outdata)

        for voice in finished:
            voice.on_ended()


class SoundDeviceOutput:
    """Default speaker, or the PortAudio device index given."""

    def __init__(
        self,
        *,
        device: int | None = None,
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
    ) -> None:
        self._device = device
        self._sample_rate_hz = sample_rate_hz

    def acquire(self) -> OutputSink:
        return _SoundDeviceSink(device=self._device, sample_rate_hz=self._sample_rate_hz)
