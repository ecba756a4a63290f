"""
Gapless response playback with barge-in support.

Scheduling rule:
    start = max(next_playback_time, sink.current_time)
    next_playback_time = start + duration

Chunks therefore play back-to-back, never overlap, and never start in the past.
Chunks at a rate other than the sink's are resampled first, so durations
are always measured on the sink clock.

Active handles live in an arena keyed by a stable integer id. Natural
completion drops the id; interrupt() and stop() drop everything.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from audio.devices import OutputSink, ScheduledSource
from audio.frames import PlaybackChunk
from audio.pcm import (
    deinterleave,
    level_from_rms,
    pcm16le_to_float32,
    resample_linear,
    rms_pcm16le,
)
from observability.logger import log_event
from spec import PLAYBACK_CHANNELS, PLAYBACK_SAMPLE_RATE_HZ


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def decode_chunk(chunk_bytes: bytes, sample_rate_hz: int, channels: int) -> PlaybackChunk:
    """Decode interleaved PCM16 LE bytes into a playable chunk."""
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    samples = deinterleave(pcm16le_to_float32(chunk_bytes), channels)
    return PlaybackChunk(samples=samples, sample_rate_hz=sample_rate_hz, channels=channels)


def to_sink_rate(chunk: PlaybackChunk, sample_rate_hz: int) -> PlaybackChunk:
    """Resample a chunk onto the sink clock. Returns the chunk itself when rates match."""
    if chunk.sample_rate_hz == sample_rate_hz:
        return chunk
    return PlaybackChunk(
        samples=resample_linear(chunk.samples, chunk.sample_rate_hz, sample_rate_hz),
        sample_rate_hz=sample_rate_hz,
        channels=chunk.channels,
    )


@dataclass(frozen=True)
class ScheduledPlayback:
    """Where a chunk landed on the sink timeline."""
    handle_id: int
    start_time: float
    duration_s: float

    @property
    def end_time(self) -> float:
        """Return the sink time at which this chunk finishes."""
        return self.start_time + self.duration_s


class PlaybackPipeline:
    """
    Owns the output sink for one session.

    enqueue / interrupt / stop and natural-completion callbacks (which may
    arrive on the PortAudio thread) are serialized by one re-entrant lock.
    """

    def __init__(
        self,
        *,
        on_level: Callable[[float], None],
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
        channels: int = PLAYBACK_CHANNELS,
    ) -> None:
        self._on_level = on_level
        self._sample_rate_hz = sample_rate_hz
        self._channels = channels

        self._lock = threading.RLock()
        self._active: dict[int, ScheduledSource] = {}
        self._next_handle_id = 1
        self._sink: OutputSink | None = None

        self.next_playback_time: float = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        """True between start() and stop()."""
        return self._sink is not None

    def start(self, sink: OutputSink) -> None:
        """Attach an acquired output sink."""
        if self._sink is not None:
            self.stop()
        with self._lock:
            self._sink = sink
            self.next_playback_time = 0.0

    def stop(self) -> None:
        """
        Force-stop every handle and release the output graph.

        Idempotent.
        """
        self._stop_all()
        with self._lock:
            sink, self._sink = self._sink, None
        if sink is not None:
            try:
                sink.close()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PLAYBACK_SINK_CLOSE_ERROR",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def enqueue(
        self,
        chunk_bytes: bytes,
        sample_rate_hz: int | None = None,
        channels: int | None = None,
    ) -> ScheduledPlayback | None:
        """
        Decode, level and schedule one response chunk.

        Returns None when no sink is attached (session not running).
        """
        sink = self._sink
        if sink is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "playback_chunk_dropped",
                "reason": "no_sink",
                "bytes": len(chunk_bytes),
            })
            return None

        chunk = decode_chunk(
            chunk_bytes,
            sample_rate_hz or self._sample_rate_hz,
            channels or self._channels,
        )
        self._on_level(level_from_rms(rms_pcm16le(chunk_bytes)))

        # Durations and start times are on the sink clock.
        chunk = to_sink_rate(chunk, sink.sample_rate_hz)

        with self._lock:
            start_time = max(self.next_playback_time, sink.current_time)
            handle_id = self._next_handle_id
            self._next_handle_id += 1

            source = sink.schedule(
                chunk,
                start_time,
                lambda: self._on_source_ended(handle_id),
            )
            self._active[handle_id] = source
            self.next_playback_time = start_time + chunk.duration_s

        return ScheduledPlayback(
            handle_id=handle_id,
            start_time=start_time,
            duration_s=chunk.duration_s,
        )

    def interrupt(self) -> int:
        """
        Barge-in: stop every active handle, empty the arena, reset the cursor.

        Returns the number of handles stopped.
        """
        stopped = self._stop_all()
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "playback_interrupted",
            "handles_stopped": stopped,
        })
        return stopped

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------

    def active_handle_ids(self) -> tuple[int, ...]:
        """Ids of scheduled or sounding chunks, in scheduling order."""
        with self._lock:
            return tuple(self._active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stop_all(self) -> int:
        with self._lock:
            sources = list(self._active.values())
            self._active.clear()
            self.next_playback_time = 0.0

        for source in sources:
            try:
                source.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PLAYBACK_SOURCE_STOP_ERROR",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
        return len(sources)

    def _on_source_ended(self, handle_id: int) -> None:
        with self._lock:
            self._active.pop(handle_id, None)
