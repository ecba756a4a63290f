"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from spec import samples_to_seconds


@dataclass(frozen=True)
class AudioFrame:
    """
    One fixed-length block captured from the input device.

    samples:
        float32 mono samples in [-1.0, 1.0].
        Length is spec.CAPTURE_FRAME_SAMPLES for device-produced frames.

    sample_rate_hz:
        Capture rate the device was opened with.

    Ephemeral: encoded and transmitted immediately, never buffered.
    """
    samples: np.ndarray
    sample_rate_hz: int


@dataclass(frozen=True)
class PlaybackChunk:
    """
    Decoded response audio ready to schedule on the output sink.

    samples:
        float32 array shaped (frames, channels).

    duration_s:
        frames / sample_rate_hz. Advances the playback cursor.
    """
    samples: np.ndarray
    sample_rate_hz: int
    channels: int

    @property
    def num_frames(self) -> int:
        """Return number of sample frames (per channel)."""
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        """Return playback duration in seconds."""
        return samples_to_seconds(self.num_frames, self.sample_rate_hz)
