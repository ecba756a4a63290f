"""PCM conversion, transport encoding and level utilities."""

from __future__ import annotations

import base64
import binascii

import numpy as np

from spec import LEVEL_GAIN, PCM16_FULL_SCALE, PCM16_SAMPLE_WIDTH_BYTES


class AudioCodecError(ValueError):
    """Raised when a transport payload cannot be decoded."""


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 in [-1.0, 1.0).

    Runtime-safe, adapter-agnostic utility.
    No resampling. No channel mixing.
    """
    remainder = len(pcm_bytes) % PCM16_SAMPLE_WIDTH_BYTES
    if remainder:
        # Truncated sample; drop the dangling byte.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - remainder]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    audio_f32 = audio_i16.astype(np.float32) / PCM16_FULL_SCALE
    return audio_f32


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Convert float32 samples in [-1.0, 1.0] to PCM16 little-endian bytes.

    Out-of-range samples are clipped, not wrapped.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype("<i2").tobytes()


def encode_transport(pcm_bytes: bytes) -> str:
    """Encode raw bytes into the text-safe transport form (base64)."""
    return base64.b64encode(pcm_bytes).decode("ascii")


def decode_transport(payload: str) -> bytes:
    """
    Decode a transport payload (base64) into raw bytes.

    Raises:
        AudioCodecError if the payload is not valid base64.
    """
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioCodecError(f"invalid transport payload: {e}") from e


def rms_float32(samples: np.ndarray) -> float:
    """Root-mean-square energy of a float32 frame. Empty frames are silent."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


def rms_pcm16le(pcm_bytes: bytes) -> float:
    """Root-mean-square energy of PCM16 little-endian bytes, normalized to [0, 1]."""
    return rms_float32(pcm16le_to_float32(pcm_bytes))


def level_from_rms(rms: float, *, gain: float = LEVEL_GAIN) -> float:
    """Scale an RMS value for visualization and clamp it to [0, 1]."""
    return max(0.0, min(1.0, rms * gain))


def deinterleave(samples: np.ndarray, channels: int) -> np.ndarray:
    """
    Reshape interleaved samples into (frames, channels).

    Drops any incomplete trailing frame.
    """
    if channels <= 0:
        raise ValueError("channels must be > 0")
    whole = (samples.size // channels) * channels
    return samples[:whole].reshape(-1, channels)


def resample_linear(samples: np.ndarray, src_rate_hz: int, dst_rate_hz: int) -> np.ndarray:
    """
    Linear-interpolation resample of a (frames, channels) float32 array.

    Output length is round(frames * dst / src). Identity when the rates match.
    """
    if src_rate_hz <= 0 or dst_rate_hz <= 0:
        raise ValueError("sample rates must be > 0")
    n_in = int(samples.shape[0])
    if src_rate_hz == dst_rate_hz or n_in == 0:
        return samples

    n_out = max(1, int(round(n_in * dst_rate_hz / src_rate_hz)))
    x_in = np.arange(n_in, dtype=np.float64)
    x_out = np.arange(n_out, dtype=np.float64) * (src_rate_hz / dst_rate_hz)

    out = np.empty((n_out, samples.shape[1]), dtype=np.float32)
    for ch in range(samples.shape[1]):
        out[:, ch] = np.interp(x_out, x_in, samples[:, ch])
    return out
