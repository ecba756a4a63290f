"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants of the live session core.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Capture Format (float32 device frames -> PCM16 mono @ 16kHz on the wire)
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = 1
CAPTURE_FRAME_SAMPLES: Final[int] = 4096
CAPTURE_MIME_TYPE: Final[str] = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE_HZ}"

# =============================================================================
# Playback Format (PCM16 mono @ 24kHz from the service)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000
PLAYBACK_CHANNELS: Final[int] = 1
PLAYBACK_BLOCK_SAMPLES: Final[int] = 1024

PCM16_SAMPLE_WIDTH_BYTES: Final[int] = 2
PCM16_FULL_SCALE: Final[float] = 32768.0

# =============================================================================
# Visualization Levels
# =============================================================================

# RMS values are amplified for the visualizer, then clamped to [0, 1]
LEVEL_GAIN: Final[float] = 5.0

# Mic frames at or below this RMS are not reported
CAPTURE_NOISE_FLOOR_RMS: Final[float] = 0.01

# =============================================================================
# Live Service
# =============================================================================

LIVE_MODEL_DEFAULT: Final[str] = "models/gemini-2.5-flash-native-audio-preview-09-2025"
LIVE_ENDPOINT_DEFAULT: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
LIVE_RESPONSE_MODALITIES: Final[Tuple[str, ...]] = ("AUDIO",)

LIVE_VOICE_DEFAULT: Final[str] = "Kore"
LIVE_VOICES: Final[Tuple[str, ...]] = ("Puck", "Charon", "Kore", "Fenrir", "Zephyr")

# Remote close is awaited at most this long during disconnect()
CHANNEL_CLOSE_TIMEOUT_S: Final[float] = 2.0

# =============================================================================
# User-facing error text
# =============================================================================

ERROR_TRANSPORT_INTERRUPTED: Final[str] = "Live channel communication interrupted."
ERROR_ACCESS_DENIED: Final[str] = "ACCESS DENIED: Invalid API key or permissions."
ERROR_DEVICE_DENIED: Final[str] = "ACCESS DENIED: Microphone or speaker unavailable."
ERROR_OVERLOADED: Final[str] = "SERVICE UNAVAILABLE: Server overload."
ERROR_UNREACHABLE: Final[str] = "NETWORK FAILURE: Unable to reach the live service."
ERROR_UNKNOWN: Final[str] = "Unknown connection error."

TOOL_FAILURE_STATUS: Final[str] = "FAILED"
TOOL_FAILURE_FALLBACK_MESSAGE: Final[str] = "Unknown tool failure"

# =============================================================================
# Simulated System Actions
# =============================================================================

SYSTEM_VOLUME_DEFAULT: Final[int] = 50
SYSTEM_INTEGRITY_MIN: Final[int] = 85
SYSTEM_INTEGRITY_MAX: Final[int] = 99

# Voice change / power off wait this long so the tool reply is sent first
SYSTEM_ACTION_HOOK_DELAY_S: Final[float] = 0.5

# =============================================================================
# Control Server
# =============================================================================

# Per-subscriber backlog on /events; oldest messages are dropped beyond this
EVENT_SUBSCRIBER_QUEUE_MAX: Final[int] = 256

# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a sample count to a duration in seconds.

    Defensive behavior:
    - Non-positive input returns 0.0 instead of propagating an error.
    """
    if num_samples <= 0 or sample_rate_hz <= 0:
        return 0.0
    return num_samples / sample_rate_hz

