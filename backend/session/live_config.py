"""
Per-session configuration handed to the live service at setup time.

Pure data. Built by the server from AppConfig + collaborator choices
(voice selector, tool catalogue).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from spec import LIVE_MODEL_DEFAULT, LIVE_RESPONSE_MODALITIES, LIVE_VOICE_DEFAULT


@dataclass(frozen=True)
class LiveSessionConfig:
    """
    voice:
        Prebuilt voice name used for speech synthesis.
    tools:
        Function declarations in wire form
        ({"name", "description", "parameters"}).
    system_prompt:
        System role description sent as the system instruction.
    """
    voice: str = LIVE_VOICE_DEFAULT
    tools: tuple[dict[str, Any], ...] = ()
    system_prompt: str = ""
    model: str = LIVE_MODEL_DEFAULT
    response_modalities: tuple[str, ...] = field(default=LIVE_RESPONSE_MODALITIES)

    def with_voice(self, voice: str) -> LiveSessionConfig:
        """Return a copy using another voice."""
        return replace(self, voice=voice)
