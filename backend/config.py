"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No session logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import LIVE_ENDPOINT_DEFAULT, LIVE_MODEL_DEFAULT, LIVE_VOICE_DEFAULT


def _optional_int(raw: str | None) -> int | None:
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the server and the session gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Control server
    # ------------------------------------------------------------------

    host: str
    port: int

    # ------------------------------------------------------------------
    # Live service
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    live_model: str
    live_voice: str
    live_endpoint: str

    # ------------------------------------------------------------------
    # Audio devices (None = host default)
    # ------------------------------------------------------------------

    input_device: int | None
    output_device: int | None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a port or device index is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "127.0.0.1"),
            port=int(os.environ.get("PORT", "8000")),

            gemini_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL_DEFAULT),
            live_voice=os.environ.get("LIVE_VOICE", LIVE_VOICE_DEFAULT),
            live_endpoint=os.environ.get("LIVE_ENDPOINT", LIVE_ENDPOINT_DEFAULT),

            input_device=_optional_int(os.environ.get("INPUT_DEVICE")),
            output_device=_optional_int(os.environ.get("OUTPUT_DEVICE")),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
