"""
Live service wire protocol (JSON over WebSocket).

Inbound (server -> client):
    {"setupComplete": {}}
    {"toolCall": {"functionCalls": [{"id", "name", "args"}]}}
    {"serverContent": {"modelTurn": {"parts": [{"inlineData": {"mimeType", "data"}}]},
                       "interrupted": bool}}
    A single message may carry any combination of the above.

Outbound (client -> server):
    {"setup": {...}}                                         first message only
    {"realtimeInput": {"mediaChunks": [{"mimeType", "data"}]}}   one capture frame
    {"toolResponse": {"functionResponses": [{"id", "name", "response": {"result"}}]}}

Design:
- Pure functions only (no IO, no clocks).
- Parsing never drops an answerable tool call. A call that carries an id but
  no usable name or args is kept with `error` set so it can be answered as
  FAILED; only calls without an id are set aside (nothing to reply to).
- Audio and the interruption flag survive any malformed tool call.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from session.live_config import LiveSessionConfig


class LiveProtocolError(ValueError):
    """Raised when an inbound message cannot be interpreted."""


_RATE_RE = re.compile(r"rate=(\d+)")


# =============================================================================
# Inbound types
# =============================================================================

@dataclass(frozen=True)
class ToolInvocation:
    """
    A request from the service to run a named local capability.

    error is set when the call arrived malformed; it is answered as FAILED
    without running any handler.
    """
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class AudioChunk:
    """
    One base64 audio payload from a model turn.

    sample_rate_hz is taken from the part's mime type when present
    ("audio/pcm;rate=24000"), else None (caller default applies).
    """
    data: str
    sample_rate_hz: int | None = None


@dataclass(frozen=True)
class ServerMessage:
    """Demultiplexed view of one inbound message."""
    tool_calls: tuple[ToolInvocation, ...] = ()
    rejected_tool_calls: tuple[str, ...] = ()
    audio_chunks: tuple[AudioChunk, ...] = ()
    interrupted: bool = False
    setup_complete: bool = False
    turn_complete: bool = False

    @property
    def is_empty(self) -> bool:
        """True when nothing in the message needs handling."""
        return not (
            self.tool_calls
            or self.audio_chunks
            or self.interrupted
            or self.setup_complete
            or self.turn_complete
        )


# =============================================================================
# Inbound parsing
# =============================================================================

def parse_server_message(raw: str | bytes | Mapping[str, Any]) -> ServerMessage:
    """
    Decode and demultiplex one inbound message.

    A malformed tool call never costs the rest of the message: calls with an
    id are kept (with `error` set when unusable) and id-less calls are listed
    in rejected_tool_calls.

    Raises:
        LiveProtocolError on invalid JSON or a non-object payload.
    """
    data = _load(raw)

    tool_calls, rejected_tool_calls = _parse_tool_calls(data.get("toolCall"))

    audio_chunks: tuple[AudioChunk, ...] = ()
    interrupted = False
    turn_complete = False

    server_content = data.get("serverContent")
    if isinstance(server_content, Mapping):
        interrupted = bool(server_content.get("interrupted", False))
        turn_complete = bool(server_content.get("turnComplete", False))
        audio_chunks = _parse_audio_parts(server_content.get("modelTurn"))

    return ServerMessage(
        tool_calls=tool_calls,
        rejected_tool_calls=rejected_tool_calls,
        audio_chunks=audio_chunks,
        interrupted=interrupted,
        setup_complete="setupComplete" in data,
        turn_complete=turn_complete,
    )


def _load(raw: str | bytes | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(raw, Mapping):
        return raw
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LiveProtocolError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise LiveProtocolError(f"expected JSON object, got {type(data).__name__}")
    return data


def _parse_tool_calls(tool_call: Any) -> tuple[tuple[ToolInvocation, ...], tuple[str, ...]]:
    if not isinstance(tool_call, Mapping):
        return (), ()

    calls: list[ToolInvocation] = []
    rejected: list[str] = []
    for fc in tool_call.get("functionCalls") or ():
        invocation_id = fc.get("id") if isinstance(fc, Mapping) else None
        if isinstance(invocation_id, bool) or not isinstance(invocation_id, (str, int)) or invocation_id == "":
            # Without an id there is nothing to correlate a reply with.
            rejected.append(f"function call without id: {fc!r}")
            continue

        name = fc.get("name")
        args = fc.get("args")
        error = None
        if not isinstance(name, str) or not name:
            error = "function call has no name"
        elif args is not None and not isinstance(args, Mapping):
            error = f"function call args must be an object, got {type(args).__name__}"

        calls.append(
            ToolInvocation(
                id=str(invocation_id),
                name=name if isinstance(name, str) else "",
                args=dict(args) if isinstance(args, Mapping) else {},
                error=error,
            )
        )
    return tuple(calls), tuple(rejected)


def _parse_audio_parts(model_turn: Any) -> tuple[AudioChunk, ...]:
    if not isinstance(model_turn, Mapping):
        return ()

    chunks: list[AudioChunk] = []
    for part in model_turn.get("parts") or ():
        if not isinstance(part, Mapping):
            continue
        inline = part.get("inlineData")
        if not isinstance(inline, Mapping):
            continue
        payload = inline.get("data")
        if not payload:
            continue
        chunks.append(
            AudioChunk(
                data=str(payload),
                sample_rate_hz=sample_rate_from_mime(inline.get("mimeType")),
            )
        )
    return tuple(chunks)


def sample_rate_from_mime(mime_type: Any) -> int | None:
    """Extract the rate parameter of an "audio/pcm;rate=N" mime type."""
    if not isinstance(mime_type, str):
        return None
    match = _RATE_RE.search(mime_type)
    return int(match.group(1)) if match else None


# =============================================================================
# Outbound builders
# =============================================================================

def setup_message(config: LiveSessionConfig) -> dict[str, Any]:
    """First message on a fresh channel: model, voice, system role, tools."""
    setup: dict[str, Any] = {
        "model": config.model,
        "generationConfig": {
            "responseModalities": list(config.response_modalities),
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": config.voice},
                },
            },
        },
    }
    if config.system_prompt:
        setup["systemInstruction"] = {"parts": [{"text": config.system_prompt}]}
    if config.tools:
        setup["tools"] = [{"functionDeclarations": [dict(t) for t in config.tools]}]
    return {"setup": setup}


def realtime_audio_message(data: str, mime_type: str) -> dict[str, Any]:
    """One encoded capture frame."""
    return {"realtimeInput": {"mediaChunks": [{"mimeType": mime_type, "data": data}]}}


def tool_response_message(invocation_id: str, name: str, result: Any) -> dict[str, Any]:
    """Reply for exactly one tool invocation."""
    return {
        "toolResponse": {
            "functionResponses": [
                {"id": invocation_id, "name": name, "response": {"result": result}},
            ],
        },
    }
