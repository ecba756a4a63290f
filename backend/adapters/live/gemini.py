"""
Gemini Live (BidiGenerateContent) channel over a raw WebSocket.

Connection model:
- One WebSocket per session. Opened on connect(), closed on disconnect()
  or by the service.
- The first outbound message is the setup message; the channel counts as
  open only once the service answers with setupComplete.
- After that, JSON messages flow both ways until either side closes.

Design constraints:
- Adapter must not call the reducer or touch session state.
- Adapter must not retry or reconnect.
- Unparseable inbound messages are logged and skipped.
"""

from __future__ import annotations

import json
import time
import urllib.parse
from typing import Any, AsyncIterator

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidStatus

from adapters.live.base import LiveChannel, LiveChannelError, LiveSetupRejected, LiveTransport
from observability.logger import log_event
from protocol.live_messages import (
    LiveProtocolError,
    ServerMessage,
    parse_server_message,
    realtime_audio_message,
    setup_message,
    tool_response_message,
)
from session.live_config import LiveSessionConfig
from spec import CHANNEL_CLOSE_TIMEOUT_S, LIVE_ENDPOINT_DEFAULT


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class GeminiLiveChannel(LiveChannel):
    """An open, setup-acknowledged Gemini Live WebSocket."""

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    async def send_realtime_audio(self, data: str, mime_type: str) -> None:
        await self._send(realtime_audio_message(data, mime_type))

    async def send_tool_response(self, invocation_id: str, name: str, result: Any) -> None:
        await self._send(tool_response_message(invocation_id, name, result))

    async def messages(self) -> AsyncIterator[ServerMessage]:
        try:
            async for raw in self._ws:
                try:
                    message = parse_server_message(raw)
                except LiveProtocolError as e:
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "LIVE_MESSAGE_PARSE_ERROR",
                        "error": str(e),
                    })
                    continue

                for reason in message.rejected_tool_calls:
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "LIVE_TOOL_CALL_REJECTED",
                        "error": reason,
                    })

                if message.is_empty:
                    continue
                yield message
        except ConnectionClosedError as e:
            # Clean closes end the iteration without raising.
            raise LiveChannelError(f"channel closed abnormally: {e}") from e

    async def close(self) -> None:
        await self._ws.close()

    @property
    def close_reason(self) -> str | None:
        return self._ws.close_reason

    async def _send(self, message: dict[str, Any]) -> None:
        await self._ws.send(json.dumps(message, separators=(",", ":")))


class GeminiLiveTransport(LiveTransport):
    """
    Opens Gemini Live channels for one API key.

    The API key travels as the `key` query parameter, as the service expects
    for WebSocket clients.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        endpoint: str = LIVE_ENDPOINT_DEFAULT,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint

    def _build_url(self) -> str:
        qs = urllib.parse.urlencode({"key": self._api_key or ""})
        return f"{self._endpoint}?{qs}"

    async def open(self, config: LiveSessionConfig) -> LiveChannel:
        if not self._api_key:
            raise LiveChannelError("API key not configured", status_code=403)

        try:
            ws = await ws_connect(
                self._build_url(),
                max_size=None,
                open_timeout=None,
                close_timeout=CHANNEL_CLOSE_TIMEOUT_S,
            )
        except InvalidStatus as e:
            status = e.response.status_code
            raise LiveChannelError(f"handshake rejected: HTTP {status}", status_code=status) from e

        try:
            await ws.send(json.dumps(setup_message(config), separators=(",", ":")))
            await self._await_setup_complete(ws)
        except BaseException:
            await ws.close()
            raise

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "live_channel_opened",
            "model": config.model,
            "voice": config.voice,
            "tools": len(config.tools),
        })
        return GeminiLiveChannel(ws)

    @staticmethod
    async def _await_setup_complete(ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                try:
                    message = parse_server_message(raw)
                except LiveProtocolError as e:
                    raise LiveChannelError(f"invalid setup reply: {e}") from e
                if message.setup_complete:
                    return
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            reason = e.rcvd.reason if e.rcvd is not None else ""
            raise LiveSetupRejected(code=code, reason=reason) from e

        # Iteration ended on a clean close.
        raise LiveSetupRejected(code=ws.close_code, reason=ws.close_reason or "")
