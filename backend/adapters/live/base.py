"""
Live channel contract.

Purpose:
- Define the duplex channel the session runtime talks to.
- Keep state transitions, teardown ordering and error categorisation
  OUT of the adapter.

Rules:
- This file contains NO transport logic.
- No retries, no reconnects.
- No knowledge of audio devices, pipelines or the reducer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from protocol.live_messages import ServerMessage
from session.live_config import LiveSessionConfig


class LiveChannelError(RuntimeError):
    """
    The channel failed to open, or failed mid-session.

    status_code:
        HTTP status of a rejected handshake, when there was one.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LiveSetupRejected(LiveChannelError):
    """The service closed the channel before acknowledging setup."""

    def __init__(self, *, code: int | None, reason: str) -> None:
        super().__init__(f"setup rejected (code={code}): {reason or 'no reason given'}")
        self.code = code
        self.reason = reason


class LiveChannel(ABC):
    """
    An open, setup-acknowledged duplex session.

    The channel is a *dumb pipe*:
    frames and replies out, demultiplexed server messages in.
    """

    @abstractmethod
    async def send_realtime_audio(self, data: str, mime_type: str) -> None:
        """
        Send one encoded capture frame.

        Contract:
        - Raises on failure; callers treat sends as best-effort.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_tool_response(self, invocation_id: str, name: str, result: Any) -> None:
        """Send the reply for exactly one tool invocation."""
        raise NotImplementedError

    @abstractmethod
    def messages(self) -> AsyncIterator[ServerMessage]:
        """
        Iterate inbound messages in arrival order.

        Contract:
        - Ends normally when the remote closes the channel cleanly.
        - Raises LiveChannelError on an abnormal close or transport fault.
        - Messages that fail to parse are logged and skipped, never raised.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the channel.

        Contract:
        - Idempotent.
        - May raise; callers swallow close-time errors.
        """
        raise NotImplementedError

    @property
    def close_reason(self) -> str | None:
        """Reason text of the remote close frame, once closed."""
        return None


class LiveTransport(ABC):
    """Factory for channels. One transport per process, one channel per session."""

    @abstractmethod
    async def open(self, config: LiveSessionConfig) -> LiveChannel:
        """
        Open a channel and complete the setup handshake.

        Contract:
        - Returns only after the service acknowledged setup.
        - Raises LiveChannelError (or LiveSetupRejected) on failure,
          OSError / TimeoutError on network failure.
        - Leaves nothing open when it raises.
        """
        raise NotImplementedError
