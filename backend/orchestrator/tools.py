"""
Tool-call dispatcher.

Every invocation received from the service gets exactly one reply:
- handler returns  -> {"result": <value>}
- handler raises   -> {"result": {"error": <message>, "status": "FAILED"}}
- malformed call   -> the same FAILED payload, handler never runs

Each invocation runs in its own task, so a slow handler delays only its
own reply. Replies that cannot be transmitted (channel closing) are logged
to the JSONL stream and dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Protocol, Union

from observability.logger import log_event
from observability.metrics import timed
from protocol.live_messages import ToolInvocation
from session.callbacks import LogSource, Severity
from spec import TOOL_FAILURE_FALLBACK_MESSAGE, TOOL_FAILURE_STATUS

# (name, args) -> result, sync or async. Raising means failure.
ToolHandler = Callable[[str, dict[str, Any]], Union[Any, Awaitable[Any]]]


class ReplyChannel(Protocol):
    async def send_tool_response(self, invocation_id: str, name: str, result: Any) -> None: ...


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def failure_result(exc: BaseException | str) -> dict[str, str]:
    """Structured payload sent back when a handler fails or a call is malformed."""
    return {
        "error": str(exc) or TOOL_FAILURE_FALLBACK_MESSAGE,
        "status": TOOL_FAILURE_STATUS,
    }


class ToolDispatcher:
    """
    Runs tool handlers and replies on the live channel.

    emit_log receives user-visible log lines (source, severity, message).
    session_id tags the JSONL records of one dispatch; the runtime passes
    the id of the session the invocation arrived on.
    """

    def __init__(
        self,
        *,
        handler: ToolHandler,
        emit_log: Callable[[LogSource, Severity, str], None],
    ) -> None:
        self._handler = handler
        self._emit_log = emit_log
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Number of invocations still awaiting their reply."""
        return len(self._tasks)

    def spawn(
        self,
        invocation: ToolInvocation,
        channel: ReplyChannel,
        *,
        session_id: str | None = None,
    ) -> asyncio.Task[None]:
        """Dispatch in the background. Must be called from the event loop."""
        task = asyncio.create_task(self.dispatch(invocation, channel, session_id=session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every spawned invocation to finish replying."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispatch(
        self,
        invocation: ToolInvocation,
        channel: ReplyChannel,
        *,
        session_id: str | None = None,
    ) -> Any:
        """
        Invoke the handler and send exactly one reply.

        Returns the result that was sent (success value or failure payload).
        Never raises.
        """
        ok = True
        with timed(
            "tool_dispatch",
            session_id=session_id,
            details={"tool": invocation.name, "id": invocation.id},
        ):
            if invocation.error is not None:
                ok = False
                result = failure_result(invocation.error)
            else:
                try:
                    result = self._handler(invocation.name, dict(invocation.args))
                    if inspect.isawaitable(result):
                        result = await result
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    ok = False
                    result = failure_result(exc)

        if not ok:
            self._emit_log(
                LogSource.SYSTEM,
                Severity.ERROR,
                f"Tool failure ({invocation.name or invocation.id}): {result['error']}",
            )

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "tool_dispatched",
            "session_id": session_id,
            "tool": invocation.name,
            "id": invocation.id,
            "ok": ok,
        })

        try:
            await channel.send_tool_response(invocation.id, invocation.name, result)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Channel is closing; the reply is lost with it.
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "tool_reply_dropped",
                "session_id": session_id,
                "tool": invocation.name,
                "id": invocation.id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        return result
