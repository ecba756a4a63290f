# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import pytest

import orchestrator.tools as tools_mod
from orchestrator.tools import ToolDispatcher, failure_result
from protocol.live_messages import ToolInvocation
from session.callbacks import LogSource, Severity


class RecordingChannel:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.replies: list[tuple[str, str, Any]] = []

    async def send_tool_response(self, invocation_id: str, name: str, result: Any) -> None:
        if self.fail:
            raise ConnectionError("channel closing")
        self.replies.append((invocation_id, name, result))


def _dispatcher(handler, logs: list[tuple[LogSource, Severity, str]]) -> ToolDispatcher:
    return ToolDispatcher(handler=handler, emit_log=lambda *entry: logs.append(entry))


def test_sync_handler_result_is_sent():
    logs: list[tuple[LogSource, Severity, str]] = []
    channel = RecordingChannel()
    dispatcher = _dispatcher(lambda name, args: {"ok": args["x"]}, logs)

    result = asyncio.run(dispatcher.dispatch(ToolInvocation(id="7", name="t", args={"x": 1}), channel))

    assert result == {"ok": 1}
    assert channel.replies == [("7", "t", {"ok": 1})]
    assert logs == []


def test_async_handler_result_is_awaited():
    async def handler(name: str, args: dict[str, Any]) -> str:
        await asyncio.sleep(0)
        return f"{name} done"

    channel = RecordingChannel()
    dispatcher = _dispatcher(handler, [])

    asyncio.run(dispatcher.dispatch(ToolInvocation(id="1", name="scan"), channel))

    assert channel.replies == [("1", "scan", "scan done")]


def test_failure_becomes_structured_reply_and_log():
    def handler(name: str, args: dict[str, Any]) -> Any:
        raise ValueError("siteName is required")

    logs: list[tuple[LogSource, Severity, str]] = []
    channel = RecordingChannel()
    dispatcher = _dispatcher(handler, logs)

    asyncio.run(dispatcher.dispatch(ToolInvocation(id="2", name="openWebsite"), channel))

    assert channel.replies == [
        ("2", "openWebsite", {"error": "siteName is required", "status": "FAILED"}),
    ]
    assert logs == [(LogSource.SYSTEM, Severity.ERROR, "Tool failure (openWebsite): siteName is required")]


def test_failure_without_message_uses_fallback():
    assert failure_result(RuntimeError()) == {"error": "Unknown tool failure", "status": "FAILED"}


def test_reply_send_failure_is_logged_not_raised(monkeypatch: pytest.MonkeyPatch):
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(tools_mod, "log_event", emitted.append)

    dispatcher = _dispatcher(lambda name, args: 1, [])

    asyncio.run(dispatcher.dispatch(ToolInvocation(id="3", name="t"), RecordingChannel(fail=True)))

    assert [e["event_type"] for e in emitted] == ["tool_dispatched", "tool_reply_dropped"]


def test_slow_handler_does_not_delay_other_replies():
    release = {}

    async def handler(name: str, args: dict[str, Any]) -> str:
        if name == "slow":
            await release["event"].wait()
        return name

    async def scenario() -> None:
        release["event"] = asyncio.Event()
        channel = RecordingChannel()
        dispatcher = _dispatcher(handler, [])

        dispatcher.spawn(ToolInvocation(id="1", name="slow"), channel)
        dispatcher.spawn(ToolInvocation(id="2", name="fast"), channel)
        for _ in range(10):
            await asyncio.sleep(0)

        assert channel.replies == [("2", "fast", "fast")]
        assert dispatcher.in_flight == 1

        release["event"].set()
        await dispatcher.wait_idle()

        assert [r[0] for r in channel.replies] == ["2", "1"]
        assert dispatcher.in_flight == 0

    asyncio.run(scenario())


def test_malformed_invocation_is_answered_without_running_handler():
    called: list[str] = []
    logs: list[tuple[LogSource, Severity, str]] = []
    channel = RecordingChannel()
    dispatcher = _dispatcher(lambda name, args: called.append(name), logs)
    invocation = ToolInvocation(id="b", name="", error="function call has no name")

    result = asyncio.run(dispatcher.dispatch(invocation, channel))

    assert result == {"error": "function call has no name", "status": "FAILED"}
    assert channel.replies == [("b", "", result)]
    assert called == []
    assert logs == [(LogSource.SYSTEM, Severity.ERROR, "Tool failure (b): function call has no name")]


def test_records_carry_session_id_and_wall_clock(monkeypatch: pytest.MonkeyPatch):
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(tools_mod, "log_event", emitted.append)
    monkeypatch.setattr(tools_mod.time, "time_ns", lambda: 1_700_000_000_123_456_789)

    async def scenario() -> None:
        dispatcher = _dispatcher(lambda name, args: 1, [])
        await dispatcher.spawn(ToolInvocation(id="4", name="t"), RecordingChannel(), session_id="sess_abc")

    asyncio.run(scenario())

    (record,) = emitted
    assert record["event_type"] == "tool_dispatched"
    assert record["session_id"] == "sess_abc"
    assert record["ts_ms"] == 1_700_000_000_123
