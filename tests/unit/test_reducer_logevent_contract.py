# pylint: disable=missing-module-docstring,missing-function-docstring

from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState
from orchestrator.events import ConnectRequested, EventType
from orchestrator.commands import LogEvent, OpenSession
from orchestrator.enums.state import State


def test_reducer_emits_logevent_with_required_fields():
    state = SessionState(state=State.DISCONNECTED)

    event = ConnectRequested(
        event_type=EventType.CONNECT_REQUESTED,
        ts_ms=123,
    )

    _, commands = reduce(state, event)

    log_events = [c for c in commands if isinstance(c, LogEvent)]
    assert log_events, "Reducer must emit at least one LogEvent"

    payload = log_events[0].event

    assert payload["ts_ms"] == 123
    assert payload["event_type"] == "CONNECT_REQUESTED"
    assert payload["decision"] == "state_changed"
    assert payload["attempt_id"] == 1
    assert payload["details"] == {
        "from_state": "DISCONNECTED",
        "to_state": "CONNECTING",
        "source": "connect",
    }


def test_log_events_come_after_side_effects():
    _, commands = reduce(
        SessionState(),
        ConnectRequested(event_type=EventType.CONNECT_REQUESTED, ts_ms=1),
    )

    kinds = [type(c) for c in commands]
    assert kinds.index(OpenSession) < kinds.index(LogEvent)
    assert isinstance(commands[-1], LogEvent)
