# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from adapters.live.base import LiveChannelError, LiveSetupRejected
from audio.devices import DeviceAccessError
from session.failures import describe_connect_failure
from spec import (
    ERROR_ACCESS_DENIED,
    ERROR_DEVICE_DENIED,
    ERROR_OVERLOADED,
    ERROR_UNKNOWN,
    ERROR_UNREACHABLE,
)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (DeviceAccessError("Permission denied by system"), ERROR_DEVICE_DENIED),
        (LiveChannelError("rejected", status_code=401), ERROR_ACCESS_DENIED),
        (LiveChannelError("rejected", status_code=429), ERROR_OVERLOADED),
        (LiveSetupRejected(code=1013, reason=""), ERROR_OVERLOADED),
        (RuntimeError("API key not valid. Please pass a valid API key."), ERROR_ACCESS_DENIED),
        (RuntimeError("HTTP 403 Forbidden"), ERROR_ACCESS_DENIED),
        (RuntimeError("The model is overloaded"), ERROR_OVERLOADED),
        (RuntimeError("503 Service Unavailable"), ERROR_OVERLOADED),
        (ConnectionRefusedError("refused"), ERROR_UNREACHABLE),
        (asyncio.TimeoutError(), ERROR_UNREACHABLE),
        (RuntimeError("Failed to fetch"), ERROR_UNREACHABLE),
    ],
)
def test_connect_failures_are_categorised(exc: BaseException, expected: str):
    assert describe_connect_failure(exc) == expected


def test_uncategorised_failure_keeps_its_text():
    assert describe_connect_failure(RuntimeError("model not found")) == "model not found"


def test_empty_failure_text_falls_back():
    assert describe_connect_failure(RuntimeError()) == ERROR_UNKNOWN


def test_setup_rejection_with_auth_reason_is_access_denied():
    exc = LiveSetupRejected(code=1008, reason="API key expired")

    assert describe_connect_failure(exc) == ERROR_ACCESS_DENIED
