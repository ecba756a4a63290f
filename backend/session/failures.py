"""
Connect-failure categorisation.

Maps whatever went wrong during connect() to one short, user-facing
message: access denied, overload, unreachable, or the raw error text.
"""

from __future__ import annotations

import asyncio

from adapters.live.base import LiveChannelError, LiveSetupRejected
from audio.devices import DeviceAccessError
from spec import (
    ERROR_ACCESS_DENIED,
    ERROR_DEVICE_DENIED,
    ERROR_OVERLOADED,
    ERROR_UNKNOWN,
    ERROR_UNREACHABLE,
)

_ACCESS_STATUS = frozenset({401, 403})
_OVERLOAD_STATUS = frozenset({429, 503})
# WebSocket close code 1013: try again later
_OVERLOAD_CLOSE_CODES = frozenset({1013})

_ACCESS_MARKERS = ("403", "api key", "permission", "unauthorized", "unauthenticated")
_OVERLOAD_MARKERS = ("503", "overload", "unavailable", "resource exhausted")
_UNREACHABLE_MARKERS = ("failed to fetch", "name or service not known", "connection refused")


def describe_connect_failure(exc: BaseException) -> str:
    """Return the categorised user-facing message for a failed connect."""
    if isinstance(exc, DeviceAccessError):
        return ERROR_DEVICE_DENIED

    text = str(exc)
    lowered = text.lower()

    if isinstance(exc, LiveChannelError):
        if exc.status_code in _ACCESS_STATUS:
            return ERROR_ACCESS_DENIED
        if exc.status_code in _OVERLOAD_STATUS:
            return ERROR_OVERLOADED
    if isinstance(exc, LiveSetupRejected) and exc.code in _OVERLOAD_CLOSE_CODES:
        return ERROR_OVERLOADED

    if any(m in lowered for m in _ACCESS_MARKERS):
        return ERROR_ACCESS_DENIED
    if any(m in lowered for m in _OVERLOAD_MARKERS):
        return ERROR_OVERLOADED

    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return ERROR_UNREACHABLE
    if any(m in lowered for m in _UNREACHABLE_MARKERS):
        return ERROR_UNREACHABLE

    return text or ERROR_UNKNOWN
