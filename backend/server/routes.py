"""
Route registration for the live session control API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Translate requests into gateway calls
- Stream session callbacks to panels over /events
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from server.events import EventBroadcaster
from session.gateway import SessionGateway


def _snapshot(gateway: SessionGateway) -> dict[str, Any]:
    return {
        "state": gateway.state.value,
        "muted": gateway.muted,
        "voice": gateway.voice,
        "last_error": gateway.last_error,
    }


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _gateway() -> SessionGateway:
        return app.state.gateway

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/session")
    async def session_status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _snapshot(_gateway())

    @app.post("/session/connect")
    async def session_connect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.connect()
        return _snapshot(gateway)

    @app.post("/session/disconnect")
    async def session_disconnect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        gateway = _gateway()
        await gateway.disconnect()
        return _snapshot(gateway)

    @app.post("/session/mute")
    async def session_mute( # pyright: ignore[reportUnusedFunction]
        muted: bool = Body(..., embed=True),
    ) -> dict[str, Any]:
        gateway = _gateway()
        gateway.set_mute(muted)
        return _snapshot(gateway)

    @app.post("/session/voice")
    async def session_voice( # pyright: ignore[reportUnusedFunction]
        voice: str = Body(..., embed=True),
    ) -> dict[str, Any]:
        gateway = _gateway()
        try:
            await gateway.set_voice(voice)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _snapshot(gateway)

    @app.websocket("/events")
    async def events(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        broadcaster: EventBroadcaster = app.state.broadcaster

        # Subscribe first so nothing published after the snapshot is missed.
        queue = broadcaster.subscribe()
        tasks: list[asyncio.Task[None]] = []
        try:
            await ws.accept()
            await ws.send_json({"type": "status", "state": _gateway().state.value})

            tasks = [asyncio.create_task(_pump(ws, queue)), asyncio.create_task(_drain(ws))]
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            broadcaster.unsubscribe(queue)

        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                log_event({
                    "event_type": "WS_FATAL_ERROR",
                    "endpoint": "/events",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })


async def _pump(ws: WebSocket, queue: asyncio.Queue[dict[str, Any]]) -> None:
    while True:
        message = await queue.get()
        await ws.send_json(message)


async def _drain(ws: WebSocket) -> None:
    # Panels only listen; reading is how the close is noticed.
    while True:
        message = await ws.receive()
        if message["type"] == "websocket.disconnect":
            return
