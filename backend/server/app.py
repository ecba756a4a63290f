"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Build the one session gateway this process drives
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.live.gemini import GeminiLiveTransport
from adapters.live.prompts import SYSTEM_PROMPT_V1, TOOL_DECLARATIONS_V1
from audio.devices import SoundDeviceCapture, SoundDeviceOutput
from config import AppConfig
from observability import logger
from orchestrator.tools import ToolHandler
from server.events import EventBroadcaster
from server.routes import register_routes
from services.system_actions import SystemActionService
from session.callbacks import SessionCallbacks
from session.gateway import SessionGateway
from session.live_config import LiveSessionConfig
from spec import CAPTURE_SAMPLE_RATE_HZ

GatewayFactory = Callable[[AppConfig, SessionCallbacks, ToolHandler], SessionGateway]


def build_gateway(
    config: AppConfig,
    callbacks: SessionCallbacks,
    tool_handler: ToolHandler,
) -> SessionGateway:
    """Gateway on the real Gemini service and the host's sound devices."""
    return SessionGateway(
        transport=GeminiLiveTransport(
            api_key=config.gemini_api_key,
            endpoint=config.live_endpoint,
        ),
        capture_device=SoundDeviceCapture(
            device=config.input_device,
            sample_rate_hz=CAPTURE_SAMPLE_RATE_HZ,
        ),
        output_device=SoundDeviceOutput(device=config.output_device),
        tool_handler=tool_handler,
        session_config=LiveSessionConfig(
            voice=config.live_voice,
            model=config.live_model,
            tools=TOOL_DECLARATIONS_V1,
            system_prompt=SYSTEM_PROMPT_V1,
        ),
        callbacks=callbacks,
    )


def create_app(
    config: AppConfig | None = None,
    *,
    gateway_factory: GatewayFactory = build_gateway,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with fake devices and transports (gateway_factory)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    broadcaster = EventBroadcaster()

    # The action hooks need the gateway, which needs the action handler.
    # They only run after a tool call, long after wiring is done.
    async def _change_voice(voice: str) -> None:
        await app.state.gateway.set_voice(voice)

    async def _power_off() -> None:
        await app.state.gateway.disconnect()

    actions = SystemActionService(
        log=lambda source, severity, message: app.state.gateway.emit_log(source, severity, message),
        on_voice_change=_change_voice,
        on_power_off=_power_off,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.gateway.close()

    app = FastAPI(title="Live Voice Session API", lifespan=lifespan)

    app.state.config = config
    app.state.broadcaster = broadcaster
    app.state.actions = actions
    app.state.gateway = gateway_factory(config, broadcaster.callbacks(), actions)

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
