"""genui entry point.

Initializes all components and starts the server:
  Settings -> ChatTransport -> AgentRunner -> SessionManager -> App -> Uvicorn

Uses Starlette lifespan so the httpx client lives on the same event loop
as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from genui.api.rest import create_app
from genui.api.runner import AgentRunner
from genui.api.transport import ChatTransport
from genui.config import Settings
from genui.session import SessionManager

logger = logging.getLogger(__name__)


def create_components(settings: Settings) -> dict:
    """Build all components in dependency order (nothing is started yet)."""
    transport = ChatTransport(settings)
    runner = AgentRunner(settings, transport)
    sessions = SessionManager(settings)
    return {
        "transport": transport,
        "runner": runner,
        "sessions": sessions,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down genui...")

    sessions = components.get("sessions")
    if sessions:
        sessions.close_all()

    transport = components.get("transport")
    if transport:
        await transport.close()

    logger.info("genui shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; the lifespan starts and stops the transport."""
    components = create_components(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await components["transport"].start()
        app.state.components = components

        logger.info(
            "genui started: provider=%s model=%s max_steps=%d",
            settings.provider,
            settings.resolved_model,
            settings.max_steps,
        )
        yield

        await shutdown_components(components)

    return create_app(
        runner=components["runner"],
        sessions=components["sessions"],
        lifespan=lifespan,
    )


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting genui (provider: %s)", settings.provider)
    logger.info("Model: %s", settings.resolved_model)
    logger.info("Endpoint: %s", settings.resolved_base_url)

    if not settings.api_key:
        logger.warning(
            "No API key set for provider %s -- /chat endpoints will fail",
            settings.provider,
        )

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
