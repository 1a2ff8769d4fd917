"""FastAPI application entry point.

chatrelay - bridges a single chat-network session with the business backend.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.api.routes import health, messaging, metrics, session
from chatrelay.config import Settings, get_settings
from chatrelay.core.lifecycle import SessionLifecycleManager
from chatrelay.logging_config import get_logger, setup_logging
from chatrelay.services.backend import BackendClient
from chatrelay.services.session_client import BridgeSessionClient, SessionClient

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    session_client: SessionClient | None = None,
    backend: BackendClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``session_client`` and ``backend`` default to the bridge client and the
    aiohttp backend client built from ``settings``.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler.

        Startup:
        - Initialize logging
        - Open the backend HTTP session
        - Start the lifecycle manager (bridge socket + first initialize)

        Shutdown:
        - Stop timers and consumers
        - Close the bridge socket and the backend session
        """
        setup_logging(
            level=settings.log_level,
            enable_file=settings.is_production,
        )

        backend_client = backend or BackendClient(
            webhook_url=settings.backend_webhook_url,
            sync_contacts_url=settings.backend_sync_contacts_url,
            reminders_url=settings.backend_reminders_url,
            auth_token=settings.backend_token,
            timeout_seconds=settings.backend_timeout_seconds,
        )
        client = session_client or BridgeSessionClient(settings)

        await backend_client.open()
        manager = SessionLifecycleManager(client, backend_client, settings)
        await manager.start()
        app.state.manager = manager
        logger.info(f"Relay started, bridge at {settings.bridge_url}")

        yield

        await manager.stop()
        await backend_client.close()
        app.state.manager = None
        logger.info("Relay stopped")

    app = FastAPI(
        title="chatrelay",
        description="Chat session relay for the business backend",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Liveness
    app.include_router(health.router, tags=["Health"])

    # Session status and control
    app.include_router(session.router, tags=["Session"])

    # Broadcasts and reminders
    app.include_router(messaging.router, tags=["Messaging"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "chatrelay.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
