"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plcwatch import __version__
from plcwatch.config import Settings, get_settings
from plcwatch.core.controller import LifecycleController
from plcwatch.exceptions import LoadError
from plcwatch.service.base import ConnectionService
from plcwatch.service.simulated import SimulatedConnectionService
from plcwatch.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(
    service: ConnectionService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Connection Service to drive. Defaults to a
            :class:`SimulatedConnectionService` built from *settings*, which
            is closed again on shutdown.
        settings: Runtime settings; defaults to :func:`get_settings`.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(level=settings.log_level, json_output=settings.json_logs)
        owned = service is None
        backend = service or SimulatedConnectionService(
            settings.config_path,
            telemetry_interval=settings.telemetry_interval_s,
            error_every=settings.error_every,
        )
        controller = LifecycleController(backend)
        app.state.controller = controller
        logger.info("plcwatch_api_starting")
        try:
            await controller.initialize()
        except LoadError as exc:
            # Stay up and serve the degraded view; /api/dashboard/reload retries.
            logger.warning("plcwatch_api_degraded", error=str(exc))
        yield
        await controller.shutdown()
        if owned:
            await backend.close()
        logger.info("plcwatch_api_stopped")

    app = FastAPI(
        title="plcwatch API",
        description="PLC connection dashboard state and commands",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from plcwatch.api.routes import devices
    app.include_router(devices.router, prefix="/api")

    return app
