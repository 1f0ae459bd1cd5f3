"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.config import get_settings
from app.core.errors import ConfigurationError, PriceUnavailableError
from app.core.logging import setup_logging
from app.core.telemetry import setup_telemetry
from app.services.container import ServiceContainer, build_container

logger = logging.getLogger(__name__)

# Local dashboard origins
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost",
    "http://127.0.0.1",
]


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Build the application. Tests pass a prebuilt ``container``."""

    settings = container.settings if container is not None else get_settings()
    app = FastAPI(title=settings.app_name, version="0.1.0")
    setup_logging()
    setup_telemetry(app, settings)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["traceparent", "tracestate", "x-request-id"],
    )

    @app.on_event("startup")
    async def startup() -> None:
        """Create the shared services when the app boots."""

        if app.state.container is None:
            app.state.container = build_container(settings)
            logger.info("Starting with settings %s", settings.dict_for_logging())

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if app.state.container is not None:
            await app.state.container.aclose()

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc), "setting": exc.setting})

    @app.exception_handler(PriceUnavailableError)
    async def price_unavailable_handler(request: Request, exc: PriceUnavailableError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc), "symbol": exc.symbol})

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Return service readiness metadata."""

        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "fund_address": settings.fund_address or "",
        }

    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
