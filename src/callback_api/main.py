"""
Main FastAPI Application for the Agent Callback Relay

Receives signed status-change callbacks from the coding-agent API,
registers launched jobs and relays completion events to each job's
callback URL.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from ..shared.config import Settings, get_settings, validate_configuration
from ..shared.logging_config import configure_logging
from ..webhooks.exceptions import WebhookError
from .dependencies import RelayServices
from .middleware import LoggingMiddleware
from .routers import agent_webhooks, health, jobs

logger = logging.getLogger(__name__)


def error_response(status_code: int, error_type: str, message) -> JSONResponse:
    """Consistent error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "type": error_type,
                "message": message,
                "status_code": status_code
            }
        }
    )


def create_app(settings: Optional[Settings] = None, services: Optional[RelayServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (defaults to get_settings())
        services: Pre-built components; built from settings when omitted
    """
    settings = settings or (services.settings if services else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(settings)
        logger.info(f"Starting {settings.app_name} ({settings.environment.value})")

        for warning in validate_configuration(settings):
            logger.warning(f"Configuration: {warning}")

        relay = services or RelayServices.build(settings)
        await relay.db_manager.initialize(create_tables=not settings.is_production())
        app.state.services = relay

        stop_polling = asyncio.Event()
        poll_task = None
        if relay.poller is not None:
            since = datetime.now(timezone.utc) - timedelta(hours=settings.agent_api.track_lookback_hours)
            try:
                await relay.poller.track_registered(relay.registry, since)
            except Exception as e:
                logger.error(f"Could not load registered jobs for polling: {e}", exc_info=True)

            poll_task = asyncio.create_task(
                relay.poller.run(settings.agent_api.poll_interval_seconds, stop_polling)
            )

        yield

        logger.info(f"Shutting down {settings.app_name}")
        stop_polling.set()
        if poll_task is not None:
            await poll_task
        await relay.notifier.drain()
        await relay.db_manager.close()

    app = FastAPI(
        title=settings.app_name,
        description="Signed completion webhooks for email-launched coding agents",
        version=settings.app_version,
        lifespan=lifespan
    )

    app.add_middleware(LoggingMiddleware)

    @app.exception_handler(WebhookError)
    async def webhook_exception_handler(request: Request, exc: WebhookError):
        """Render relay errors with their mapped status code."""
        return error_response(exc.status_code, exc.error_type, exc.message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return error_response(exc.status_code, "http_error", exc.detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(422, "request_validation_error", str(exc.errors()))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions with consistent error format."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return error_response(500, "internal_error", "An internal server error occurred")

    app.include_router(health.router, tags=["Health"])
    app.include_router(agent_webhooks.router, prefix="/api", tags=["Agent Webhooks"])
    app.include_router(jobs.router, prefix="/api", tags=["Jobs"])

    return app


if __name__ == "__main__":
    uvicorn.run(
        "src.callback_api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
