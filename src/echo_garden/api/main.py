"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and exception
handlers, and mounts the route routers.

Usage::

    # Development server (from project root)
    uvicorn echo_garden.api.main:app --reload

    # Production
    gunicorn echo_garden.api.main:app -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from echo_garden.api.limiter import limiter
from echo_garden.config.settings import get_settings
from echo_garden.core.exceptions import (
    AdminNotFoundError,
    EchoGardenError,
    InvalidArgumentError,
    NotFoundError,
    RateLimitExceededError,
)
from echo_garden.core.logging_config import configure_logging, request_id_var

configure_logging("INFO")

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_status(exc: EchoGardenError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, InvalidArgumentError):
        return 422
    if isinstance(exc, AdminNotFoundError):
        return 403
    if isinstance(exc, RateLimitExceededError):
        return 429
    return 400


async def _echo_garden_error_handler(request: Request, exc: EchoGardenError) -> JSONResponse:
    """Translate domain errors into JSON responses.

    ``RateLimitExceededError`` also sets ``Retry-After`` in whole seconds.
    """
    status_code = _error_status(exc)
    headers: dict[str, str] = {}
    body: dict[str, object] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(max(int(round(exc.retry_after)), 1))
        body["reason"] = exc.reason
        try:
            from echo_garden.api.metrics import rate_guard_rejections_total  # noqa: PLC0415

            rate_guard_rejections_total.labels(action=exc.action, reason=exc.reason).inc()
        except Exception as _metrics_exc:  # noqa: BLE001
            logger.debug("metrics_recording_failed", error=str(_metrics_exc))
    return JSONResponse(body, status_code=status_code, headers=headers)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Ranking, personalization and moderation engine for Echo Garden.",
        version="0.1.0",
        debug=settings.debug,
        redirect_slashes=False,
    )

    # ---- Rate limiting ------------------------------------------------------

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_middleware(SlowAPIMiddleware)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(EchoGardenError, _echo_garden_error_handler)

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a request id."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )
            if settings.metrics_enabled:
                route = request.scope.get("route")
                path = getattr(route, "path", request.url.path)
                try:
                    from echo_garden.api.metrics import (  # noqa: PLC0415
                        http_request_duration_seconds,
                        http_requests_total,
                    )

                    http_requests_total.labels(
                        method=request.method, path=path, status=str(status_code)
                    ).inc()
                    http_request_duration_seconds.labels(
                        method=request.method, path=path
                    ).observe(elapsed)
                except Exception as _metrics_exc:  # noqa: BLE001
                    logger.debug("metrics_recording_failed", error=str(_metrics_exc))

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -------------------------------------------------------------

    from echo_garden.api.routes import (  # noqa: PLC0415
        clips,
        feed,
        health as health_routes,
        moderation,
        profiles,
        spotlight,
    )

    application.include_router(health_routes.router)
    application.include_router(feed.router, prefix="/feed", tags=["feed"])
    application.include_router(clips.router, prefix="/clips", tags=["clips"])
    application.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
    application.include_router(spotlight.router, prefix="/spotlight", tags=["spotlight"])
    application.include_router(moderation.router, prefix="/moderation", tags=["moderation"])

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            debug=settings.debug,
            log_level=settings.log_level,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        """Flush pending notifications before the loop closes."""
        from echo_garden.core.event_bus import get_notification_dispatcher  # noqa: PLC0415

        await get_notification_dispatcher().drain()
        logger.info("application_shutdown")

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn / Gunicorn.
"""
