"""FastAPI application factory.

Run with ``uvicorn tourney.main:create_app --factory``.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from tourney import __version__
from tourney.api import admin, tournaments, users, wallet
from tourney.api.deps import Services
from tourney.config import Settings, get_settings
from tourney.events import ChangeFeed
from tourney.logging_config import bind_context, clear_context, configure_logging, get_logger
from tourney.utils.db import create_engine, create_session_factory, init_db
from tourney.utils.errors import ErrorCode, TourneyError
from tourney.utils.json_utils import ORJSONResponse

logger = get_logger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.INVALID_CONFIGURATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PAYLOAD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.TOURNAMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PARTICIPANT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TOURNAMENT_CLOSED: status.HTTP_409_CONFLICT,
    ErrorCode.TOURNAMENT_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_JOINED: status.HTTP_409_CONFLICT,
    ErrorCode.SLOT_TAKEN: status.HTTP_409_CONFLICT,
    ErrorCode.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.TRANSIENT_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}
ERROR_STATUS = {code.value: status_code for code, status_code in _STATUS_BY_CODE.items()}


def get_request_id(request: Request) -> str:
    """Get request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", str(uuid.uuid4()))


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add X-Request-ID header to all requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = datetime.now(timezone.utc)

        clear_context()
        bind_context(trace_id=request_id, user_id=request.headers.get("X-User-Id"))
        try:
            response = await call_next(request)
        finally:
            clear_context()

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=round((datetime.now(timezone.utc) - started).total_seconds(), 3),
            trace_id=request_id,
        )
        return response


async def tourney_error_handler(request: Request, exc: TourneyError) -> ORJSONResponse:
    """Map business errors to HTTP status codes."""
    trace_id = get_request_id(request)
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
        ),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    trace_id = get_request_id(request)
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=create_error_response(
            code=ErrorCode.INVALID_PAYLOAD.value,
            message="Invalid request payload",
            details={"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
            ]},
            trace_id=trace_id,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> ORJSONResponse:
    """Handle HTTP exceptions."""
    trace_id = get_request_id(request)

    # Check if detail is already formatted
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = {**exc.detail, "traceId": trace_id}
    else:
        content = create_error_response(
            code="HTTP_ERROR",
            message=str(exc.detail),
            trace_id=trace_id,
        )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings (defaults to the environment)
        services: Pre-built services; when given, startup skips database
            and Redis setup
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if services is not None:
            yield
            return

        cfg = settings or get_settings()
        configure_logging(log_level=cfg.log_level, app_env=cfg.app_env)

        redis_client = redis.from_url(cfg.redis_url) if cfg.redis_url else None
        feed = ChangeFeed(redis_client)

        engine = create_engine(
            cfg.database_url,
            echo=cfg.db_echo,
            pool_size=cfg.db_pool_size,
            max_overflow=cfg.db_max_overflow,
        )
        await init_db(engine)
        _app.state.services = Services.build(cfg, create_session_factory(engine), feed)
        await feed.start()
        logger.info("application_started", app_env=cfg.app_env, redis=redis_client is not None)

        yield

        await feed.shutdown()
        if redis_client is not None:
            await redis_client.aclose()
        await engine.dispose()
        logger.info("application_stopped")

    app = FastAPI(
        title="Tourney API",
        version=__version__,
        description="Tournament registration, slot allocation and prize settlement",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(TourneyError, tourney_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.include_router(tournaments.router)
    app.include_router(users.router)
    app.include_router(users.participants_router)
    app.include_router(wallet.router)
    app.include_router(admin.router)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "version": __version__}

    return app
