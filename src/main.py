"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.admin import router as admin_router
from src.api.auth import router as auth_router
from src.api.conversations import router as conversations_router
from src.api.middleware import CorrelationIdMiddleware
from src.api.routes import router
from src.config import get_settings
from src.models.response import ErrorResponse
from src.services.errors import RateLimitedError, ServiceError
from src.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    try:
        from src.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - all stateful endpoints will fail",
        )

    try:
        from src.services.redis_service import get_redis

        await get_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_initialization_failed",
            error=str(e),
            note="Continuing without Redis - per-IP throttling disabled",
        )

    logger.info(
        "application_started",
        model=settings.openai_model,
        log_level=settings.log_level,
    )

    yield

    try:
        from src.database import close_database

        await close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    try:
        from src.services.redis_service import close_redis

        await close_redis()
    except Exception as e:
        logger.warning("redis_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="Chat Assistant API",
    description="Email OTP login, metered chat and account administration",
    version="0.1.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def _error_response(
    status_code: int,
    error: str,
    detail: str,
    correlation_id: str,
    retry_after_minutes: int | None = None,
) -> JSONResponse:
    headers = {"X-Correlation-Id": correlation_id}
    if retry_after_minutes is not None:
        headers["Retry-After"] = str(retry_after_minutes * 60)
    body = ErrorResponse(
        error=error,
        detail=detail,
        correlation_id=correlation_id,
        retry_after_minutes=retry_after_minutes,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with a 400 and the first failing field."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return _error_response(400, "validation_error", detail, correlation_id)


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a service failure with its status and user-safe message."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "service_error",
        correlation_id=correlation_id,
        error=exc.error,
        status_code=exc.status_code,
    )

    retry_after = exc.retry_after_minutes if isinstance(exc, RateLimitedError) else None
    return _error_response(
        exc.status_code, exc.error, exc.message, correlation_id, retry_after
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures with traceback; return a generic message."""
    correlation_id = _correlation_id(request)
    structlog.get_logger().exception(
        "unhandled_error",
        correlation_id=correlation_id,
        error_type=type(exc).__name__,
    )
    return _error_response(
        500,
        "internal_error",
        "An unexpected error occurred. Please try again.",
        correlation_id,
    )


# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(conversations_router)
app.include_router(router)
