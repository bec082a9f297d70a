"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.routes import router
from app.api.status_routes import router as status_router
from app.config import settings
from app.db.migration_runner import run_migrations
from app.db.session import close_engines, get_session_factory
from app.exceptions import GenerationError, RateLimitedError
from app.models.api import ErrorResponse
from app.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from app.observability.tracing import instrument_fastapi
from app.services.artifact_store import create_artifact_store
from app.services.generation_backend import create_generation_backend
from app.services.ledger import CreditLedger
from app.services.orchestrator import GenerationOrchestrator, PipelineConfig
from app.services.rate_limiter import create_rate_limiter
from app.services.records import GenerationRecordRepository
from app.services.usage import UsageRecorder

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds the pipeline adapters on startup and releases them on shutdown.
    """
    # Startup
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        rate_limiter_configured=bool(settings.redis_url),
    )

    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations)

    if not settings.redis_url:
        logger.warning("rate_limiter_not_configured")

    session_factory = get_session_factory()
    http_client = httpx.AsyncClient(timeout=settings.source_fetch_timeout_seconds)
    rate_limiter = create_rate_limiter()

    app.state.http_client = http_client
    app.state.orchestrator = GenerationOrchestrator(
        ledger=CreditLedger(session_factory),
        rate_limiter=rate_limiter,
        artifact_store=create_artifact_store(),
        backend=create_generation_backend(),
        records=GenerationRecordRepository(session_factory),
        usage=UsageRecorder(session_factory, timeout_seconds=settings.usage_log_timeout_seconds),
        http_client=http_client,
        config=PipelineConfig.from_settings(settings),
    )

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await http_client.aclose()
    await rate_limiter.close()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


def error_response(
    status_code: int,
    error: str,
    message: str | None = None,
    credits_remaining: int | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Shared JSON error body."""
    body = ErrorResponse(error=error, message=message, credits_remaining=credits_remaining)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    """Map pipeline errors to their status code and error body."""
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}

    # 5xx details stay in the logs
    message = exc.message if exc.status_code < 500 else None
    return error_response(
        exc.status_code,
        exc.error,
        message=message,
        credits_remaining=exc.credits_remaining,
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (404, 405) in the shared error shape."""
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


# Add validation error logging handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Log validation errors and answer 400 with a short reason."""
    errors = exc.errors()

    # Sanitize errors for logging (ctx and input may hold large or non-serializable objects)
    sanitized_errors = [
        {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
        for error in errors
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )

    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    reason = first.get("msg", "Invalid request")
    message = f"{location}: {reason}" if location else reason
    return error_response(400, "Invalid request", message=message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected becomes a bare 500."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return error_response(500, "Internal server error")


# Setup tracing
setup_tracing()
instrument_fastapi(app)


# Proxy headers middleware - trust X-Forwarded-* headers from the load balancer
class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to handle X-Forwarded-* headers from reverse proxy."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto

        return await call_next(request)


app.add_middleware(ProxyHeadersMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["Retry-After", "X-Request-ID", "Content-Disposition"],
)


def route_label(request: Request) -> str:
    """Route template for metric labels; unmatched paths share one label."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else "unmatched"


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log and time every request under a request id echoed back to the caller."""
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    method = request.method

    with log_context(http_request_id=request_id):
        logger.info("request_started", method=method, path=request.url.path)
        metrics.http_requests_in_progress.labels(method=method).inc()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start
            metrics.record_http_request(route_label(request), method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                method=method,
                path=request.url.path,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise
        finally:
            metrics.http_requests_in_progress.labels(method=method).dec()

        duration = time.perf_counter() - start
        metrics.record_http_request(route_label(request), method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=request.url.path,
            status_code=response.status_code,
            duration_seconds=round(duration, 4),
        )

    response.headers["X-Request-ID"] = request_id
    return response


# Register routes
app.include_router(router)  # Generation pipeline
app.include_router(status_router)  # Health check


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    if not settings.metrics_enabled:
        return error_response(404, "Not Found")
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
