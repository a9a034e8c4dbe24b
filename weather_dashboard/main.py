"""FastAPI application exposing the weather dashboard state."""

import asyncio
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest
from slowapi.errors import RateLimitExceeded

from weather_dashboard.core.config import Settings, settings
from weather_dashboard.core.logging import configure_logging, get_logger
from weather_dashboard.middleware.rate_limit import (
    REFRESH_RATE_LIMIT,
    limiter,
    rate_limit_exceeded_handler,
)
from weather_dashboard.models.weather import (
    DashboardState,
    ErrorResponse,
    ForecastRecord,
    HealthResponse,
    WeatherRecord,
)
from weather_dashboard.services.cache import CacheService
from weather_dashboard.services.orchestrator import FetchOrchestrator
from weather_dashboard.services.retry import RetryExecutor
from weather_dashboard.services.weather import WeatherService

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "weather_dashboard_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "weather_dashboard_request_duration_seconds",
    "Request duration in seconds",
    ["method", "endpoint"],
)


def build_orchestrator(config: Settings = settings) -> FetchOrchestrator:
    """Wire cache, fetch client and retry policy into an orchestrator."""
    cache = CacheService(ttl=config.cache_ttl, enabled=config.caching_enabled)
    service = WeatherService(config=config, cache=cache)
    return FetchOrchestrator(
        cities=config.cities,
        service=service,
        config=config,
        retry=RetryExecutor(max_attempts=config.retry_attempts),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Activate the dashboard on startup and deactivate it on shutdown."""
    logger.info("application_starting", version=settings.app_version)

    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = build_orchestrator(settings)
        app.state.orchestrator = orchestrator

    # The first visible refresh runs in the background so startup is not
    # held up by retries against the remote API.
    activation = asyncio.create_task(orchestrator.activate())
    logger.info("application_started", cities=list(orchestrator.cities))

    yield

    logger.info("application_shutting_down")
    if not activation.done():
        activation.cancel()
    await asyncio.gather(activation, return_exceptions=True)
    await orchestrator.deactivate()
    await orchestrator.service.close()
    logger.info("application_stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Weather dashboard backend with retry, caching and background refresh",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def get_orchestrator(request: Request) -> FetchOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Dashboard not initialized")
    return orchestrator


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Add correlation ID to each request for tracing."""
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Track request metrics."""
    method = request.method
    path = request.url.path

    with REQUEST_DURATION.labels(method=method, endpoint=path).time():
        response = await call_next(request)

    REQUEST_COUNT.labels(method=method, endpoint=path, status=response.status_code).inc()

    return response


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Combined health check",
    tags=["Health"],
)
async def health_check(request: Request):
    """Report service status together with fetch cycle progress.

    The status is ``degraded`` while any record carries an error.
    """
    orchestrator = get_orchestrator(request)

    logger.info("health_check", has_errors=orchestrator.has_errors)

    return HealthResponse(
        status="degraded" if orchestrator.has_errors else "healthy",
        version=settings.app_version,
        cycles_completed=orchestrator.cycle_count,
        auto_refresh_running=orchestrator.auto_refresh_running,
    )


@app.get("/health/live", summary="Liveness probe", tags=["Health"])
async def liveness():
    """Return 200 as long as the process is serving requests."""
    return {"status": "alive"}


@app.get(
    "/health/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    tags=["Health"],
    responses={503: {"description": "Service is not ready"}},
)
async def readiness(request: Request):
    """Ready once at least one fetch cycle has completed.

    Raises:
        HTTPException: 503 if no fetch cycle completed yet
    """
    orchestrator = get_orchestrator(request)

    if orchestrator.cycle_count == 0:
        logger.warning("readiness_check_failed", cycles_completed=0)
        raise HTTPException(status_code=503, detail="Service not ready: no fetch cycle completed")

    return HealthResponse(
        status="ready",
        version=settings.app_version,
        cycles_completed=orchestrator.cycle_count,
        auto_refresh_running=orchestrator.auto_refresh_running,
    )


@app.get(
    "/dashboard",
    response_model=DashboardState,
    summary="Dashboard snapshot",
    tags=["Dashboard"],
)
async def get_dashboard(request: Request):
    """Return every weather and forecast record with the aggregate flags."""
    return get_orchestrator(request).snapshot()


@app.get(
    "/weather/{city}",
    response_model=WeatherRecord,
    summary="Current conditions of a tracked city",
    tags=["Dashboard"],
    responses={404: {"model": ErrorResponse, "description": "City is not tracked"}},
)
async def get_weather(request: Request, city: str):
    record = get_orchestrator(request).weather_for(city)
    if record is None:
        raise HTTPException(status_code=404, detail=f"City '{city}' is not tracked")
    return record


@app.get(
    "/forecast/{city}",
    response_model=ForecastRecord,
    summary="Forecast of a tracked city",
    tags=["Dashboard"],
    responses={404: {"model": ErrorResponse, "description": "City is not tracked"}},
)
async def get_forecast(request: Request, city: str):
    record = get_orchestrator(request).forecast_for(city)
    if record is None:
        raise HTTPException(status_code=404, detail=f"City '{city}' is not tracked")
    return record


@app.post(
    "/refresh",
    response_model=DashboardState,
    summary="Run a visible refresh",
    description="Resets every record to loading and fetches all cities again. "
    f"**Rate Limit**: {REFRESH_RATE_LIMIT} per IP address",
    tags=["Dashboard"],
)
@limiter.limit(REFRESH_RATE_LIMIT)
async def refresh(request: Request):
    """Run a fetch cycle and return the resulting snapshot.

    Args:
        request: FastAPI request object (for rate limiting)
    """
    orchestrator = get_orchestrator(request)
    logger.info("manual_refresh_requested")
    return await orchestrator.refresh()


@app.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics",
    tags=["Monitoring"],
)
async def metrics():
    """Prometheus metrics endpoint."""
    return generate_latest()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weather_dashboard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
