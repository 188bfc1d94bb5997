# app/main.py
"""
Booking service: books appointments on the shared Google calendar.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import health, schedule
from app.services.calendar.booking_service import AppointmentBookingService
from app.services.calendar.google_client import GoogleCalendarService
from app.services.google_oauth_service import GoogleAccessTokenProvider
from app.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, port=settings.PORT)

    missing = settings.missing_calendar_settings()
    if missing:
        logger.error("Missing calendar settings", missing=missing)
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")

    startup_tasks = []
    calendar = None

    try:
        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
        startup_tasks.append("redis")

        calendar = GoogleCalendarService()
        app.state.booking_service = AppointmentBookingService(
            calendar=calendar,
            token_provider=GoogleAccessTokenProvider(),
            idempotency_store=fast_redis,
        )
        startup_tasks.append("calendar")

        logger.info(
            "All services initialized successfully",
            services=startup_tasks,
            calendar_id=settings.GOOGLE_CALENDAR_ID,
        )

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if calendar is not None:
            await calendar.close()
        if "redis" in startup_tasks:
            await fast_redis.close()

        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await calendar.close()
    except Exception as e:
        logger.error("Error closing calendar client", error=str(e))
        shutdown_errors.append(f"Calendar: {e}")

    try:
        logger.info("Closing Redis connection")
        await fast_redis.close()
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))
        shutdown_errors.append(f"Redis: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Visit Booking Service",
    description="Books tour appointments on the shared Google calendar",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(schedule.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are answered with 400, not FastAPI's 422."""
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": "invalid_request",
            "details": jsonable_encoder(
                [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]
            ),
        },
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
