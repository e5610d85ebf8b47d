import logging
import time
from contextlib import asynccontextmanager
from zoneinfo import ZoneInfo

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .cache import cache, get_redis_client
from .config import LOG_LEVEL, SCHEDULE_TIMEZONE
from .domain.scheduling.errors import SchedulingError
from .domain.scheduling.repository import ScheduleRepository
from .domain.scheduling.router import router as schedule_router
from .services.schedule_api import ScheduleApiClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    client = ScheduleApiClient()
    app.state.schedule_client = client
    app.state.cache = cache
    app.state.schedule_repository = ScheduleRepository(
        client, tz=ZoneInfo(SCHEDULE_TIMEZONE), cache=cache
    )

    try:
        get_redis_client()  # Connection test
        logger.info("Redis connection established")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed - reference data will not be cached: {e}")

    yield
    logger.info("Application shutting down...")
    await client.aclose()


app = FastAPI(title="Visit Scheduling API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    """Conflicts, validation and backend failures keep their error_type for the client"""
    if exc.is_conflict:
        logger.info(f"Conflict on {request.method} {request.url.path}: {exc.kind}")
    else:
        logger.warning(f"Scheduling error on {request.method} {request.url.path}: {exc.kind} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"error_type": "validation", "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx may hold the raw exception instance, which is not JSON serializable
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


app.include_router(schedule_router)


@app.get("/")
def root():
    return {"status": "ok", "service": "visit-scheduling"}


@app.get("/health/redis")
async def redis_health_check():
    """Check Redis connectivity for monitoring"""
    try:
        redis_client = get_redis_client()

        start_time = time.time()
        redis_client.ping()
        response_time = (time.time() - start_time) * 1000  # Convert to milliseconds

        return {
            "status": "healthy",
            "redis": {"connected": True, "response_time_ms": round(response_time, 2)},
        }
    except redis.RedisError as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
