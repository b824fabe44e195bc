"""
FastAPI application factory.

* Registers routes for rides and admin.
* Starts / stops the notification dispatcher via lifespan events.
* Maps ``AppError`` to JSON error responses; anything unclassified becomes
  a generic 500 with the details logged.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from escort.api.middleware import limiter
from escort.api.routes import admin, rides
from escort.config import settings
from escort.domain.errors import AppError, InternalError
from escort.infrastructure.redis_client import close_redis, get_redis
from escort.workers.notifier import NotificationDispatcher, RedisEventPublisher

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the notification dispatcher on startup; stop on shutdown."""
    publisher = RedisEventPublisher(await get_redis(), settings.notification_channel)
    dispatcher = NotificationDispatcher(
        publisher, maxsize=settings.notification_queue_size
    )
    app.state.notifier = dispatcher
    await dispatcher.start()
    yield
    await dispatcher.stop()
    await close_redis()


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError().to_dict())


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campus Escort Dispatch API",
        description=(
            "Books and dispatches short-distance escort rides.  Requesters "
            "submit a request and wait in a FIFO queue; responders claim "
            "and fulfil requests, one at a time."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Error mapping
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
