"""
main.py
FastAPI application entry point for the court booking engine.
Wires routers, middleware, exception handlers and startup/shutdown.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

import config.redis_client as redis_state
from config.database import AsyncSessionLocal, close_db, init_db
from config.redis_client import RedisCache, close_redis, init_redis
from config.settings import settings
from shared.exceptions import DomainException

# Service routers
from services.admin.router import router as admin_router
from services.booking.router import router as booking_router
from services.lesson.router import router as lesson_router
from services.notification.router import router as notification_router
from services.recurring.router import router as recurring_router
from services.slots.router import router as slots_router

UNLIMITED_PATHS = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


logger = logging.getLogger(__name__)


# ── Startup data ──────────────────────────────────────────────

async def seed_initial_data() -> None:
    """Courts and the slot grid on an empty database (development only)."""
    from services.slots.catalog import seed_reference_data

    async with AsyncSessionLocal() as db:
        await seed_reference_data(db)
        await db.commit()
    if redis_state.redis_client:
        await RedisCache(redis_state.redis_client).invalidate_catalog()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})")

    await init_db()
    await init_redis()
    logger.info("Database and Redis connected")

    if settings.APP_ENV == "development":
        await seed_initial_data()

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── Health probes ─────────────────────────────────────────────

async def _database_ok() -> bool:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health probe failed: {e}")
        return False


async def _redis_ok() -> bool:
    if not redis_state.redis_client:
        return False
    try:
        return bool(await redis_state.redis_client.ping())
    except Exception as e:
        logger.warning(f"Redis health probe failed: {e}")
        return False


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Court Booking Engine API

Scheduling for a sports facility's badminton and pickleball courts:
- **Availability**: court × 30-minute slot grid per day
- **Bookings**: all-or-nothing allocation, expiry of unconfirmed bookings
- **Recurring**: weekly templates, grouped into logical sessions
- **Lessons**: coaching sessions blocking whole time ranges
- **Admin**: payment confirmation, expiration sweep, job codes

### Identity
The gateway authenticates callers and forwards `X-User-Id`.
Anonymous callers may book as guests.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (last added runs first) ─────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Fixed-window limit for anonymous callers, keyed by client IP.
        Identified callers and infrastructure paths pass straight through.
        Redis being down never blocks a request.
        """
        if request.url.path in UNLIMITED_PATHS or request.headers.get("X-User-Id"):
            return await call_next(request)

        client = redis_state.redis_client
        if client:
            client_ip = request.client.host if request.client else "unknown"
            try:
                allowed = await RedisCache(client).check_rate_limit(
                    f"rate:unauth:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE
                )
            except Exception as e:
                logger.error(f"Rate limit check failed: {e}")
                allowed = True
            if not allowed:
                logger.warning(f"Rate limit exceeded for IP {client_ip}")
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Rate limit exceeded. Please slow down."},
                    headers={"Retry-After": "60"},
                )

        return await call_next(request)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Tag every request with X-Request-ID and report X-Process-Time."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{round((time.perf_counter() - start) * 1000, 2)}ms"
        return response

    # ── Exception Handlers ─────────────────────────────────────────

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error(f"[{request_id}] {exc.code}: {exc.message}", exc_info=exc)
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": "An internal server error occurred", "request_id": request_id},
            )
        http_exc = exc.to_http_exception()
        return JSONResponse(
            status_code=http_exc.status_code,
            content={"detail": http_exc.detail, "request_id": request_id},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all. Storage internals are only shown in debug mode."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Unhandled {type(exc).__name__}: {exc}", exc_info=exc)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        return JSONResponse(status_code=500, content={"detail": detail, "request_id": request_id})

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        database, redis = await _database_ok(), await _redis_ok()
        healthy = database and redis
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "ok" if healthy else "degraded",
                "version": settings.APP_VERSION,
                "database": "ok" if database else "error",
                "redis": "ok" if redis else "error",
            },
        )

    @app.get("/", include_in_schema=False)
    async def root():
        return {"name": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}

    for router in (
        slots_router,
        booking_router,
        recurring_router,
        lesson_router,
        notification_router,
        admin_router,
    ):
        app.include_router(router)

    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
    )
