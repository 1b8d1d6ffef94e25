# Application entrypoint: wires the repository, booking services, background sweeper, and API routers.
from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import BookingPolicy, sweeper_interval_seconds
from .db import DATABASE_URL, Base, SessionLocal, engine
from .errors import BookingError
from .locks import PropertyLocks, connect_lock_redis
from .orchestrator import BookingOrchestrator
from .repository import SqlAlchemyBookingRepository
from .routes.bookings import router as bookings_router
from .routes.properties import router as properties_router
from .sweepers import start_expiry_sweeper

logger = logging.getLogger("booking_engine.api")

# Shutdown waits this long for an in-flight sweep to finish
SWEEPER_JOIN_TIMEOUT_SECONDS = 5.0


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: Optional[str]) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    # Map '*' to explicit localhost origins so credentialed requests remain allowed
    if "*" in origins:
        return default_dev_origins

    return origins


def default_orchestrator() -> BookingOrchestrator:
    policy = BookingPolicy.from_env()
    locks = PropertyLocks(connect_lock_redis(), ttl_ms=policy.lock_ttl_ms)
    return BookingOrchestrator(SqlAlchemyBookingRepository(SessionLocal), policy=policy, locks=locks)


def create_app(orchestrator: Optional[BookingOrchestrator] = None, run_sweeper: bool = True) -> FastAPI:
    """
    Build the API around an orchestrator (defaults to the SQLAlchemy-backed one from the environment).

    Startup:
    - For local SQLite, auto-create tables; production databases rely on Alembic migrations.
    - Start the hold-expiry sweeper unless disabled (tests drive it directly).
    """
    orchestrator = orchestrator or default_orchestrator()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        stop = threading.Event()
        sweeper = start_expiry_sweeper(orchestrator, sweeper_interval_seconds(), stop) if run_sweeper else None
        yield
        stop.set()
        if sweeper is not None:
            sweeper.join(timeout=SWEEPER_JOIN_TIMEOUT_SECONDS)

    app = FastAPI(title="Booking Engine API", version="0.1.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS")),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        http_exc = exc.to_http_exception()
        logger.info(
            "booking.request_failed",
            extra={"path": request.url.path, "code": exc.code, "status_code": http_exc.status_code},
        )
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    # Simple liveness endpoint for container orchestrators and uptime checks
    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    app.include_router(properties_router, prefix="/api/v1", tags=["properties"])
    app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
    return app


# Served by `uvicorn booking_engine.main:app`
app = create_app()
