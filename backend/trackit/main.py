"""
backend/trackit/main.py

Purpose:
    FastAPI entrypoint. The lifespan is the composition root: it configures
    logging, opens MongoDB, builds the live engine and stores it on
    ``app.state.engine`` for the routers, then tears everything down in reverse.

Dependencies:
    - trackit.database
    - trackit.services.live_engine
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, OperationFailure

import trackit.database as _db
from trackit.config import settings
from trackit.database import close_db, connect_db
from trackit.middleware.logging import StructuredLoggingMiddleware, setup_logging
from trackit.routers.bets import router as bets_router
from trackit.routers.live import router as live_router
from trackit.routers.ws import router as ws_router
from trackit.services.live_engine import build_engine

logger = logging.getLogger("trackit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_db()
    app.state.engine = build_engine(settings)
    await app.state.engine.start()
    try:
        yield
    finally:
        await app.state.engine.stop()
        await close_db()


def _error(status_code: int, detail: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


async def _on_validation_error(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        # Drop the leading "body"/"query" segment from the location.
        loc = [str(part) for part in err.get("loc", ())]
        errors.append({"field": ".".join(loc[1:] or loc) or "unknown", "message": err.get("msg", "Invalid value.")})
    return _error(422, "Validation error.", errors=errors)


async def _on_db_unavailable(request: Request, exc: ConnectionFailure):
    # ServerSelectionTimeoutError is a ConnectionFailure subclass.
    logger.error("MongoDB unavailable during %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return _error(503, "Service temporarily unavailable.")


async def _on_db_operation_error(request: Request, exc: OperationFailure):
    logger.error("MongoDB rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "An internal error occurred.")


async def _on_unhandled(request: Request, exc: Exception):
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return _error(500, "An internal error occurred.")


def _install_error_handlers(application: FastAPI) -> None:
    application.add_exception_handler(RequestValidationError, _on_validation_error)
    application.add_exception_handler(ConnectionFailure, _on_db_unavailable)
    application.add_exception_handler(OperationFailure, _on_db_operation_error)
    application.add_exception_handler(Exception, _on_unhandled)


app = FastAPI(
    title="TrackIT",
    description="Live score tracking for imported betting tickets",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)
app.add_middleware(StructuredLoggingMiddleware)
_install_error_handlers(app)

for _router in (live_router, bets_router, ws_router):
    app.include_router(_router)


@app.get("/health")
async def health(request: Request):
    """Database ping plus poller and provider circuit state."""
    try:
        db_ok = (await _db.db.command("ping")).get("ok") == 1.0
    except Exception:
        logger.warning("Health check ping failed", exc_info=True)
        db_ok = False

    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "live_poller": bool(engine and engine.poller.running),
        "providers": engine.adapter.provider_status() if engine else {},
    }
