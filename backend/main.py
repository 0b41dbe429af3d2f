"""
Bugsymart Order & Delivery API — FastAPI Application

Order lifecycle, rider delivery tracking, buyer notifications, the
real-time event log and the live WebSocket channel.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from domain.errors import DomainError
from domain.responses import error_response
from routes import deliveries, events, health, notifications, orders, sellers, ws
from services.broadcaster import InMemoryBroadcaster

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create DB tables, start dispatcher. Shutdown: stop dispatcher."""
    # Ensure data/ directory exists for SQLite
    os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    from services import dispatcher_service
    await dispatcher_service.start(app.state.broadcaster)

    yield  # app runs here

    await dispatcher_service.stop()
    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Bugsymart Order & Delivery API",
    description="Orders, deliveries, notifications and live tracking for the Bugsymart marketplace",
    version="1.0.0",
    lifespan=lifespan,
)

# One broadcaster for the life of the process; handlers get it via deps.get_broadcaster
app.state.broadcaster = InMemoryBroadcaster(send_timeout=settings.ws_send_timeout_seconds)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(deliveries.router)
app.include_router(notifications.router)
app.include_router(events.router)
app.include_router(sellers.router)
app.include_router(ws.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the full traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_server_error", "Internal server error"),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if isinstance(exc, DomainError):
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(error_code, exc.message, exc.details),
            headers=exc.headers,
        )

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response("http_error", message, detail if not isinstance(detail, str) else None),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Malformed bodies / query params -> 422 in the standard envelope."""
    return JSONResponse(
        status_code=422,
        content=error_response(
            "validation_error",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        ),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
