"""
Delivery Order Core: FastAPI Application

Order lifecycle state machine, courier assignment, cancellation penalties,
rating aggregation and real-time notification fan-out.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from domain.errors import DomainError
from domain.responses import error_body
from routes import admin, driver, health, orders, payments, realtime
from services.notification_service import ConnectionRegistry, NotificationDispatcher

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def install_realtime(app: FastAPI) -> None:
    """One connection registry and notifier per application instance."""
    app.state.connections = ConnectionRegistry()
    app.state.notifier = NotificationDispatcher(app.state.connections)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: validate settings, create DB tables. Shutdown: flush pending notifications."""
    # Ensure data/ directory exists for SQLite
    os.makedirs("data", exist_ok=True)

    settings.validate_production_settings()

    from database import init_db
    await init_db()
    logger.info("Database initialized")

    yield  # app runs here

    pending = app.state.notifier.pending
    if pending:
        logger.info(f"Waiting for {pending} in-flight notifications")
    await app.state.notifier.drain()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Delivery Order Core API",
    description="Order state machine, courier assignment, cancellations, ratings and real-time notifications",
    version="1.0.0",
    lifespan=lifespan,
)
install_realtime(app)

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
app.include_router(driver.router)
app.include_router(admin.router)
app.include_router(payments.router)
app.include_router(realtime.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions (including order store connectivity loss).

    Never return raw exception details to clients. The full traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body("internal_server_error", "Internal server error"),
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    """Rejections from the order core: status from the class, code and details in the envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.details or None),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Framework errors (unknown route, wrong method) in the same envelope."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=error_body("http_error", message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed bodies and parameters share the validation_failed code with domain validation."""
    return JSONResponse(
        status_code=400,
        content=error_body(
            "validation_failed",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        ),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
