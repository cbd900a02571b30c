"""
Create-App Dispatch - FastAPI Application
Triggers, queues and retries create-app workflows under a global concurrency cap
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
from datetime import datetime, timezone

from app.api.cors import PreflightCORSMiddleware
from app.config import settings
from app.core.exceptions import AppError
from app.integrations.integrator import IntegratorClient
from app.integrations.supabase import SupabaseStore
from app.services.queue_drainer import QueueDrainer
from app.services.trigger_orchestrator import TriggerOrchestrator

from app.api.routes import health
from app.api.v1 import admin, workflows

logging.basicConfig(
    level=logging.DEBUG if settings.app_debug else settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

MISSING_ERROR_TYPES = {"missing", "string_too_short"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Starting %s...", settings.app_name)

    store = SupabaseStore()
    integrator = IntegratorClient()
    app.state.store = store
    app.state.integrator = integrator

    drainer = None
    if settings.queue_drain_enabled:
        drainer = QueueDrainer(
            lambda: TriggerOrchestrator(store, integrator),
            poll_seconds=settings.queue_drain_interval_seconds,
        )
        drainer.start()
        logger.info("Queue drainer started (every %ss)", settings.queue_drain_interval_seconds)
    app.state.queue_drainer = drainer

    logger.info("API running on %s environment", settings.app_env)
    yield
    # Shutdown
    if drainer is not None:
        await drainer.stop()
    await integrator.close()
    await store.close()
    logger.info("Shutting down %s...", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Admission control and queueing for create-app workflow runs",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.to_payload())
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    missing = [str(err["loc"][-1]) for err in exc.errors() if err.get("type") in MISSING_ERROR_TYPES]
    if missing:
        message = f"Missing required field{'s' if len(missing) > 1 else ''}: {', '.join(missing)}"
    else:
        message = "Invalid request body"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message, "details": jsonable_errors(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return JSONResponse(status_code=exc.status_code, content={"error": "Method not allowed"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]


@app.get("/")
async def root() -> dict:
    return {
        "name": settings.app_name,
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.include_router(health.router, prefix=settings.api_prefix, tags=["Health"])
app.include_router(workflows.router, prefix=settings.api_prefix, tags=["Workflows"])
app.include_router(admin.router, prefix=settings.api_prefix, tags=["Admin"])
