import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.routers import health, metrics, webhook
from app.services.notification_definitions_service import apply_notification_definitions

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("notifications.api")

_PROBE_PATHS = frozenset({"/readyz", "/livez", "/metrics"})


@asynccontextmanager
async def app_lifespan(_: FastAPI):
    if settings.notification_definitions_path:
        try:
            apply_notification_definitions(
                settings.notification_definitions_path,
                namespace=settings.notifications_namespace,
                database_url=settings.database_url,
            )
        except (FileNotFoundError, ValueError) as exc:
            logger.error("Notification definitions were not loaded: %s", exc)
    yield


app = FastAPI(
    title="Managed Notification Dispatcher",
    description="Receives Alertmanager webhooks and delivers de-duplicated service logs",
    version="1.0.0",
    lifespan=app_lifespan,
)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        logger.exception(
            "Unhandled error: method=%s path=%s request_id=%s",
            request.method,
            request.url.path,
            request_id,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request_id},
            headers={"X-Request-ID": request_id},
        )

    duration_ms = (time.perf_counter() - started) * 1000.0
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    log = logger.debug if request.url.path in _PROBE_PATHS else logger.info
    log(
        "Request completed: method=%s path=%s status=%s duration_ms=%.2f request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        request_id,
    )
    return response


app.include_router(health.router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(webhook.router, tags=["webhook"])
