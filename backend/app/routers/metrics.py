from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from app.services.metrics_service import render_prometheus_metrics

router = APIRouter()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> PlainTextResponse:
    try:
        return PlainTextResponse(render_prometheus_metrics(), media_type=PROMETHEUS_CONTENT_TYPE)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=500, detail=f"Metrics render error: {exc}") from exc
