from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import Callable

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError

from app.schemas import AMReceiverData, AMReceiverResponse
from app.services.fleet_webhook_service import FLEET_WEBHOOK_RECEIVER_PATH
from app.services.fleet_webhook_service import process_am_receiver as process_fleet_am_receiver
from app.services.metrics_service import METRIC_REQUEST_FAILURE, reset_metric, set_request_failure
from app.services.webhook_service import WEBHOOK_RECEIVER_PATH, process_am_receiver

logger = logging.getLogger("notifications.webhook.http")

router = APIRouter()

_RECEIVER_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
DISCONNECT_POLL_SECONDS = 0.5


async def _watch_disconnect(request: Request, cancel_event: threading.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected path=%s; cancelling remaining alerts", request.url.path)
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _receive_alerts(
    request: Request,
    path: str,
    processor: Callable[..., AMReceiverResponse],
) -> Response:
    if request.method != "POST":
        return PlainTextResponse("Method Not Allowed\n", status_code=405)

    body = await request.body()
    try:
        data = AMReceiverData.model_validate_json(body)
    except ValidationError as exc:
        logger.error("Failed to process request body path=%s: %s", path, exc.errors()[:1])
        set_request_failure(path)
        return PlainTextResponse("Bad request body\n", status_code=400)

    cancel_event = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        response = await run_in_threadpool(processor, data, cancel_event=cancel_event)
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher

    reset_metric(METRIC_REQUEST_FAILURE)
    return JSONResponse(status_code=response.code, content=response.model_dump(mode="json"))


@router.api_route(WEBHOOK_RECEIVER_PATH, methods=_RECEIVER_METHODS, response_model=None)
async def alertmanager_receiver(request: Request) -> Response:
    return await _receive_alerts(request, WEBHOOK_RECEIVER_PATH, process_am_receiver)


@router.api_route(FLEET_WEBHOOK_RECEIVER_PATH, methods=_RECEIVER_METHODS, response_model=None)
async def alertmanager_fleet_receiver(request: Request) -> Response:
    return await _receive_alerts(request, FLEET_WEBHOOK_RECEIVER_PATH, process_fleet_am_receiver)
