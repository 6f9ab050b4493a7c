from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Protocol

from app.config import Settings, get_settings

logger = logging.getLogger("notifications.service_logs")

SERVICE_LOG_ACTIVE_PREFIX = "Issue Notification"
SERVICE_LOG_RESOLVED_PREFIX = "Issue Resolution"
HEADER_OPERATION_ID = "X-Operation-Id"
_SUCCESS_STATUS = 201


class ServiceLogSendError(RuntimeError):
    """Raised when a service log could not be delivered."""

    def __init__(self, message: str, *, status_code: int | None = None, operation_id: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.operation_id = operation_id


class ServiceLogSender(Protocol):
    def __call__(
        self,
        summary: str,
        active_description: str,
        resolved_description: str,
        cluster_id: str,
        severity: str,
        log_type: str,
        references: list[str],
        firing: bool,
    ) -> None: ...


def _extract_reason(body: bytes) -> str | None:
    if not body:
        return None
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return body.decode("utf-8", errors="replace").split("\n")[0][:240] or None
    if isinstance(payload, dict) and payload.get("reason") is not None:
        return str(payload["reason"]).strip() or None
    return None


def response_checker(operation_id: str | None, status_code: int, body: bytes) -> None:
    """Interpret a service log API response; only 201 Created counts as delivered."""
    if status_code == _SUCCESS_STATUS:
        return

    reason = _extract_reason(body) or "no reason given"
    raise ServiceLogSendError(
        f"service log API returned HTTP {status_code} (operation_id={operation_id or 'unknown'}): {reason}",
        status_code=status_code,
        operation_id=operation_id,
    )


def build_service_log(
    *,
    summary: str,
    active_description: str,
    resolved_description: str,
    cluster_id: str,
    severity: str,
    log_type: str,
    references: list[str],
    firing: bool,
    service_name: str,
) -> dict[str, Any]:
    if firing:
        full_summary = f"{SERVICE_LOG_ACTIVE_PREFIX}: {summary}"
        description = active_description
    else:
        full_summary = f"{SERVICE_LOG_RESOLVED_PREFIX}: {summary}"
        description = resolved_description

    return {
        "severity": severity,
        "service_name": service_name,
        "cluster_uuid": cluster_id,
        "summary": full_summary,
        "description": description,
        "internal_only": False,
        "log_type": log_type,
        "doc_references": list(references),
    }


def send_service_log(
    summary: str,
    active_description: str,
    resolved_description: str,
    cluster_id: str,
    severity: str,
    log_type: str,
    references: list[str],
    firing: bool,
    *,
    settings: Settings | None = None,
) -> None:
    resolved_settings = settings or get_settings()
    payload = build_service_log(
        summary=summary,
        active_description=active_description,
        resolved_description=resolved_description,
        cluster_id=cluster_id,
        severity=severity,
        log_type=log_type,
        references=references,
        firing=firing,
        service_name=resolved_settings.service_name,
    )
    body_bytes = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if resolved_settings.ocm_access_token:
        headers["Authorization"] = f"Bearer {resolved_settings.ocm_access_token}"

    request = urllib.request.Request(
        url=resolved_settings.service_logs_url,
        data=body_bytes,
        headers=headers,
        method="POST",
    )

    try:
        with urllib.request.urlopen(request, timeout=resolved_settings.ocm_timeout_seconds) as response:  # noqa: S310
            status_code = int(getattr(response, "status", 0) or response.getcode())
            operation_id = response.headers.get(HEADER_OPERATION_ID)
            response_body = response.read()
    except urllib.error.HTTPError as exc:
        status_code = int(getattr(exc, "code", 0) or 0)
        operation_id = exc.headers.get(HEADER_OPERATION_ID) if exc.headers is not None else None
        response_body = exc.read() or b""
    except urllib.error.URLError as exc:
        raise ServiceLogSendError(f"service log API unreachable: {getattr(exc, 'reason', exc)}") from exc
    except TimeoutError as exc:
        raise ServiceLogSendError("service log API request timed out") from exc

    logger.debug(
        "Service log API responded status=%s operation_id=%s cluster_id=%s",
        status_code,
        operation_id,
        cluster_id,
    )
    response_checker(operation_id, status_code, response_body)
