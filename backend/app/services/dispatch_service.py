from __future__ import annotations

import json
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from app.schemas import AlertItem, AMReceiverData
from app.services.alert_matcher import (
    AlertNotActionableError,
    InvalidAlertError,
    NotificationTemplateNotFoundError,
)
from app.services.metrics_service import (
    METRIC_RESPONSE_FAILURE,
    count_service_log_sent,
    reset_metric,
    set_response_failure,
)
from app.services.service_log_client import ServiceLogSender, ServiceLogSendError, send_service_log

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.notification_records import (  # noqa: E402
    ConditionRecord,
    DocumentConflictError,
    DocumentStoreError,
    ResendTarget,
    can_send,
)

logger = logging.getLogger("notifications.dispatch")

DISPATCH_SENT = "SENT"
DISPATCH_SKIPPED = "SKIPPED"
DISPATCH_RESOLUTION_RECORDED = "RESOLUTION_RECORDED"
DEFAULT_STATUS_UPDATE_ATTEMPTS = 5
SERVICE_LOGS_METRIC_SERVICE = "service_logs"


class StatusUpdateConflictError(RuntimeError):
    """Raised when a status write keeps conflicting after every allowed retry."""

    def __init__(self, target: ResendTarget, attempts: int):
        super().__init__(
            f"status update for {target.kind} {target.namespace}/{target.document_name} "
            f"still conflicting after {attempts} attempts"
        )
        self.attempts = attempts


@dataclass(frozen=True)
class DispatchOutcome:
    status: str
    notification_name: str
    target_id: str
    firing: bool
    sent_count: int


def _isoformat_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _emit_dispatch_event(
    *,
    status: str,
    target: ResendTarget,
    firing: bool,
    sent_count: int | None = None,
    error: str | None = None,
) -> None:
    payload: dict[str, Any] = {
        "kind": "managed_notification_dispatch",
        "status": status,
        "firing": firing,
        "sent_count": sent_count,
        "error": error,
        "logged_at": _isoformat_utc(datetime.now(timezone.utc)),
    }
    payload.update(target.describe())
    logger.info("dispatch_event %s", json.dumps(payload, separators=(",", ":"), ensure_ascii=False))


def persist_with_retry(
    target: ResendTarget,
    mutate: Callable[[ConditionRecord], None],
    *,
    document: Any | None = None,
    max_attempts: int = DEFAULT_STATUS_UPDATE_ATTEMPTS,
    database_url: str | None = None,
) -> ConditionRecord:
    """Apply ``mutate`` to the target's record and write the status.

    On a version conflict the document is read again and the mutation re-applied to
    the fresh copy; the identical stale write is never retried.
    """
    attempts = max(1, int(max_attempts))
    current = document
    for attempt in range(1, attempts + 1):
        if current is None:
            current = target.load(database_url)
        record = target.locate_or_create(current)
        mutate(record)
        try:
            target.save_status(current, database_url=database_url)
            return record
        except DocumentConflictError as exc:
            logger.warning(
                "Status update conflict attempt=%s/%s notification=%s target_id=%s: %s",
                attempt,
                attempts,
                target.notification.name,
                target.target_id,
                exc,
            )
            current = None
    raise StatusUpdateConflictError(target, attempts)


def dispatch_notification(
    target: ResendTarget,
    *,
    firing: bool,
    sender: ServiceLogSender | None = None,
    max_attempts: int = DEFAULT_STATUS_UPDATE_ATTEMPTS,
    database_url: str | None = None,
    now: datetime | None = None,
) -> DispatchOutcome:
    """Decide, send and record one notification for one target.

    A send that succeeded is never repeated: if persisting the new ledger fails
    afterwards the error propagates and the service log stays delivered.
    """
    notification = target.notification
    send = sender or send_service_log
    current_time = now or datetime.now(timezone.utc)

    document = target.load(database_url)
    record = target.locate_or_create(document)
    resend_wait = target.resend_wait(document)

    if not can_send(
        record.conditions,
        firing,
        resend_wait,
        has_resolved_body=notification.has_resolved_body,
        now=current_time,
    ):
        if firing:
            logger.info(
                "Not sending a notification as one was already sent recently notification=%s resend_wait=%s",
                notification.name,
                resend_wait,
            )
        else:
            logger.info(
                "Not sending a resolve notification (not firing or resolved body empty) notification=%s",
                notification.name,
            )
            if record.is_firing():
                updated = persist_with_retry(
                    target,
                    lambda item: item.record_resolution(current_time),
                    document=document,
                    max_attempts=max_attempts,
                    database_url=database_url,
                )
                _emit_dispatch_event(
                    status=DISPATCH_RESOLUTION_RECORDED,
                    target=target,
                    firing=firing,
                    sent_count=updated.sent_count,
                )
                return DispatchOutcome(
                    status=DISPATCH_RESOLUTION_RECORDED,
                    notification_name=notification.name,
                    target_id=target.target_id,
                    firing=firing,
                    sent_count=updated.sent_count,
                )

        _emit_dispatch_event(status=DISPATCH_SKIPPED, target=target, firing=firing, sent_count=record.sent_count)
        return DispatchOutcome(
            status=DISPATCH_SKIPPED,
            notification_name=notification.name,
            target_id=target.target_id,
            firing=firing,
            sent_count=record.sent_count,
        )

    logger.info("Will send service log notification=%s firing=%s", notification.name, firing)
    try:
        send(
            notification.summary,
            notification.active_description,
            notification.resolved_description,
            target.target_id,
            notification.severity,
            notification.log_type,
            list(notification.references),
            firing,
        )
    except Exception as exc:  # noqa: BLE001
        set_response_failure(SERVICE_LOGS_METRIC_SERVICE)
        _emit_dispatch_event(status="SEND_FAILED", target=target, firing=firing, error=str(exc))
        if isinstance(exc, ServiceLogSendError):
            raise
        raise ServiceLogSendError(f"unable to send service log: {exc}") from exc

    reset_metric(METRIC_RESPONSE_FAILURE)
    count_service_log_sent(notification.name, "firing" if firing else "resolved")

    try:
        updated = persist_with_retry(
            target,
            lambda item: item.record_send(firing, current_time),
            document=document,
            max_attempts=max_attempts,
            database_url=database_url,
        )
    except (DocumentStoreError, StatusUpdateConflictError) as exc:
        _emit_dispatch_event(status="PERSIST_FAILED", target=target, firing=firing, error=str(exc))
        raise

    _emit_dispatch_event(status=DISPATCH_SENT, target=target, firing=firing, sent_count=updated.sent_count)
    return DispatchOutcome(
        status=DISPATCH_SENT,
        notification_name=notification.name,
        target_id=target.target_id,
        firing=firing,
        sent_count=updated.sent_count,
    )


def iter_alerts(data: AMReceiverData) -> Iterable[tuple[AlertItem, bool]]:
    for alert in data.firing():
        yield alert, True
    for alert in data.resolved():
        yield alert, False


def process_alert_batch(
    data: AMReceiverData,
    handle_alert: Callable[[AlertItem, bool], DispatchOutcome],
    *,
    cancel_event: threading.Event | None = None,
) -> dict[str, int]:
    """Run ``handle_alert`` for every firing then resolved alert; one failure never stops the rest."""
    summary = {"processed": 0, "sent": 0, "skipped": 0, "failed": 0}
    for alert, firing in iter_alerts(data):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Alert batch cancelled after processed=%s alerts", summary["processed"])
            break

        summary["processed"] += 1
        alert_name = alert.labels.get("alertname", "")
        try:
            outcome = handle_alert(alert, firing)
        except AlertNotActionableError as exc:
            logger.info("Alert does not meet valid criteria alertname=%s: %s", alert_name, exc)
            summary["skipped"] += 1
            continue
        except InvalidAlertError as exc:
            logger.warning("Invalid alert skipped alertname=%s: %s", alert_name, exc)
            summary["failed"] += 1
            continue
        except NotificationTemplateNotFoundError as exc:
            logger.error("Unable to locate corresponding notification template alertname=%s: %s", alert_name, exc)
            summary["failed"] += 1
            continue
        except ServiceLogSendError as exc:
            logger.error("Unable to send a notification alertname=%s firing=%s: %s", alert_name, firing, exc)
            summary["failed"] += 1
            continue
        except (DocumentStoreError, StatusUpdateConflictError) as exc:
            logger.error("Unable to update notification status alertname=%s: %s", alert_name, exc)
            summary["failed"] += 1
            continue
        except Exception:  # noqa: BLE001
            logger.exception("Alert could not be processed alertname=%s firing=%s", alert_name, firing)
            summary["failed"] += 1
            continue

        if outcome.status == DISPATCH_SENT:
            summary["sent"] += 1
        else:
            summary["skipped"] += 1
    return summary
