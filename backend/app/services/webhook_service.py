from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from app.config import Settings, get_settings
from app.schemas import AlertItem, AMReceiverData, AMReceiverResponse
from app.services.alert_matcher import get_notification, template_name_for, validate_alert
from app.services.dispatch_service import DispatchOutcome, dispatch_notification, process_alert_batch
from app.services.service_log_client import ServiceLogSender

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.notification_records import (  # noqa: E402
    KIND_MANAGED_NOTIFICATION,
    ClusterNotificationTarget,
    DocumentStoreError,
    ManagedNotification,
    list_documents,
)

logger = logging.getLogger("notifications.webhook")

WEBHOOK_RECEIVER_PATH = "/alertmanager-receiver"


def list_managed_notifications(namespace: str, database_url: str | None = None) -> list[ManagedNotification]:
    return [
        ManagedNotification.from_document(document)
        for document in list_documents(KIND_MANAGED_NOTIFICATION, namespace, database_url=database_url)
    ]


def process_alert(
    alert: AlertItem,
    managed_notifications: list[ManagedNotification],
    firing: bool,
    *,
    settings: Settings | None = None,
    sender: ServiceLogSender | None = None,
    database_url: str | None = None,
) -> DispatchOutcome:
    """Validate one alert, map it to its template and dispatch it for this cluster."""
    resolved_settings = settings or get_settings()
    database_url = database_url or resolved_settings.database_url
    validate_alert(alert)
    notification, managed_notification = get_notification(template_name_for(alert), managed_notifications)

    target = ClusterNotificationTarget(
        notification=notification,
        namespace=managed_notification.namespace,
        document_name=managed_notification.name,
        target_id=resolved_settings.cluster_id,
    )
    return dispatch_notification(
        target,
        firing=firing,
        sender=sender,
        max_attempts=resolved_settings.bounded_status_update_attempts,
        database_url=database_url,
    )


def process_am_receiver(
    data: AMReceiverData,
    *,
    settings: Settings | None = None,
    sender: ServiceLogSender | None = None,
    database_url: str | None = None,
    cancel_event: threading.Event | None = None,
) -> AMReceiverResponse:
    resolved_settings = settings or get_settings()
    database_url = database_url or resolved_settings.database_url
    logger.info(
        "Process alert data receiver=%s status=%s alerts=%s",
        data.receiver,
        data.status,
        len(data.alerts),
    )

    try:
        managed_notifications = list_managed_notifications(
            resolved_settings.notifications_namespace,
            database_url=database_url,
        )
    except (DocumentStoreError, ValueError) as exc:
        logger.error("Unable to list ManagedNotifications namespace=%s: %s", resolved_settings.notifications_namespace, exc)
        return AMReceiverResponse(status="unable to list ManagedNotifications", code=500, error=str(exc))

    summary = process_alert_batch(
        data,
        lambda alert, firing: process_alert(
            alert,
            managed_notifications,
            firing,
            settings=resolved_settings,
            sender=sender,
            database_url=database_url,
        ),
        cancel_event=cancel_event,
    )
    logger.info(
        "Alert data processed processed=%s sent=%s skipped=%s failed=%s",
        summary["processed"],
        summary["sent"],
        summary["skipped"],
        summary["failed"],
    )
    return AMReceiverResponse(status="ok", code=200, error=None)
