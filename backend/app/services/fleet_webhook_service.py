from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from app.config import Settings, get_settings
from app.schemas import AlertItem, AMReceiverData, AMReceiverResponse
from app.services.alert_matcher import (
    AM_LABEL_ALERT_HC_ID,
    AM_LABEL_ALERT_MC_ID,
    get_fleet_notification,
    template_name_for,
    validate_alert,
)
from app.services.dispatch_service import DispatchOutcome, dispatch_notification, process_alert_batch
from app.services.service_log_client import ServiceLogSender

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.notification_records import FleetNotificationTarget, ManagedFleetNotification  # noqa: E402

logger = logging.getLogger("notifications.fleet_webhook")

FLEET_WEBHOOK_RECEIVER_PATH = "/alertmanager-fleet-receiver"


def process_alert(
    alert: AlertItem,
    managed_fleet_notification: ManagedFleetNotification,
    firing: bool,
    *,
    settings: Settings | None = None,
    sender: ServiceLogSender | None = None,
    database_url: str | None = None,
) -> DispatchOutcome:
    """Dispatch one alert for the hosted cluster it names, recorded under its management cluster."""
    resolved_settings = settings or get_settings()
    validate_alert(alert, fleet=True)

    target = FleetNotificationTarget(
        notification=managed_fleet_notification.fleet_notification,
        namespace=resolved_settings.notifications_namespace,
        management_cluster_id=alert.labels[AM_LABEL_ALERT_MC_ID].strip(),
        hosted_cluster_id=alert.labels[AM_LABEL_ALERT_HC_ID].strip(),
    )
    return dispatch_notification(
        target,
        firing=firing,
        sender=sender,
        max_attempts=resolved_settings.bounded_status_update_attempts,
        database_url=database_url or resolved_settings.database_url,
    )


def _handle_fleet_alert(
    alert: AlertItem,
    firing: bool,
    *,
    settings: Settings,
    sender: ServiceLogSender | None,
    database_url: str,
) -> DispatchOutcome:
    validate_alert(alert, fleet=True)
    managed_fleet_notification = get_fleet_notification(
        template_name_for(alert),
        namespace=settings.notifications_namespace,
        database_url=database_url,
    )
    return process_alert(
        alert,
        managed_fleet_notification,
        firing,
        settings=settings,
        sender=sender,
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
    resolved_database_url = database_url or resolved_settings.database_url
    logger.info(
        "Process fleet alert data receiver=%s status=%s alerts=%s",
        data.receiver,
        data.status,
        len(data.alerts),
    )

    summary = process_alert_batch(
        data,
        lambda alert, firing: _handle_fleet_alert(
            alert,
            firing,
            settings=resolved_settings,
            sender=sender,
            database_url=resolved_database_url,
        ),
        cancel_event=cancel_event,
    )
    logger.info(
        "Fleet alert data processed processed=%s sent=%s skipped=%s failed=%s",
        summary["processed"],
        summary["sent"],
        summary["skipped"],
        summary["failed"],
    )
    return AMReceiverResponse(status="ok", code=200, error=None)
