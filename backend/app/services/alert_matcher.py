from __future__ import annotations

import logging
import sys
from pathlib import Path

from app.schemas import AlertItem

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.notification_records import (  # noqa: E402
    KIND_MANAGED_FLEET_NOTIFICATION,
    DocumentNotFoundError,
    ManagedFleetNotification,
    ManagedNotification,
    Notification,
    get_document,
)

logger = logging.getLogger("notifications.matcher")

AM_LABEL_ALERT_NAME = "alertname"
AM_LABEL_TEMPLATE_NAME = "managed_notification_template"
AM_LABEL_SEND_MANAGED_NOTIFICATION = "send_managed_notification"
AM_LABEL_ALERT_MC_ID = "_mc_id"
AM_LABEL_ALERT_HC_ID = "_id"
SEND_MANAGED_NOTIFICATION_MARKER = "true"


class InvalidAlertError(ValueError):
    """Raised when an alert is missing labels required to route it."""


class AlertNotActionableError(InvalidAlertError):
    """Raised when an alert is well formed but not flagged for a managed notification."""


class NotificationTemplateNotFoundError(LookupError):
    def __init__(self, template_name: str):
        super().__init__(f"template not found: {template_name}")
        self.template_name = template_name


def validate_alert(alert: AlertItem, *, fleet: bool = False) -> None:
    labels = alert.labels
    if not str(labels.get(AM_LABEL_ALERT_NAME, "")).strip():
        raise InvalidAlertError(f"alert is missing the '{AM_LABEL_ALERT_NAME}' label")
    if not str(labels.get(AM_LABEL_TEMPLATE_NAME, "")).strip():
        raise InvalidAlertError(f"alert is missing the '{AM_LABEL_TEMPLATE_NAME}' label")

    marker = labels.get(AM_LABEL_SEND_MANAGED_NOTIFICATION)
    if marker is None:
        raise AlertNotActionableError(f"alert is missing the '{AM_LABEL_SEND_MANAGED_NOTIFICATION}' label")
    if str(marker).strip().lower() != SEND_MANAGED_NOTIFICATION_MARKER:
        raise AlertNotActionableError(
            f"alert label '{AM_LABEL_SEND_MANAGED_NOTIFICATION}' is '{marker}', expected 'true'"
        )

    if fleet:
        for label in (AM_LABEL_ALERT_MC_ID, AM_LABEL_ALERT_HC_ID):
            if not str(labels.get(label, "")).strip():
                raise InvalidAlertError(f"fleet alert is missing the '{label}' label")


def template_name_for(alert: AlertItem) -> str:
    return str(alert.labels.get(AM_LABEL_TEMPLATE_NAME, "")).strip()


def get_notification(
    template_name: str,
    managed_notifications: list[ManagedNotification],
) -> tuple[Notification, ManagedNotification]:
    for managed_notification in managed_notifications:
        notification = managed_notification.get_notification(template_name)
        if notification is not None:
            return notification, managed_notification
    raise NotificationTemplateNotFoundError(template_name)


def get_fleet_notification(
    template_name: str,
    *,
    namespace: str,
    database_url: str | None = None,
) -> ManagedFleetNotification:
    try:
        stored = get_document(KIND_MANAGED_FLEET_NOTIFICATION, namespace, template_name, database_url=database_url)
    except DocumentNotFoundError as exc:
        raise NotificationTemplateNotFoundError(template_name) from exc
    return ManagedFleetNotification.from_document(stored)
