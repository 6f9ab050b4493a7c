from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.notification_records import (  # noqa: E402
    KIND_MANAGED_FLEET_NOTIFICATION,
    KIND_MANAGED_NOTIFICATION,
    ManagedFleetNotification,
    ManagedNotification,
    Notification,
    apply_document_spec,
)

logger = logging.getLogger("notifications.definitions")


def _require_list(payload: dict[str, Any], field_name: str) -> list[Any]:
    raw_value = payload.get(field_name, [])
    if raw_value is None:
        return []
    if not isinstance(raw_value, list):
        raise ValueError(f"Notification definitions field '{field_name}' must be a list.")
    return raw_value


def _parse_managed_notification(item: Any, namespace: str) -> ManagedNotification:
    if not isinstance(item, dict):
        raise ValueError("Each managed notification must be an object.")
    name = str(item.get("name", "")).strip()
    if not name:
        raise ValueError("Managed notification requires non-empty 'name'.")

    notifications = [Notification.from_dict(entry) for entry in _require_list(item, "notifications")]
    seen: set[str] = set()
    for notification in notifications:
        if notification.name in seen:
            raise ValueError(f"Duplicate notification '{notification.name}' in managed notification '{name}'.")
        seen.add(notification.name)
    return ManagedNotification(name=name, namespace=namespace, notifications=notifications)


def _parse_managed_fleet_notification(item: Any, namespace: str) -> ManagedFleetNotification:
    if not isinstance(item, dict):
        raise ValueError("Each managed fleet notification must be an object.")
    fleet_notification = item.get("fleet_notification")
    if not isinstance(fleet_notification, dict):
        raise ValueError("Managed fleet notification requires a 'fleet_notification' object.")
    notification = Notification.from_dict(fleet_notification)
    # fleet notifications are looked up by the template name
    name = str(item.get("name", "")).strip() or notification.name
    return ManagedFleetNotification(name=name, namespace=namespace, fleet_notification=notification)


def load_notification_definitions(path: str | Path, *, namespace: str) -> dict[str, Any]:
    resolved_path = Path(path).expanduser().resolve()
    if not resolved_path.exists():
        raise FileNotFoundError(f"Notification definitions file not found: {resolved_path}")

    with open(resolved_path, encoding="utf-8") as file:
        raw_payload = yaml.safe_load(file) or {}

    if not isinstance(raw_payload, dict):
        raise ValueError("Notification definitions YAML must define a top-level object.")

    managed_notifications = [
        _parse_managed_notification(item, namespace) for item in _require_list(raw_payload, "managed_notifications")
    ]
    managed_fleet_notifications = [
        _parse_managed_fleet_notification(item, namespace)
        for item in _require_list(raw_payload, "managed_fleet_notifications")
    ]

    return {
        "version": str(raw_payload.get("version", "v1")),
        "path": str(resolved_path),
        "managed_notifications": managed_notifications,
        "managed_fleet_notifications": managed_fleet_notifications,
    }


def apply_notification_definitions(
    path: str | Path,
    *,
    namespace: str,
    database_url: str | None = None,
) -> dict[str, Any]:
    """Write every definition from the YAML catalogue into the document store.

    Specs are replaced; stored notification history is kept.
    """
    payload = load_notification_definitions(path, namespace=namespace)

    for managed_notification in payload["managed_notifications"]:
        apply_document_spec(
            KIND_MANAGED_NOTIFICATION,
            namespace,
            managed_notification.name,
            managed_notification.spec_to_dict(),
            database_url=database_url,
        )
    for managed_fleet_notification in payload["managed_fleet_notifications"]:
        apply_document_spec(
            KIND_MANAGED_FLEET_NOTIFICATION,
            namespace,
            managed_fleet_notification.name,
            managed_fleet_notification.spec_to_dict(),
            database_url=database_url,
        )

    summary = {
        "path": payload["path"],
        "namespace": namespace,
        "managed_notifications": len(payload["managed_notifications"]),
        "managed_fleet_notifications": len(payload["managed_fleet_notifications"]),
    }
    logger.info(
        "Notification definitions applied path=%s namespace=%s managed_notifications=%s managed_fleet_notifications=%s",
        summary["path"],
        namespace,
        summary["managed_notifications"],
        summary["managed_fleet_notifications"],
    )
    return summary
