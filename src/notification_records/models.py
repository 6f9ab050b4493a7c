from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .conditions import ConditionLedger, ConditionType

KIND_MANAGED_NOTIFICATION = "ManagedNotification"
KIND_MANAGED_FLEET_NOTIFICATION = "ManagedFleetNotification"
KIND_MANAGED_FLEET_NOTIFICATION_RECORD = "ManagedFleetNotificationRecord"


@dataclass
class Notification:
    name: str
    summary: str
    active_description: str
    resolved_description: str = ""
    severity: str = "Info"
    log_type: str = ""
    references: list[str] = field(default_factory=list)
    resend_wait_hours: int = 0

    @property
    def resend_wait(self) -> timedelta:
        return timedelta(hours=self.resend_wait_hours)

    @property
    def has_resolved_body(self) -> bool:
        return bool(self.resolved_description.strip())

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Notification":
        name = str(payload.get("name", "")).strip()
        if not name:
            raise ValueError("Notification requires non-empty 'name'.")

        summary = str(payload.get("summary", "")).strip()
        if not summary:
            raise ValueError(f"Notification '{name}' requires non-empty 'summary'.")

        references_raw = payload.get("references") or []
        if not isinstance(references_raw, list):
            raise ValueError(f"references must be a list for notification '{name}'")

        resend_wait_hours = int(payload.get("resend_wait_hours", 0) or 0)
        if resend_wait_hours < 0:
            raise ValueError(f"resend_wait_hours must be >= 0 for notification '{name}'")

        return cls(
            name=name,
            summary=summary,
            active_description=str(payload.get("active_description", "")).strip(),
            resolved_description=str(payload.get("resolved_description", "") or "").strip(),
            severity=str(payload.get("severity", "Info")).strip() or "Info",
            log_type=str(payload.get("log_type", "")).strip(),
            references=[str(item).strip() for item in references_raw if str(item).strip()],
            resend_wait_hours=resend_wait_hours,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "summary": self.summary,
            "active_description": self.active_description,
            "resolved_description": self.resolved_description,
            "severity": self.severity,
            "log_type": self.log_type,
            "references": list(self.references),
            "resend_wait_hours": self.resend_wait_hours,
        }


@dataclass
class ConditionRecord:
    """Shared bookkeeping for anything that carries a condition ledger and a send counter."""

    sent_count: int = 0
    conditions: ConditionLedger = field(default_factory=ConditionLedger)

    def is_firing(self) -> bool:
        return self.conditions.status_of(ConditionType.ALERT_FIRING)

    def record_send(self, firing: bool, at: datetime) -> None:
        self.conditions.set(ConditionType.ALERT_FIRING, firing, at)
        self.conditions.set(ConditionType.ALERT_RESOLVED, not firing, at)
        self.conditions.set(ConditionType.NOTIFICATION_SENT, True, at)
        self.sent_count += 1

    def record_resolution(self, at: datetime) -> None:
        self.conditions.set(ConditionType.ALERT_FIRING, False, at)
        self.conditions.set(ConditionType.ALERT_RESOLVED, True, at)


@dataclass
class NotificationRecord(ConditionRecord):
    name: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "NotificationRecord":
        return cls(
            name=str(payload.get("name", "")).strip(),
            sent_count=max(0, int(payload.get("sent_count", 0) or 0)),
            conditions=ConditionLedger.from_list(payload.get("conditions")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sent_count": self.sent_count,
            "conditions": self.conditions.to_list(),
        }


@dataclass
class ManagedNotification:
    name: str
    namespace: str
    notifications: list[Notification] = field(default_factory=list)
    notification_records: list[NotificationRecord] = field(default_factory=list)
    version: int = 0

    def get_notification(self, name: str) -> Notification | None:
        for notification in self.notifications:
            if notification.name == name:
                return notification
        return None

    def get_notification_record(self, name: str) -> NotificationRecord | None:
        for record in self.notification_records:
            if record.name == name:
                return record
        return None

    def ensure_notification_record(self, name: str) -> NotificationRecord:
        record = self.get_notification_record(name)
        if record is None:
            record = NotificationRecord(name=name)
            self.notification_records.append(record)
        return record

    def spec_to_dict(self) -> dict[str, Any]:
        return {"notifications": [notification.to_dict() for notification in self.notifications]}

    def status_to_dict(self) -> dict[str, Any]:
        return {"notification_records": [record.to_dict() for record in self.notification_records]}

    @classmethod
    def from_document(cls, document) -> "ManagedNotification":
        spec = document.spec or {}
        status = document.status or {}
        return cls(
            name=document.name,
            namespace=document.namespace,
            notifications=[Notification.from_dict(item) for item in spec.get("notifications") or []],
            notification_records=[
                NotificationRecord.from_dict(item) for item in status.get("notification_records") or []
            ],
            version=document.version,
        )


@dataclass
class ManagedFleetNotification:
    name: str
    namespace: str
    fleet_notification: Notification

    def spec_to_dict(self) -> dict[str, Any]:
        return {"fleet_notification": self.fleet_notification.to_dict()}

    @classmethod
    def from_document(cls, document) -> "ManagedFleetNotification":
        spec = document.spec or {}
        fleet_notification = spec.get("fleet_notification")
        if not isinstance(fleet_notification, dict):
            raise ValueError(f"ManagedFleetNotification '{document.name}' has no fleet_notification.")
        return cls(
            name=document.name,
            namespace=document.namespace,
            fleet_notification=Notification.from_dict(fleet_notification),
        )


@dataclass
class NotificationRecordItem(ConditionRecord):
    hosted_cluster_id: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "NotificationRecordItem":
        return cls(
            hosted_cluster_id=str(payload.get("hosted_cluster_id", "")).strip(),
            sent_count=max(0, int(payload.get("sent_count", 0) or 0)),
            conditions=ConditionLedger.from_list(payload.get("conditions")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hosted_cluster_id": self.hosted_cluster_id,
            "sent_count": self.sent_count,
            "conditions": self.conditions.to_list(),
        }


@dataclass
class NotificationRecordByName:
    notification_name: str
    resend_wait_hours: int
    notification_record_items: list[NotificationRecordItem] = field(default_factory=list)

    @property
    def resend_wait(self) -> timedelta:
        return timedelta(hours=self.resend_wait_hours)

    def get_item(self, hosted_cluster_id: str) -> NotificationRecordItem | None:
        for item in self.notification_record_items:
            if item.hosted_cluster_id == hosted_cluster_id:
                return item
        return None

    def ensure_item(self, hosted_cluster_id: str) -> NotificationRecordItem:
        item = self.get_item(hosted_cluster_id)
        if item is None:
            item = NotificationRecordItem(hosted_cluster_id=hosted_cluster_id)
            self.notification_record_items.append(item)
        return item

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "NotificationRecordByName":
        return cls(
            notification_name=str(payload.get("notification_name", "")).strip(),
            resend_wait_hours=max(0, int(payload.get("resend_wait_hours", 0) or 0)),
            notification_record_items=[
                NotificationRecordItem.from_dict(item)
                for item in payload.get("notification_record_items") or []
                if isinstance(item, dict)
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "notification_name": self.notification_name,
            "resend_wait_hours": self.resend_wait_hours,
            "notification_record_items": [item.to_dict() for item in self.notification_record_items],
        }


@dataclass
class ManagedFleetNotificationRecord:
    name: str
    namespace: str
    management_cluster: str = ""
    notification_records_by_name: list[NotificationRecordByName] = field(default_factory=list)
    version: int = 0

    @property
    def has_status(self) -> bool:
        return bool(self.management_cluster)

    def get_record_by_name(self, notification_name: str) -> NotificationRecordByName | None:
        for record in self.notification_records_by_name:
            if record.notification_name == notification_name:
                return record
        return None

    def ensure_record_by_name(self, notification: Notification) -> NotificationRecordByName:
        # resend wait is fixed when the entry is first created
        record = self.get_record_by_name(notification.name)
        if record is None:
            record = NotificationRecordByName(
                notification_name=notification.name,
                resend_wait_hours=notification.resend_wait_hours,
            )
            self.notification_records_by_name.append(record)
        return record

    def status_to_dict(self) -> dict[str, Any]:
        return {
            "management_cluster": self.management_cluster,
            "notification_records_by_name": [record.to_dict() for record in self.notification_records_by_name],
        }

    @classmethod
    def from_document(cls, document) -> "ManagedFleetNotificationRecord":
        status = document.status or {}
        return cls(
            name=document.name,
            namespace=document.namespace,
            management_cluster=str(status.get("management_cluster", "") or "").strip(),
            notification_records_by_name=[
                NotificationRecordByName.from_dict(item)
                for item in status.get("notification_records_by_name") or []
                if isinstance(item, dict)
            ],
            version=document.version,
        )
