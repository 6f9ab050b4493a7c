from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

from .document_store import (
    DocumentAlreadyExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    create_document,
    get_document,
    update_document_status,
)
from .models import (
    KIND_MANAGED_FLEET_NOTIFICATION_RECORD,
    KIND_MANAGED_NOTIFICATION,
    ConditionRecord,
    ManagedFleetNotificationRecord,
    ManagedNotification,
    Notification,
)

logger = logging.getLogger("notifications.records")


class ResendTarget(ABC):
    """One (notification template, target cluster) pair backed by a stored document.

    Subclasses know where the pair's condition record lives inside their document
    shape; everything else (policy, send, persistence retries) is shared.
    """

    kind: str = ""

    def __init__(self, *, notification: Notification, namespace: str, document_name: str, target_id: str) -> None:
        self.notification = notification
        self.namespace = namespace
        self.document_name = document_name
        self.target_id = target_id

    @abstractmethod
    def load(self, database_url: str | None = None) -> Any:
        """Read the current document, creating or initialising it when needed."""

    @abstractmethod
    def locate_or_create(self, document: Any) -> ConditionRecord:
        """Return the condition record for this pair, adding an empty one if missing."""

    @abstractmethod
    def resend_wait(self, document: Any) -> timedelta:
        ...

    @abstractmethod
    def status_payload(self, document: Any) -> dict[str, Any]:
        ...

    def save_status(self, document: Any, database_url: str | None = None) -> int:
        stored = update_document_status(
            self.kind,
            self.namespace,
            self.document_name,
            self.status_payload(document),
            expected_version=document.version,
            database_url=database_url,
        )
        document.version = stored.version
        return stored.version

    def describe(self) -> dict[str, str]:
        return {
            "kind": self.kind,
            "document": f"{self.namespace}/{self.document_name}",
            "notification": self.notification.name,
            "target_id": self.target_id,
        }


class ClusterNotificationTarget(ResendTarget):
    kind = KIND_MANAGED_NOTIFICATION

    def load(self, database_url: str | None = None) -> ManagedNotification:
        stored = get_document(self.kind, self.namespace, self.document_name, database_url=database_url)
        return ManagedNotification.from_document(stored)

    def locate_or_create(self, document: ManagedNotification) -> ConditionRecord:
        return document.ensure_notification_record(self.notification.name)

    def resend_wait(self, document: ManagedNotification) -> timedelta:
        return self.notification.resend_wait

    def status_payload(self, document: ManagedNotification) -> dict[str, Any]:
        return document.status_to_dict()


class FleetNotificationTarget(ResendTarget):
    kind = KIND_MANAGED_FLEET_NOTIFICATION_RECORD

    def __init__(
        self,
        *,
        notification: Notification,
        namespace: str,
        management_cluster_id: str,
        hosted_cluster_id: str,
    ) -> None:
        super().__init__(
            notification=notification,
            namespace=namespace,
            document_name=management_cluster_id,
            target_id=hosted_cluster_id,
        )
        self.management_cluster_id = management_cluster_id
        self.hosted_cluster_id = hosted_cluster_id

    def _get_or_create(self, database_url: str | None) -> ManagedFleetNotificationRecord:
        try:
            stored = get_document(self.kind, self.namespace, self.document_name, database_url=database_url)
        except DocumentNotFoundError:
            logger.info(
                "Creating fleet notification record management_cluster=%s namespace=%s",
                self.management_cluster_id,
                self.namespace,
            )
            try:
                stored = create_document(self.kind, self.namespace, self.document_name, {}, database_url=database_url)
            except DocumentAlreadyExistsError:
                stored = get_document(self.kind, self.namespace, self.document_name, database_url=database_url)
        return ManagedFleetNotificationRecord.from_document(stored)

    def load(self, database_url: str | None = None) -> ManagedFleetNotificationRecord:
        record = self._get_or_create(database_url)
        if record.has_status:
            return record

        # A new record gets its status persisted before any send decision.
        record.management_cluster = self.management_cluster_id
        record.notification_records_by_name = []
        try:
            self.save_status(record, database_url=database_url)
        except DocumentConflictError:
            logger.info(
                "Fleet notification record initialised concurrently management_cluster=%s",
                self.management_cluster_id,
            )
            record = ManagedFleetNotificationRecord.from_document(
                get_document(self.kind, self.namespace, self.document_name, database_url=database_url)
            )
        return record

    def locate_or_create(self, document: ManagedFleetNotificationRecord) -> ConditionRecord:
        record_by_name = document.ensure_record_by_name(self.notification)
        return record_by_name.ensure_item(self.hosted_cluster_id)

    def resend_wait(self, document: ManagedFleetNotificationRecord) -> timedelta:
        record_by_name = document.ensure_record_by_name(self.notification)
        return record_by_name.resend_wait

    def status_payload(self, document: ManagedFleetNotificationRecord) -> dict[str, Any]:
        return document.status_to_dict()

    def describe(self) -> dict[str, str]:
        payload = super().describe()
        payload["management_cluster_id"] = self.management_cluster_id
        return payload
