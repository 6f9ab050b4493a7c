from .conditions import Condition, ConditionLedger, ConditionType
from .document_store import (
    DocumentAlreadyExistsError,
    DocumentConflictError,
    DocumentNotFoundError,
    DocumentStoreError,
    StoredDocument,
    apply_document_spec,
    create_document,
    get_document,
    list_documents,
    update_document_status,
)
from .models import (
    KIND_MANAGED_FLEET_NOTIFICATION,
    KIND_MANAGED_FLEET_NOTIFICATION_RECORD,
    KIND_MANAGED_NOTIFICATION,
    ConditionRecord,
    ManagedFleetNotification,
    ManagedFleetNotificationRecord,
    ManagedNotification,
    Notification,
    NotificationRecord,
    NotificationRecordByName,
    NotificationRecordItem,
)
from .resend_policy import can_send
from .targets import ClusterNotificationTarget, FleetNotificationTarget, ResendTarget

__all__ = [
    "Condition",
    "ConditionLedger",
    "ConditionType",
    "ConditionRecord",
    "DocumentAlreadyExistsError",
    "DocumentConflictError",
    "DocumentNotFoundError",
    "DocumentStoreError",
    "StoredDocument",
    "apply_document_spec",
    "create_document",
    "get_document",
    "list_documents",
    "update_document_status",
    "KIND_MANAGED_NOTIFICATION",
    "KIND_MANAGED_FLEET_NOTIFICATION",
    "KIND_MANAGED_FLEET_NOTIFICATION_RECORD",
    "ManagedNotification",
    "ManagedFleetNotification",
    "ManagedFleetNotificationRecord",
    "Notification",
    "NotificationRecord",
    "NotificationRecordByName",
    "NotificationRecordItem",
    "can_send",
    "ResendTarget",
    "ClusterNotificationTarget",
    "FleetNotificationTarget",
]
