from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import src.notification_records.targets as targets_module  # noqa: E402
from src.notification_records import (  # noqa: E402
    KIND_MANAGED_FLEET_NOTIFICATION_RECORD,
    KIND_MANAGED_NOTIFICATION,
    ClusterNotificationTarget,
    DocumentAlreadyExistsError,
    DocumentConflictError,
    FleetNotificationTarget,
    ManagedNotification,
    Notification,
    create_document,
    get_document,
    list_documents,
    update_document_status,
)

NAMESPACE = "openshift-ocm-agent-operator"
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _sqlite_url(tmp_path: Path, name: str) -> str:
    return f"sqlite+pysqlite:///{(tmp_path / name).resolve()}"


def _notification(**overrides) -> Notification:
    values = {"name": "pv-filling", "summary": "PV filling up", "active_description": "Free space", "resend_wait_hours": 2}
    values.update(overrides)
    return Notification(**values)


def test_cluster_target_adds_record_and_saves_status(tmp_path: Path):
    db_url = _sqlite_url(tmp_path, "targets.db")
    notification = _notification()
    spec = ManagedNotification(name="sre", namespace=NAMESPACE, notifications=[notification]).spec_to_dict()
    create_document(KIND_MANAGED_NOTIFICATION, NAMESPACE, "sre", spec, database_url=db_url)
    target = ClusterNotificationTarget(notification=notification, namespace=NAMESPACE, document_name="sre", target_id="cluster-1")

    document = target.load(db_url)
    record = target.locate_or_create(document)
    assert target.locate_or_create(document) is record
    assert target.resend_wait(document) == timedelta(hours=2)

    record.record_send(True, NOW)
    assert target.save_status(document, database_url=db_url) == 2
    assert document.version == 2

    stored = ManagedNotification.from_document(get_document(KIND_MANAGED_NOTIFICATION, NAMESPACE, "sre", database_url=db_url))
    assert stored.get_notification_record("pv-filling").sent_count == 1
    assert target.describe() == {
        "kind": KIND_MANAGED_NOTIFICATION,
        "document": f"{NAMESPACE}/sre",
        "notification": "pv-filling",
        "target_id": "cluster-1",
    }


def test_fleet_target_creates_and_initialises_record(tmp_path: Path):
    db_url = _sqlite_url(tmp_path, "targets.db")
    target = FleetNotificationTarget(
        notification=_notification(),
        namespace=NAMESPACE,
        management_cluster_id="mc-1",
        hosted_cluster_id="hc-1",
    )

    document = target.load(db_url)

    assert document.management_cluster == "mc-1"
    assert document.version == 2
    stored = get_document(KIND_MANAGED_FLEET_NOTIFICATION_RECORD, NAMESPACE, "mc-1", database_url=db_url)
    assert stored.status == {"management_cluster": "mc-1", "notification_records_by_name": []}

    again = target.load(db_url)
    assert again.version == 2


def test_fleet_target_copies_resend_wait_once(tmp_path: Path):
    db_url = _sqlite_url(tmp_path, "targets.db")
    target = FleetNotificationTarget(
        notification=_notification(resend_wait_hours=6),
        namespace=NAMESPACE,
        management_cluster_id="mc-1",
        hosted_cluster_id="hc-1",
    )
    document = target.load(db_url)
    item = target.locate_or_create(document)
    item.record_send(True, NOW)
    target.save_status(document, database_url=db_url)

    changed = FleetNotificationTarget(
        notification=_notification(resend_wait_hours=1),
        namespace=NAMESPACE,
        management_cluster_id="mc-1",
        hosted_cluster_id="hc-2",
    )
    reloaded = changed.load(db_url)

    assert changed.resend_wait(reloaded) == timedelta(hours=6)
    assert changed.locate_or_create(reloaded).hosted_cluster_id == "hc-2"
    assert changed.describe()["management_cluster_id"] == "mc-1"


def _fleet_target(hosted_cluster_id: str = "hc-1") -> FleetNotificationTarget:
    return FleetNotificationTarget(
        notification=_notification(),
        namespace=NAMESPACE,
        management_cluster_id="mc-1",
        hosted_cluster_id=hosted_cluster_id,
    )


def test_fleet_target_rereads_record_created_concurrently(monkeypatch, tmp_path: Path):
    db_url = _sqlite_url(tmp_path, "targets.db")
    calls = {"count": 0}

    def _create_then_lose_race(kind, namespace, name, spec=None, database_url=None):
        calls["count"] += 1
        create_document(kind, namespace, name, spec, database_url=database_url)
        raise DocumentAlreadyExistsError(kind, namespace, name)

    monkeypatch.setattr(targets_module, "create_document", _create_then_lose_race)

    document = _fleet_target().load(db_url)

    assert calls["count"] == 1
    assert document.management_cluster == "mc-1"
    assert document.version == 2
    stored = list_documents(KIND_MANAGED_FLEET_NOTIFICATION_RECORD, NAMESPACE, database_url=db_url)
    assert [item.name for item in stored] == ["mc-1"]
    assert stored[0].status == {"management_cluster": "mc-1", "notification_records_by_name": []}


def test_fleet_target_reloads_status_initialised_concurrently(monkeypatch, tmp_path: Path):
    db_url = _sqlite_url(tmp_path, "targets.db")
    calls = {"count": 0}

    def _other_writer_wins(kind, namespace, name, status, *, expected_version, database_url=None):
        calls["count"] += 1
        concurrent_status = {
            "management_cluster": "mc-1",
            "notification_records_by_name": [
                {"notification_name": "pv-filling", "resend_wait_hours": 2, "notification_record_items": []}
            ],
        }
        update_document_status(
            kind,
            namespace,
            name,
            concurrent_status,
            expected_version=expected_version,
            database_url=database_url,
        )
        raise DocumentConflictError(kind, namespace, name, expected_version)

    monkeypatch.setattr(targets_module, "update_document_status", _other_writer_wins)

    target = _fleet_target()
    document = target.load(db_url)

    assert calls["count"] == 1
    assert document.management_cluster == "mc-1"
    assert document.version == 2
    assert document.get_record_by_name("pv-filling") is not None
    stored = list_documents(KIND_MANAGED_FLEET_NOTIFICATION_RECORD, NAMESPACE, database_url=db_url)
    assert len(stored) == 1
    assert stored[0].version == 2

    monkeypatch.undo()
    item = target.locate_or_create(document)
    item.record_send(True, NOW)
    assert target.save_status(document, database_url=db_url) == 3
