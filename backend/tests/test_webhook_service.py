from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

import app.services.dispatch_service as dispatch_service
from app.schemas import AMReceiverData
from app.services.alert_matcher import (
    AlertNotActionableError,
    InvalidAlertError,
    NotificationTemplateNotFoundError,
)
from app.services.dispatch_service import (
    DISPATCH_RESOLUTION_RECORDED,
    DISPATCH_SENT,
    DISPATCH_SKIPPED,
    StatusUpdateConflictError,
)
from app.services.metrics_service import get_metrics_snapshot, reset_all_metrics
from app.services.service_log_client import ServiceLogSendError
from app.services.webhook_service import list_managed_notifications, process_alert, process_am_receiver
from backend.tests.notification_helpers import (
    TEST_CLUSTER_ID,
    TEST_NOTIFICATION_NAME,
    RecordingSender,
    ledger,
    load_managed_notification,
    make_alert,
    make_notification,
    make_settings,
    seed_managed_notification,
    sqlite_url,
)
from src.notification_records import ConditionType, DocumentConflictError, DocumentStoreError, NotificationRecord


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_all_metrics()
    yield
    reset_all_metrics()


def _setup(tmp_path: Path, **seed_kwargs):
    database_url = sqlite_url(tmp_path)
    settings = make_settings(database_url)
    seed_managed_notification(database_url, **seed_kwargs)
    return settings, database_url


def _record(database_url: str) -> NotificationRecord | None:
    return load_managed_notification(database_url).get_notification_record(TEST_NOTIFICATION_NAME)


def _process(alert, settings, sender, *, firing: bool = True):
    managed_notifications = list_managed_notifications(
        settings.notifications_namespace, database_url=settings.database_url
    )
    return process_alert(alert, managed_notifications, firing, settings=settings, sender=sender)


def test_first_firing_alert_sends_and_records(tmp_path: Path):
    settings, database_url = _setup(tmp_path)
    sender = RecordingSender()

    outcome = _process(make_alert(), settings, sender)

    assert outcome.status == DISPATCH_SENT
    assert outcome.sent_count == 1
    assert len(sender.calls) == 1
    call = sender.calls[0]
    assert call["cluster_id"] == TEST_CLUSTER_ID
    assert call["firing"] is True
    assert call["summary"] == "Test notification summary"
    assert call["references"] == ["https://docs.example.local/runbook"]

    record = _record(database_url)
    assert record is not None
    assert record.sent_count == 1
    assert record.conditions.status_of(ConditionType.ALERT_FIRING) is True
    assert record.conditions.status_of(ConditionType.ALERT_RESOLVED) is False
    assert record.conditions.status_of(ConditionType.NOTIFICATION_SENT) is True
    assert get_metrics_snapshot()["service_log_sent"] == {f"{TEST_NOTIFICATION_NAME}|firing": 1}


def test_firing_alert_inside_resend_window_is_skipped(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=3,
        conditions=ledger(firing=True, sent_ago=timedelta(minutes=10)),
    )
    settings, database_url = _setup(tmp_path, record=existing)
    version_before = load_managed_notification(database_url).version
    sender = RecordingSender()

    outcome = _process(make_alert(), settings, sender)

    assert outcome.status == DISPATCH_SKIPPED
    assert sender.calls == []
    after = load_managed_notification(database_url)
    assert after.version == version_before
    assert after.get_notification_record(TEST_NOTIFICATION_NAME).sent_count == 3


def test_firing_alert_after_resend_window_sends_again(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=1,
        conditions=ledger(firing=True, sent_ago=timedelta(hours=2)),
    )
    settings, database_url = _setup(tmp_path, record=existing)
    version_before = load_managed_notification(database_url).version
    sender = RecordingSender()

    outcome = _process(make_alert(), settings, sender)

    assert outcome.status == DISPATCH_SENT
    assert len(sender.calls) == 1
    after = load_managed_notification(database_url)
    assert after.version == version_before + 1
    record = after.get_notification_record(TEST_NOTIFICATION_NAME)
    assert record.sent_count == 2
    sent = record.conditions.get(ConditionType.NOTIFICATION_SENT)
    assert datetime.now(timezone.utc) - sent.last_transition_time < timedelta(minutes=1)


def test_resolved_alert_with_prior_firing_sends_resolution(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=1,
        conditions=ledger(firing=True, sent_ago=timedelta(minutes=5)),
    )
    settings, database_url = _setup(tmp_path, record=existing)
    sender = RecordingSender()

    outcome = _process(make_alert(status="resolved"), settings, sender, firing=False)

    assert outcome.status == DISPATCH_SENT
    assert len(sender.calls) == 1
    assert sender.calls[0]["firing"] is False
    record = _record(database_url)
    assert record.sent_count == 2
    assert record.conditions.status_of(ConditionType.ALERT_FIRING) is False
    assert record.conditions.status_of(ConditionType.ALERT_RESOLVED) is True
    assert record.conditions.status_of(ConditionType.NOTIFICATION_SENT) is True


def test_resolved_alert_without_resolved_body_records_resolution_only(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=1,
        conditions=ledger(firing=True, sent_ago=timedelta(minutes=5)),
    )
    settings, database_url = _setup(
        tmp_path,
        notification=make_notification(resolved_description=""),
        record=existing,
    )
    sender = RecordingSender()

    outcome = _process(make_alert(status="resolved"), settings, sender, firing=False)

    assert outcome.status == DISPATCH_RESOLUTION_RECORDED
    assert sender.calls == []
    record = _record(database_url)
    assert record.sent_count == 1
    assert record.conditions.status_of(ConditionType.ALERT_FIRING) is False
    assert record.conditions.status_of(ConditionType.ALERT_RESOLVED) is True


def test_resolved_alert_without_history_is_skipped(tmp_path: Path):
    settings, database_url = _setup(tmp_path)
    version_before = load_managed_notification(database_url).version
    sender = RecordingSender()

    outcome = _process(make_alert(status="resolved"), settings, sender, firing=False)

    assert outcome.status == DISPATCH_SKIPPED
    assert sender.calls == []
    assert load_managed_notification(database_url).version == version_before


def test_alert_missing_template_label_is_rejected(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()

    with pytest.raises(InvalidAlertError):
        _process(make_alert(template=None), settings, sender)
    assert sender.calls == []


def test_alert_missing_send_label_is_not_actionable(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()

    with pytest.raises(AlertNotActionableError):
        _process(make_alert(send=None), settings, sender)
    with pytest.raises(AlertNotActionableError):
        _process(make_alert(send="false"), settings, sender)
    assert sender.calls == []


def test_unknown_template_raises_not_found(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()

    with pytest.raises(NotificationTemplateNotFoundError, match="template not found: missing-template"):
        _process(make_alert(template="missing-template"), settings, sender)
    assert sender.calls == []


def test_send_failure_leaves_record_untouched(tmp_path: Path):
    settings, database_url = _setup(tmp_path)
    version_before = load_managed_notification(database_url).version
    sender = RecordingSender(error=ServiceLogSendError("boom", status_code=500))

    with pytest.raises(ServiceLogSendError):
        _process(make_alert(), settings, sender)

    assert len(sender.calls) == 1
    after = load_managed_notification(database_url)
    assert after.version == version_before
    assert after.get_notification_record(TEST_NOTIFICATION_NAME) is None
    assert get_metrics_snapshot()["response_failure"] == {"service_logs": 1}


def test_send_failure_keeps_existing_ledger(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=4,
        conditions=ledger(firing=True, sent_ago=timedelta(hours=3)),
    )
    settings, database_url = _setup(tmp_path, record=existing)
    before = load_managed_notification(database_url)
    before_record = before.get_notification_record(TEST_NOTIFICATION_NAME)
    sender = RecordingSender(error=ServiceLogSendError("boom", status_code=503))

    with pytest.raises(ServiceLogSendError):
        _process(make_alert(), settings, sender)

    assert len(sender.calls) == 1
    after = load_managed_notification(database_url)
    assert after.version == before.version
    after_record = after.get_notification_record(TEST_NOTIFICATION_NAME)
    assert after_record.sent_count == 4
    assert after_record.conditions.to_list() == before_record.conditions.to_list()
    assert after_record.conditions.get(ConditionType.NOTIFICATION_SENT) == before_record.conditions.get(
        ConditionType.NOTIFICATION_SENT
    )


def test_unexpected_sender_error_is_wrapped(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender(error=ConnectionError("connection reset"))

    with pytest.raises(ServiceLogSendError, match="connection reset"):
        _process(make_alert(), settings, sender)


def test_persist_failure_after_send_is_surfaced(monkeypatch, tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()

    def _failing_persist(*args, **kwargs):
        raise DocumentStoreError("database unavailable")

    monkeypatch.setattr(dispatch_service, "persist_with_retry", _failing_persist)

    with pytest.raises(DocumentStoreError, match="database unavailable"):
        _process(make_alert(), settings, sender)
    assert len(sender.calls) == 1


def test_status_conflict_is_retried_on_fresh_copy(monkeypatch, tmp_path: Path):
    settings, database_url = _setup(tmp_path)
    sender = RecordingSender()

    import src.notification_records.targets as targets_module

    original_update = targets_module.update_document_status
    calls = {"count": 0}

    def _conflict_once(kind, namespace, name, status, *, expected_version, database_url=None):
        calls["count"] += 1
        if calls["count"] == 1:
            raise DocumentConflictError(kind, namespace, name, expected_version)
        return original_update(
            kind, namespace, name, status, expected_version=expected_version, database_url=database_url
        )

    monkeypatch.setattr(targets_module, "update_document_status", _conflict_once)

    outcome = _process(make_alert(), settings, sender)

    assert outcome.status == DISPATCH_SENT
    assert calls["count"] == 2
    assert len(sender.calls) == 1
    assert _record(database_url).sent_count == 1


def test_status_conflict_exhaustion_raises(monkeypatch, tmp_path: Path):
    database_url = sqlite_url(tmp_path)
    settings = make_settings(database_url, status_update_max_attempts=3)
    seed_managed_notification(database_url)
    sender = RecordingSender()

    import src.notification_records.targets as targets_module

    calls = {"count": 0}

    def _always_conflict(kind, namespace, name, status, *, expected_version, database_url=None):
        calls["count"] += 1
        raise DocumentConflictError(kind, namespace, name, expected_version)

    monkeypatch.setattr(targets_module, "update_document_status", _always_conflict)

    with pytest.raises(StatusUpdateConflictError):
        _process(make_alert(), settings, sender)
    assert calls["count"] == 3
    assert len(sender.calls) == 1


def test_process_am_receiver_handles_firing_before_resolved(tmp_path: Path):
    existing = NotificationRecord(
        name=TEST_NOTIFICATION_NAME,
        sent_count=1,
        conditions=ledger(firing=True, sent_ago=timedelta(hours=5)),
    )
    settings, database_url = _setup(tmp_path, record=existing)
    sender = RecordingSender()
    data = AMReceiverData(
        receiver="ocm-agent",
        status="firing",
        alerts=[make_alert(status="resolved"), make_alert(status="firing")],
    )

    response = process_am_receiver(data, settings=settings, sender=sender)

    assert response.status == "ok"
    assert response.code == 200
    assert [call["firing"] for call in sender.calls] == [True, False]
    record = _record(database_url)
    assert record.sent_count == 3
    assert record.conditions.status_of(ConditionType.ALERT_FIRING) is False


def test_process_am_receiver_continues_after_invalid_alert(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()
    data = AMReceiverData(
        receiver="ocm-agent",
        status="firing",
        alerts=[make_alert(template=None), make_alert(template="missing-template"), make_alert()],
    )

    response = process_am_receiver(data, settings=settings, sender=sender)

    assert response.code == 200
    assert len(sender.calls) == 1


def test_process_am_receiver_reports_list_failure(monkeypatch, tmp_path: Path):
    settings, _ = _setup(tmp_path)
    import app.services.webhook_service as webhook_service

    def _failing_list(namespace, database_url=None):
        raise DocumentStoreError("listing failed")

    monkeypatch.setattr(webhook_service, "list_managed_notifications", _failing_list)

    response = process_am_receiver(
        AMReceiverData(receiver="ocm-agent", status="firing", alerts=[make_alert()]),
        settings=settings,
        sender=RecordingSender(),
    )

    assert response.code == 500
    assert response.status == "unable to list ManagedNotifications"
    assert response.error == "listing failed"


def test_process_am_receiver_stops_when_cancelled(tmp_path: Path):
    settings, _ = _setup(tmp_path)
    sender = RecordingSender()
    cancel_event = threading.Event()
    cancel_event.set()

    response = process_am_receiver(
        AMReceiverData(receiver="ocm-agent", status="firing", alerts=[make_alert()]),
        settings=settings,
        sender=sender,
        cancel_event=cancel_event,
    )

    assert response.code == 200
    assert sender.calls == []
