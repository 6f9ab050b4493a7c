from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .conditions import ConditionLedger, ConditionType


def can_send(
    ledger: ConditionLedger,
    is_firing: bool,
    resend_wait: timedelta,
    *,
    has_resolved_body: bool,
    now: datetime | None = None,
) -> bool:
    """Decide whether a service log is due for one (template, target) pair.

    A firing alert is sent the first time and then once per ``resend_wait``.
    A resolved alert is sent only when a resolved body exists and the ledger
    still shows the alert as firing.
    """
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    if is_firing:
        sent = ledger.get(ConditionType.NOTIFICATION_SENT)
        if sent is None:
            return True
        return current_time - sent.last_transition_time >= resend_wait

    if not has_resolved_body:
        return False
    return ledger.status_of(ConditionType.ALERT_FIRING)
