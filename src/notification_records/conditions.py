from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ConditionType(str, Enum):
    ALERT_FIRING = "AlertFiring"
    ALERT_RESOLVED = "AlertResolved"
    NOTIFICATION_SENT = "NotificationSent"


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_timestamp(value: datetime | str | None) -> datetime:
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, str) and value.strip():
        return _ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    raise ValueError(f"Unsupported condition timestamp: {value!r}")


@dataclass(frozen=True)
class Condition:
    type: ConditionType
    status: bool
    last_transition_time: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "status": self.status,
            "last_transition_time": self.last_transition_time.isoformat().replace("+00:00", "Z"),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Condition":
        raw_status = payload.get("status", False)
        if isinstance(raw_status, str):
            status = raw_status.strip().lower() == "true"
        else:
            status = bool(raw_status)
        return cls(
            type=ConditionType(str(payload.get("type", "")).strip()),
            status=status,
            last_transition_time=_parse_timestamp(payload.get("last_transition_time")),
        )


class ConditionLedger:
    """Fixed set of conditions keyed by type.

    Setting a type that already exists replaces its status and timestamp; other
    types are left as they were.
    """

    def __init__(self, conditions: list[Condition] | None = None) -> None:
        self._conditions: dict[ConditionType, Condition] = {}
        for condition in conditions or []:
            self._conditions[condition.type] = condition

    def get(self, condition_type: ConditionType) -> Condition | None:
        return self._conditions.get(condition_type)

    def set(self, condition_type: ConditionType, status: bool, at: datetime) -> Condition:
        condition = Condition(type=condition_type, status=bool(status), last_transition_time=_ensure_utc(at))
        self._conditions[condition_type] = condition
        return condition

    def status_of(self, condition_type: ConditionType) -> bool:
        condition = self._conditions.get(condition_type)
        return condition.status if condition is not None else False

    def __len__(self) -> int:
        return len(self._conditions)

    def __iter__(self):
        for condition_type in ConditionType:
            if condition_type in self._conditions:
                yield self._conditions[condition_type]

    def to_list(self) -> list[dict[str, Any]]:
        return [condition.to_dict() for condition in self]

    @classmethod
    def from_list(cls, payload: list[dict[str, Any]] | None) -> "ConditionLedger":
        if not payload:
            return cls()
        if not isinstance(payload, list):
            raise ValueError("conditions must be a list")
        return cls([Condition.from_dict(item) for item in payload if isinstance(item, dict)])
