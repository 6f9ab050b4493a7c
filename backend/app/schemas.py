from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ALERT_STATUS_FIRING = "firing"
ALERT_STATUS_RESOLVED = "resolved"


class HealthResponse(BaseModel):
    status: str


class AlertItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    starts_at: datetime | None = Field(default=None, alias="startsAt")
    ends_at: datetime | None = Field(default=None, alias="endsAt")
    generator_url: str | None = Field(default=None, alias="generatorURL")
    fingerprint: str | None = None

    @property
    def is_firing(self) -> bool:
        return self.status.strip().lower() == ALERT_STATUS_FIRING

    @property
    def is_resolved(self) -> bool:
        return self.status.strip().lower() == ALERT_STATUS_RESOLVED


class AMReceiverData(BaseModel):
    """Alertmanager webhook payload (version 4)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    receiver: str = ""
    status: str = ""
    alerts: list[AlertItem] = Field(default_factory=list)
    group_labels: dict[str, str] = Field(default_factory=dict, alias="groupLabels")
    common_labels: dict[str, str] = Field(default_factory=dict, alias="commonLabels")
    common_annotations: dict[str, str] = Field(default_factory=dict, alias="commonAnnotations")
    external_url: str = Field(default="", alias="externalURL")

    def firing(self) -> list[AlertItem]:
        return [alert for alert in self.alerts if alert.is_firing]

    def resolved(self) -> list[AlertItem]:
        return [alert for alert in self.alerts if alert.is_resolved]


class AMReceiverResponse(BaseModel):
    status: str
    code: int
    error: Any | None = None
