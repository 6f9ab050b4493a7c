from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NOTIFICATIONS_NAMESPACE = "openshift-ocm-agent-operator"


class Settings(BaseSettings):
    database_url: str
    environment: str = "development"
    log_level: str = "INFO"

    cluster_id: str = ""
    ocm_base_url: str = "https://api.openshift.com"
    ocm_access_token: str | None = None
    ocm_timeout_seconds: float = 10.0
    service_name: str = "SREManualAction"

    notifications_namespace: str = DEFAULT_NOTIFICATIONS_NAMESPACE
    notification_definitions_path: str | None = None
    status_update_max_attempts: int = 5

    backend_host: str = "0.0.0.0"
    backend_port: int = 8081

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def service_logs_url(self) -> str:
        return f"{self.ocm_base_url.rstrip('/')}/api/service_logs/v1/cluster_logs"

    @property
    def bounded_status_update_attempts(self) -> int:
        return max(1, min(int(self.status_update_max_attempts), 20))


@lru_cache
def get_settings() -> Settings:
    return Settings()
