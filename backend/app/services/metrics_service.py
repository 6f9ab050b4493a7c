from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any

METRIC_REQUEST_FAILURE = "request_failure"
METRIC_RESPONSE_FAILURE = "response_failure"
METRIC_SERVICE_LOG_SENT = "service_log_sent"

_METRIC_PREFIX = "notification_dispatcher"
_METRIC_LABELS: dict[str, tuple[str, ...]] = {
    METRIC_REQUEST_FAILURE: ("path",),
    METRIC_RESPONSE_FAILURE: ("service",),
    METRIC_SERVICE_LOG_SENT: ("template", "state"),
}
_METRIC_HELP: dict[str, tuple[str, str]] = {
    METRIC_REQUEST_FAILURE: ("gauge", "Whether the last request to a receiver path failed."),
    METRIC_RESPONSE_FAILURE: ("gauge", "Whether the last call to an external service failed."),
    METRIC_SERVICE_LOG_SENT: ("counter", "Service logs sent, by notification template and alert state."),
}

_METRICS_LOCK = threading.Lock()
_METRICS: dict[str, defaultdict[tuple[str, ...], int]] = {
    metric_name: defaultdict(int) for metric_name in _METRIC_LABELS
}


def set_request_failure(path: str) -> None:
    with _METRICS_LOCK:
        _METRICS[METRIC_REQUEST_FAILURE][(str(path),)] = 1


def set_response_failure(service: str) -> None:
    with _METRICS_LOCK:
        _METRICS[METRIC_RESPONSE_FAILURE][(str(service),)] = 1


def reset_metric(metric_name: str) -> None:
    if metric_name not in _METRICS:
        return
    with _METRICS_LOCK:
        _METRICS[metric_name].clear()


def count_service_log_sent(template: str, state: str) -> None:
    with _METRICS_LOCK:
        _METRICS[METRIC_SERVICE_LOG_SENT][(str(template), str(state))] += 1


def reset_all_metrics() -> None:
    with _METRICS_LOCK:
        for values in _METRICS.values():
            values.clear()


def get_metrics_snapshot() -> dict[str, Any]:
    with _METRICS_LOCK:
        return {
            metric_name: {"|".join(labels): int(value) for labels, value in values.items()}
            for metric_name, values in _METRICS.items()
        }


def _escape_label_value(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def render_prometheus_metrics() -> str:
    lines: list[str] = []
    with _METRICS_LOCK:
        for metric_name, values in _METRICS.items():
            metric_type, help_text = _METRIC_HELP[metric_name]
            full_name = f"{_METRIC_PREFIX}_{metric_name}"
            if metric_type == "counter":
                full_name = f"{full_name}_total"
            lines.append(f"# HELP {full_name} {help_text}")
            lines.append(f"# TYPE {full_name} {metric_type}")
            label_names = _METRIC_LABELS[metric_name]
            for labels, value in sorted(values.items()):
                rendered = ",".join(
                    f'{name}="{_escape_label_value(label)}"' for name, label in zip(label_names, labels)
                )
                lines.append(f"{full_name}{{{rendered}}} {int(value)}")
    return "\n".join(lines) + "\n"
