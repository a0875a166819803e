"""In-process SLO counters and a bounded audit trail for the chat routes.

Counters are keyed by operation name (``chat.stream``) and reset on
process restart; they are exposed on ``/internal/metrics``. Audit events
(``chat.deleted``) keep the most recent AUDIT_EVENT_BUFFER entries.
"""
from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from chat_api.config import get_settings


@dataclass
class SLOMetric:
    count: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0

    def snapshot(self) -> dict[str, float]:
        if not self.count:
            return {"count": 0.0, "failures": 0.0, "avg_latency_ms": 0.0, "max_latency_ms": 0.0, "error_rate": 0.0}
        return {
            "count": float(self.count),
            "failures": float(self.failures),
            "avg_latency_ms": self.total_latency_ms / self.count,
            "max_latency_ms": self.max_latency_ms,
            "error_rate": self.failures / self.count,
        }


_metrics: dict[str, SLOMetric] = defaultdict(SLOMetric)
_audit_events: list[dict[str, Any]] = []


def record_metric(name: str, latency_ms: float, success: bool) -> None:
    """Count one completed operation and its latency."""
    metric = _metrics[name]
    metric.count += 1
    metric.failures += 0 if success else 1
    metric.total_latency_ms += latency_ms
    metric.max_latency_ms = max(metric.max_latency_ms, latency_ms)


def get_metric_snapshot() -> dict[str, dict[str, float]]:
    return {name: metric.snapshot() for name, metric in _metrics.items()}


def emit_audit_event(event_type: str, **payload: Any) -> None:
    """Append an audit event, dropping the oldest beyond the buffer size."""
    _audit_events.append({"ts": time.time(), "event": event_type, **payload})
    overflow = len(_audit_events) - get_settings().audit_event_buffer
    if overflow > 0:
        del _audit_events[:overflow]


def get_audit_events(limit: int = 100) -> list[dict[str, Any]]:
    if limit <= 0:
        return []
    return _audit_events[-limit:]


def reset_observability() -> None:
    _metrics.clear()
    _audit_events.clear()
