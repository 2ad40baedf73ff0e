# notifier/infra/metrics.py
"""
In-process metrics for the notifier.

Counters and duration histograms keyed by name plus sorted labels, e.g.
``notifications_sent_total{kind=new_order,recipient_type=director}``.
Histograms keep a bounded window of recent samples. Exposed on the admin
``/metrics`` endpoint; nothing is exported to an external system.
"""
from __future__ import annotations
import time
from collections import deque
from threading import Lock
from typing import Optional

from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

HISTOGRAM_WINDOW = 1000


def metric_key(name: str, labels: Optional[dict] = None) -> str:
    if not labels:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{rendered}}}"


def _summarize(samples: deque) -> dict:
    if not samples:
        return {"count": 0, "min": 0, "max": 0, "avg": 0, "p50": 0, "p95": 0}

    ordered = sorted(samples)
    n = len(ordered)
    return {
        "count": n,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / n,
        "p50": ordered[min(int(n * 0.50), n - 1)],
        "p95": ordered[min(int(n * 0.95), n - 1)],
    }


class MetricsCollector:
    def __init__(self, histogram_window: int = HISTOGRAM_WINDOW):
        self._window = histogram_window
        self._counters: dict[str, int] = {}
        self._histograms: dict[str, deque] = {}
        self._started = time.time()
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: Optional[dict] = None) -> None:
        key = metric_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def observe_histogram(self, name: str, value: float, labels: Optional[dict] = None) -> None:
        key = metric_key(name, labels)
        with self._lock:
            samples = self._histograms.get(key)
            if samples is None:
                samples = self._histograms[key] = deque(maxlen=self._window)
            samples.append(value)

    def get_metrics(self) -> dict:
        """Snapshot of every counter and histogram summary."""
        with self._lock:
            counters = dict(self._counters)
            histograms = {key: _summarize(samples) for key, samples in self._histograms.items()}
        return {
            "uptime_seconds": round(time.time() - self._started, 1),
            "counters": counters,
            "histograms": histograms,
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
        logger.info("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


def inc_counter(name: str, amount: int = 1, **labels) -> None:
    _metrics.inc_counter(name, amount, labels or None)


def observe_histogram(name: str, value: float, **labels) -> None:
    _metrics.observe_histogram(name, value, labels or None)


class Timer:
    """Records the duration of a ``with`` block into a histogram, in seconds."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self._start: Optional[float] = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._start is not None:
            observe_histogram(self.metric_name, time.perf_counter() - self._start, **self.labels)


# ============================================================================
# NOTIFIER METRICS
# ============================================================================

class AppMetrics:
    @staticmethod
    def notification_delivered(kind: str, recipient_type: str) -> None:
        inc_counter("notifications_sent_total", kind=kind, recipient_type=recipient_type)

    @staticmethod
    def notification_failed(kind: str, recipient_type: str) -> None:
        inc_counter("notifications_failed_total", kind=kind, recipient_type=recipient_type)

    @staticmethod
    def recipient_skipped(kind: str, reason: str) -> None:
        inc_counter("notifications_skipped_total", kind=kind, reason=reason)

    @staticmethod
    def reminder_sent(kind: str) -> None:
        inc_counter("reminders_sent_total", kind=kind)

    @staticmethod
    def reminder_pass_error(pass_name: str) -> None:
        inc_counter("reminder_pass_errors_total", pass_name=pass_name)

    @staticmethod
    def database_error(operation: str) -> None:
        inc_counter("database_errors_total", operation=operation)

    @staticmethod
    def track_dispatch_time(kind: str) -> Timer:
        return Timer("dispatch_seconds", kind=kind)
