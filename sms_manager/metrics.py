from __future__ import annotations

from collections import Counter
from functools import wraps
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from sms_manager.config import settings


logger = logging.getLogger('sms_manager.metrics')

SEND_OUTCOMES = ('sent', 'failed', 'rejected')
UNRESOLVED_PROVIDER = '-'


class MetricsExporter:
    def export_send_window(self, *, window_start: datetime, counts: dict[str, dict[str, int]]) -> None:
        raise NotImplementedError


class LogMetricsExporter(MetricsExporter):
    def export_send_window(self, *, window_start: datetime, counts: dict[str, dict[str, int]]) -> None:
        for provider_handle in sorted(counts):
            outcomes = counts[provider_handle]
            logger.info(
                'send_metrics window=%s provider=%s sent=%s failed=%s rejected=%s',
                window_start.isoformat(),
                provider_handle,
                *(outcomes.get(outcome, 0) for outcome in SEND_OUTCOMES),
            )


_exporter: MetricsExporter = LogMetricsExporter()


def set_metrics_exporter(exporter: MetricsExporter) -> None:
    global _exporter
    _exporter = exporter


class SendOutcomeWindow:
    """Per-provider dispatch outcome counts, exported whenever the window rolls over."""

    def __init__(self, window_seconds: int = 60) -> None:
        self.window_seconds = window_seconds
        self._lock = threading.Lock()
        self._window: int | None = None
        self._counts: Counter[tuple[str, str]] = Counter()

    def _export(self) -> None:
        if self._window is None or not self._counts:
            return
        grouped: dict[str, dict[str, int]] = {}
        for (provider_handle, outcome), value in self._counts.items():
            grouped.setdefault(provider_handle, {})[outcome] = value
        window_start = datetime.fromtimestamp(self._window * self.window_seconds, tz=timezone.utc)
        try:
            _exporter.export_send_window(window_start=window_start, counts=grouped)
        except Exception:
            logger.exception('metrics_export_failed window=%s', window_start.isoformat())
        self._counts.clear()

    def add(self, provider_handle: str, outcome: str, *, now: float | None = None) -> None:
        window = int((time.time() if now is None else now) // self.window_seconds)
        with self._lock:
            if self._window is not None and window != self._window:
                self._export()
            self._window = window
            self._counts[(provider_handle, outcome)] += 1

    def totals(self) -> dict[str, int]:
        with self._lock:
            result = dict.fromkeys(SEND_OUTCOMES, 0)
            for (_, outcome), value in self._counts.items():
                result[outcome] = result.get(outcome, 0) + value
            return result

    def flush(self) -> None:
        with self._lock:
            self._export()


_send_window = SendOutcomeWindow()


def record_send_outcome(outcome: str, provider_handle: str | None = None) -> None:
    """Count a dispatch outcome: `sent`, `failed` (provider said no) or `rejected` (never reached a provider)."""
    _send_window.add(provider_handle or UNRESOLVED_PROVIDER, outcome)


def flush_send_metrics() -> None:
    _send_window.flush()


def timed_service(label: str, *, threshold_ms: int | None = None) -> Callable[[Callable[..., object]], Callable[..., object]]:
    def decorator(func: Callable[..., object]) -> Callable[..., object]:
        @wraps(func)
        def wrapper(*args: object, **kwargs: object):
            limit = threshold_ms if threshold_ms is not None else settings.metrics_slow_ms
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - started) * 1000.0
                if duration_ms >= limit:
                    logger.info('service_slow label=%s duration_ms=%.2f', label, duration_ms)

        return wrapper

    return decorator


def run_timed_job(label: str, fn: Callable[[], object]) -> object:
    started = time.perf_counter()
    logger.info('job_start name=%s', label)
    try:
        result = fn()
    except Exception:
        logger.exception('job_failed name=%s duration_ms=%.2f', label, (time.perf_counter() - started) * 1000.0)
        raise
    logger.info('job_end name=%s duration_ms=%.2f', label, (time.perf_counter() - started) * 1000.0)
    return result
