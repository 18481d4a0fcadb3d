"""
Metrics Collection for recurring task processing.

Counts series starts, generated occurrences, ended series and errors.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from recurring_tasks.utils.timeutils import utc_now

SERIES_STARTED = "recurrence_series_started_total"
OCCURRENCES_CREATED = "recurrence_occurrences_created_total"
SERIES_ENDED = "recurrence_series_ended_total"
ERRORS = "recurrence_errors_total"


class MetricsCollector:
    """Collects counters and timers for recurrence operations."""

    def __init__(self):
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        for name in (SERIES_STARTED, OCCURRENCES_CREATED, SERIES_ENDED, ERRORS):
            self.metrics[name] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": utc_now().isoformat(),
            }

    def series_started(self):
        self.increment_counter(SERIES_STARTED)

    def occurrence_created(self):
        self.increment_counter(OCCURRENCES_CREATED)

    def series_ended(self):
        self.increment_counter(SERIES_ENDED)

    def error(self):
        self.increment_counter(ERRORS)

    @contextmanager
    def time_operation(self, metric_name: str) -> Iterator[None]:
        """Context manager adding the elapsed seconds of its block to a timer."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.record_timer(metric_name, time.perf_counter() - start_time)


# Process-wide collector used by the HTTP layer
metrics_collector = MetricsCollector()
