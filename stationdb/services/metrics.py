"""Per-operation metrics for pooled backend calls."""

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class OperationRecord:
    """Metrics for a single pooled operation."""
    label: str
    success: bool
    duration_ms: float
    timestamp: float
    error_type: Optional[str] = None


@dataclass
class OperationSummary:
    """Summary of one label over the rolling window."""
    label: str
    count: int
    success_count: int
    failure_count: int
    avg_duration_ms: float
    max_duration_ms: float
    p95_duration_ms: float
    success_rate: float
    errors: Dict[str, int] = field(default_factory=dict)


class OperationMetrics:
    """Rolling-window timing and success tracking keyed by operation label."""

    def __init__(self, window_seconds: int = 300, max_records: int = 1000):
        """Initialize the collector.

        Args:
            window_seconds: Rolling window size in seconds.
            max_records: Maximum records kept regardless of age.
        """
        self.window_seconds = window_seconds
        self.max_records = max_records
        self._lock = threading.Lock()
        self._records: deque[OperationRecord] = deque(maxlen=max_records)
        self._error_counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._start_time = time.time()

    def record(
        self,
        label: str,
        success: bool,
        duration_ms: float,
        error_type: Optional[str] = None
    ) -> None:
        """Record one finished operation."""
        with self._lock:
            now = time.time()
            self._evict(now)
            self._records.append(OperationRecord(
                label=label,
                success=success,
                duration_ms=duration_ms,
                timestamp=now,
                error_type=error_type
            ))
            if error_type:
                self._error_counts[label][error_type] += 1

    def summary(self, label: str) -> Optional[OperationSummary]:
        """Get the summary for one label, or None if it has no records."""
        with self._lock:
            self._evict(time.time())
            return self._summarize(label)

    def summaries(self) -> Dict[str, OperationSummary]:
        """Get summaries for every label in the window."""
        with self._lock:
            self._evict(time.time())
            labels = {r.label for r in self._records}
            return {label: self._summarize(label) for label in sorted(labels)}

    def snapshot(self) -> Dict[str, Any]:
        """Get a JSON-friendly view of all summaries."""
        summaries = self.summaries()
        return {
            "uptime_seconds": time.time() - self._start_time,
            "window_seconds": self.window_seconds,
            "operations": {
                label: {
                    "count": s.count,
                    "failure_count": s.failure_count,
                    "avg_duration_ms": s.avg_duration_ms,
                    "p95_duration_ms": s.p95_duration_ms,
                    "success_rate": s.success_rate,
                    "errors": s.errors
                }
                for label, s in summaries.items()
            }
        }

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._records.clear()
            self._error_counts.clear()
            self._start_time = time.time()

    def _evict(self, now: float) -> None:
        window_start = now - self.window_seconds
        while self._records and self._records[0].timestamp < window_start:
            self._records.popleft()

    def _summarize(self, label: str) -> Optional[OperationSummary]:
        relevant = [r for r in self._records if r.label == label]
        if not relevant:
            return None

        durations = sorted(r.duration_ms for r in relevant)
        success_count = sum(1 for r in relevant if r.success)
        return OperationSummary(
            label=label,
            count=len(relevant),
            success_count=success_count,
            failure_count=len(relevant) - success_count,
            avg_duration_ms=sum(durations) / len(durations),
            max_duration_ms=durations[-1],
            p95_duration_ms=_percentile(durations, 95),
            success_rate=success_count / len(relevant) * 100,
            errors=dict(self._error_counts.get(label, {}))
        )


def _percentile(sorted_list: List[float], percentile: float) -> float:
    """Calculate percentile of a sorted list."""
    if not sorted_list:
        return 0
    idx = int(len(sorted_list) * percentile / 100)
    return sorted_list[min(idx, len(sorted_list) - 1)]
