import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .types import PageResult


@dataclass(frozen=True)
class Stats:
    total_pages: int = 0
    total_links: int = 0
    total_time_ms: float = 0.0
    avg_response_time_ms: float = 0.0
    error_count: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_pages": self.total_pages,
            "total_links": self.total_links,
            "total_time_ms": self.total_time_ms,
            "avg_response_time_ms": self.avg_response_time_ms,
            "error_count": self.error_count,
            "success_rate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stats":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class Totals:
    pages: int = 0
    links: int = 0
    errors: int = 0
    response_ms_sum: float = 0.0


class StatsAggregator:
    """Running sums over page results; each record is O(1)."""

    def __init__(self):
        self._totals = Totals()
        self._lock = threading.Lock()
        self._start = time.time()

    def record(self, result: PageResult) -> None:
        with self._lock:
            self._totals.pages += 1
            self._totals.links += result.num_links
            if not result.ok:
                self._totals.errors += 1
            self._totals.response_ms_sum += result.response_time_ms

    def totals(self) -> tuple[Totals, float]:
        with self._lock:
            t = Totals(
                pages=self._totals.pages,
                links=self._totals.links,
                errors=self._totals.errors,
                response_ms_sum=self._totals.response_ms_sum,
            )
        elapsed = max(1e-6, time.time() - self._start)
        return t, elapsed

    def snapshot(self, total_time_ms: float = 0.0) -> Stats:
        t, _ = self.totals()
        return compute_stats(t, total_time_ms)


def compute_stats(totals: Totals, total_time_ms: float) -> Stats:
    if totals.pages == 0:
        return Stats(total_time_ms=total_time_ms)
    return Stats(
        total_pages=totals.pages,
        total_links=totals.links,
        total_time_ms=total_time_ms,
        avg_response_time_ms=totals.response_ms_sum / totals.pages,
        error_count=totals.errors,
        success_rate=(totals.pages - totals.errors) / totals.pages * 100.0,
    )


class StatsLogger(threading.Thread):
    daemon = True

    def __init__(self, aggregator: StatsAggregator, interval_s: float, log_fn=None, label: Optional[str] = None):
        super().__init__(name="stats-logger")
        self._aggregator = aggregator
        self._interval = max(0.5, interval_s)
        self._log = log_fn or logging.getLogger(__name__).info
        self._label = label or "crawl"
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            self._stop_event.wait(self._interval)
            if self._stop_event.is_set():
                break
            totals, elapsed = self._aggregator.totals()
            pps = totals.pages / elapsed
            avg_ms = totals.response_ms_sum / max(1, totals.pages)
            self._log(
                "Perf[%s]: pages=%d, errors=%d, links=%d, avg_response_ms=%.1f, pages/sec=%.2f",
                self._label,
                totals.pages,
                totals.errors,
                totals.links,
                avg_ms,
                pps,
            )

    def stop(self) -> None:
        self._stop_event.set()
