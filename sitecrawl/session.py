import enum
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .config import CrawlConfig
from .errors import EngineFault
from .metrics import Stats, StatsAggregator
from .types import PageResult


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.STOPPED, SessionStatus.ERROR)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    seed_url: str
    status: SessionStatus
    created_at: datetime
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    stats: Stats


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    config: CrawlConfig
    results: Tuple[PageResult, ...]
    stats: Stats
    status: SessionStatus
    created_at: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    fault: Optional[str] = None
    stop_requested: bool = False

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            seed_url=self.config.seed_url,
            status=self.status,
            created_at=self.created_at,
            start_time=self.start_time,
            end_time=self.end_time,
            stats=self.stats,
        )


class CrawlSession:
    """One crawl run: its config, results in completion order, and lifecycle.

    Results are only appended while running. A stop request is an intent the
    worker pool observes on its next loop check.
    """

    def __init__(self, config: CrawlConfig, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self.config = config
        self.created_at = utc_now()
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.fault: Optional[str] = None
        self._status = SessionStatus.PENDING
        self._results: List[PageResult] = []
        self._stats = StatsAggregator()
        self._stop = threading.Event()
        self._lock = threading.Lock()

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._status

    @property
    def stats_aggregator(self) -> StatsAggregator:
        return self._stats

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        with self._lock:
            if self._status is not SessionStatus.PENDING:
                raise EngineFault(f"cannot start session in state {self._status.value}")
            self._status = SessionStatus.RUNNING
            self.start_time = utc_now()

    def append_result(self, result: PageResult) -> None:
        with self._lock:
            if self._status is not SessionStatus.RUNNING:
                raise EngineFault(f"result appended to session in state {self._status.value}")
            self._results.append(result)
            self._stats.record(result)

    def request_stop(self) -> None:
        with self._lock:
            if self._status.terminal:
                return
            self._stop.set()

    def finish(self, status: SessionStatus, fault: Optional[str] = None) -> None:
        if not status.terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        with self._lock:
            if self._status.terminal:
                raise EngineFault(f"session already finished as {self._status.value}")
            if self.start_time is None:
                self.start_time = utc_now()
            self._status = status
            self.end_time = utc_now()
            self.fault = fault

    def _elapsed_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or utc_now()
        return (end - self.start_time).total_seconds() * 1000.0

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                session_id=self.session_id,
                config=self.config,
                results=tuple(self._results),
                stats=self._stats.snapshot(self._elapsed_ms()),
                status=self._status,
                created_at=self.created_at,
                start_time=self.start_time,
                end_time=self.end_time,
                fault=self.fault,
                stop_requested=self._stop.is_set(),
            )

    def summary(self) -> SessionSummary:
        return self.snapshot().summary()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)
