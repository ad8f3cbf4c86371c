import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .config import CrawlConfig
from .engine import Crawler
from .errors import SessionNotFound
from .metrics import Stats
from .net import HtmlPageFetcher, RobotsCache
from .session import CrawlSession, SessionSnapshot, SessionSummary
from .storage import InMemorySessionStore
from .types import PageFetcher, PageResult, RobotsPolicy, SessionStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultsPage:
    results: Tuple[PageResult, ...]
    page: int
    limit: int
    total: int
    total_pages: int
    stats: Stats


class CrawlService:
    """Starts crawls in the background and answers status queries.

    Running sessions are read live; finished ones come from the store.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        fetcher: Optional[PageFetcher] = None,
        robots: Optional[RobotsPolicy] = None,
    ):
        self.store = store if store is not None else InMemorySessionStore()
        self._fetcher = fetcher
        self._robots = robots
        self._active: Dict[str, Tuple[CrawlSession, threading.Thread]] = {}
        self._lock = threading.Lock()

    def start_crawl(
        self, config: CrawlConfig, on_start: Optional[Callable[[CrawlSession], None]] = None
    ) -> str:
        """Validate ``config`` and run a new session on a background thread.

        ``on_start`` sees the session before its thread starts, so it can
        attach to live stats even if the crawl finishes immediately.
        """
        config.validate()
        session = CrawlSession(config)
        fetcher = self._fetcher or HtmlPageFetcher(concurrency=config.concurrency)
        robots = self._robots
        if robots is None and config.respect_robots:
            robots = RobotsCache(http=getattr(fetcher, "http", None), timeout=config.timeout_seconds)
        crawler = Crawler(session, fetcher, robots=robots)
        if on_start is not None:
            on_start(session)

        thread = threading.Thread(
            target=self._run, args=(crawler,), name=f"crawl-{session.session_id[:8]}", daemon=True
        )
        self.store.save(session.snapshot())
        with self._lock:
            self._active[session.session_id] = (session, thread)
        thread.start()
        logger.info("Started crawl %s for %s", session.session_id, config.seed_url)
        return session.session_id

    def _run(self, crawler: Crawler) -> None:
        session = crawler.session
        try:
            crawler.run()
        finally:
            self.store.save(session.snapshot())
            with self._lock:
                self._active.pop(session.session_id, None)

    def active_session(self, session_id: str) -> Optional[CrawlSession]:
        with self._lock:
            entry = self._active.get(session_id)
        return entry[0] if entry else None

    def get_status(self, session_id: str) -> SessionSnapshot:
        session = self.active_session(session_id)
        if session is not None:
            return session.snapshot()
        snapshot = self.store.get(session_id)
        if snapshot is None:
            raise SessionNotFound(session_id)
        return snapshot

    def request_stop(self, session_id: str) -> None:
        session = self.active_session(session_id)
        if session is not None:
            logger.info("Stop requested for crawl %s", session_id)
            session.request_stop()
            return
        if self.store.get(session_id) is None:
            raise SessionNotFound(session_id)

    def join(self, session_id: str, timeout: Optional[float] = None) -> SessionSnapshot:
        with self._lock:
            entry = self._active.get(session_id)
        if entry is not None:
            entry[1].join(timeout)
        return self.get_status(session_id)

    def list_sessions(self) -> List[SessionSummary]:
        with self._lock:
            live = {sid: session for sid, (session, _thread) in self._active.items()}
        summaries = []
        for summary in self.store.list():
            session = live.get(summary.session_id)
            summaries.append(session.summary() if session is not None else summary)
        return summaries

    def get_results(self, session_id: str, page: int = 1, limit: int = 50) -> ResultsPage:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        snapshot = self.get_status(session_id)
        start = (page - 1) * limit
        total = len(snapshot.results)
        return ResultsPage(
            results=snapshot.results[start:start + limit],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
            stats=snapshot.stats,
        )
