import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Optional

from .errors import EngineFault, FetchError
from .frontier import Frontier
from .metrics import StatsLogger
from .parsing import UrlTools
from .policy import UrlFilter
from .rate import PolitenessGovernor
from .session import CrawlSession, SessionSnapshot, SessionStatus, utc_now
from .types import FrontierEntry, PageFailure, PageFetcher, PageMetadata, PageResult, PageSuccess, RobotsPolicy


logger = logging.getLogger(__name__)

TIMEOUT_STATUS = 408


class Crawler:
    """Drains the frontier with at most ``concurrency`` fetches in flight.

    Dispatch and completion handling both happen on the thread calling
    :meth:`run`; only the fetches themselves run on pool threads.
    """

    def __init__(
        self,
        session: CrawlSession,
        fetcher: PageFetcher,
        robots: RobotsPolicy | None = None,
        governor: PolitenessGovernor | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.session = session
        self.config = session.config
        self.fetcher = fetcher
        self.frontier = Frontier(self.config.max_depth)
        self.url_filter = UrlFilter(self.config)
        self.governor = governor or PolitenessGovernor(
            self.config.delay_seconds,
            robots=robots,
            user_agent=self.config.user_agent,
            respect_robots=self.config.respect_robots,
            per_host=self.config.per_host_delay,
        )
        self.dispatched = 0
        self._clock = clock or time.perf_counter
        self.stats_thread: Optional[StatsLogger] = None

    def run(self) -> SessionSnapshot:
        self.session.start()
        logger.info(
            "Starting crawl %s: seed=%s max_depth=%d max_pages=%d concurrency=%d",
            self.session.session_id,
            self.config.seed_url,
            self.config.max_depth,
            self.config.max_pages,
            self.config.concurrency,
        )
        if self.config.metrics_interval and self.config.metrics_interval > 0:
            self.stats_thread = StatsLogger(
                self.session.stats_aggregator, self.config.metrics_interval, label=self.session.session_id
            )
            self.stats_thread.start()
        try:
            with ThreadPoolExecutor(
                max_workers=self.config.concurrency, thread_name_prefix="crawl-worker"
            ) as executor:
                status = self._drive(executor)
        except Exception as exc:
            logger.exception("Crawl %s aborted by engine fault", self.session.session_id)
            fault = str(exc) if isinstance(exc, EngineFault) else f"{type(exc).__name__}: {exc}"
            self.session.finish(SessionStatus.ERROR, fault=fault)
        else:
            self.session.finish(status)
        finally:
            if self.stats_thread:
                self.stats_thread.stop()

        snapshot = self.session.snapshot()
        logger.info(
            "Finished crawl %s (%s). Pages: %d, errors: %d",
            snapshot.session_id,
            snapshot.status.value,
            snapshot.stats.total_pages,
            snapshot.stats.error_count,
        )
        return snapshot

    def _drive(self, executor: ThreadPoolExecutor) -> SessionStatus:
        # The seed is exempt from the URL filter.
        self.frontier.push(self.config.seed_url, 0)
        in_flight: Dict[Future, FrontierEntry] = {}

        while True:
            while (
                len(in_flight) < self.config.concurrency
                and self.dispatched < self.config.max_pages
                and not self.session.stop_requested
            ):
                entry = self.frontier.pop()
                if entry is None:
                    break
                if entry.depth > self.config.max_depth:
                    raise EngineFault(f"frontier yielded {entry.url} at depth {entry.depth}")
                if not self.governor.is_allowed(entry.url):
                    logger.debug("Disallowed by robots.txt: %s", entry.url)
                    continue
                self.governor.await_slot(UrlTools.host(entry.url))
                if self.session.stop_requested:
                    break
                in_flight[executor.submit(self._fetch, entry)] = entry
                self.dispatched += 1

            if not in_flight:
                break
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                entry = in_flight.pop(future)
                self._complete(entry, future.result())

        return SessionStatus.STOPPED if self.session.stop_requested else SessionStatus.COMPLETED

    def _fetch(self, entry: FrontierEntry) -> PageResult:
        t0 = self._clock()
        try:
            outcome = self.fetcher.fetch(entry.url, self.config.user_agent, self.config.timeout_seconds)
        except FetchError as exc:
            dt_ms = (self._clock() - t0) * 1000.0
            return self._failure(entry, str(exc), exc.status_code or 500, dt_ms)
        dt_ms = (self._clock() - t0) * 1000.0

        if dt_ms > self.config.timeout_seconds * 1000.0:
            return self._failure(
                entry, f"timed out after {self.config.timeout_seconds:g}s", TIMEOUT_STATUS, dt_ms
            )
        metadata = PageMetadata(
            status_code=outcome.status_code,
            content_type=outcome.content_type,
            content_length=outcome.content_length,
            last_modified=outcome.last_modified,
            depth=entry.depth,
        )
        if not 200 <= outcome.status_code < 300:
            return PageFailure(
                url=entry.url,
                metadata=metadata,
                response_time_ms=dt_ms,
                crawled_at=utc_now(),
                reason=f"HTTP {outcome.status_code}",
            )
        return PageSuccess(
            url=entry.url,
            metadata=metadata,
            response_time_ms=dt_ms,
            crawled_at=utc_now(),
            title=outcome.title,
            description=outcome.description,
            text=outcome.text,
            links=tuple(outcome.links),
            images=tuple(outcome.images),
        )

    @staticmethod
    def _failure(entry: FrontierEntry, reason: str, status_code: int, dt_ms: float) -> PageFailure:
        return PageFailure(
            url=entry.url,
            metadata=PageMetadata(status_code=status_code, depth=entry.depth),
            response_time_ms=dt_ms,
            crawled_at=utc_now(),
            reason=reason,
        )

    def _complete(self, entry: FrontierEntry, result: PageResult) -> None:
        self.session.append_result(result)
        if isinstance(result, PageSuccess):
            self._enqueue_links(result, entry.depth)
        else:
            logger.warning("Fetch failed for %s: %s", result.url, result.error)
        pages = len(self.session)
        if pages % 10 == 0:
            logger.info("Crawled %d pages", pages)

    def _enqueue_links(self, result: PageSuccess, current_depth: int) -> None:
        next_depth = current_depth + 1
        if next_depth > self.config.max_depth:
            return
        source_origin = UrlTools.origin(result.url)
        for link in result.links:
            if self.url_filter.admit(link, source_origin):
                self.frontier.push(link, next_depth)
