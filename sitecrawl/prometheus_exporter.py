import logging
import threading
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from .metrics import StatsAggregator


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(
        self,
        aggregator: StatsAggregator,
        port: int = 8000,
        registry: Optional[CollectorRegistry] = None,
        interval: float = 5.0,
    ) -> None:
        self.aggregator = aggregator
        self.port = port
        self.interval = interval
        self.registry = registry if registry is not None else REGISTRY
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.pages_total = Counter(
            "sitecrawl_pages_total", "Total number of pages fetched", registry=self.registry
        )
        self.links_total = Counter(
            "sitecrawl_links_total", "Total number of outbound links extracted", registry=self.registry
        )
        self.errors_total = Counter(
            "sitecrawl_errors_total", "Total number of failed page fetches", registry=self.registry
        )
        self.pages_per_second = Gauge(
            "sitecrawl_pages_per_second", "Current crawl rate in pages per second", registry=self.registry
        )
        self.avg_response_time_seconds = Gauge(
            "sitecrawl_avg_response_time_seconds", "Average page response time in seconds", registry=self.registry
        )
        self.success_rate = Gauge(
            "sitecrawl_success_rate", "Percentage of fetches that succeeded", registry=self.registry
        )

        self._last_pages = 0
        self._last_links = 0
        self._last_errors = 0

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True,
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            self._stop_event.wait(self.interval)

    def update(self) -> None:
        totals, elapsed = self.aggregator.totals()

        pages_delta = totals.pages - self._last_pages
        links_delta = totals.links - self._last_links
        errors_delta = totals.errors - self._last_errors

        if pages_delta > 0:
            self.pages_total.inc(pages_delta)
        if links_delta > 0:
            self.links_total.inc(links_delta)
        if errors_delta > 0:
            self.errors_total.inc(errors_delta)

        if elapsed > 0:
            self.pages_per_second.set(totals.pages / elapsed)

        if totals.pages > 0:
            self.avg_response_time_seconds.set(totals.response_ms_sum / totals.pages / 1000.0)
            self.success_rate.set((totals.pages - totals.errors) / totals.pages * 100.0)

        self._last_pages = totals.pages
        self._last_links = totals.links
        self._last_errors = totals.errors

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
        # final flush so counters match the finished session
        self.update()
