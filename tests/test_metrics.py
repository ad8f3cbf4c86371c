from datetime import datetime, timezone

import pytest

from sitecrawl.metrics import StatsAggregator
from sitecrawl.types import PageFailure, PageMetadata, PageSuccess


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ok(url, links=(), ms=10.0):
    return PageSuccess(
        url=url, metadata=PageMetadata(status_code=200), response_time_ms=ms, crawled_at=NOW, links=tuple(links)
    )


def failed(url, ms=10.0):
    return PageFailure(
        url=url, metadata=PageMetadata(status_code=500), response_time_ms=ms, crawled_at=NOW, reason="boom"
    )


def test_empty_stats():
    stats = StatsAggregator().snapshot()
    assert stats.total_pages == 0
    assert stats.success_rate == 0
    assert stats.avg_response_time_ms == 0


def test_stats_accumulate():
    agg = StatsAggregator()
    agg.record(ok("https://a.test/", links=["x", "y"], ms=100.0))
    agg.record(ok("https://a.test/x", links=["z"], ms=50.0))
    agg.record(failed("https://a.test/y", ms=30.0))
    agg.record(failed("https://a.test/z", ms=20.0))

    stats = agg.snapshot(total_time_ms=1234.0)
    assert stats.total_pages == 4
    assert stats.total_links == 3
    assert stats.error_count == 2
    assert stats.total_time_ms == 1234.0
    assert stats.avg_response_time_ms == pytest.approx(50.0)
    assert stats.success_rate == pytest.approx((4 - 2) / 4 * 100)


def test_metrics_records_fetches():
    agg = StatsAggregator()
    agg.record(ok("https://a.test/", ms=50.0))
    totals, elapsed = agg.totals()
    assert totals.pages == 1
    assert totals.errors == 0
    assert totals.response_ms_sum == 50.0
    assert elapsed > 0

    agg.record(failed("https://a.test/x", ms=100.0))
    totals, _ = agg.totals()
    assert totals.pages == 2
    assert totals.errors == 1
    assert totals.response_ms_sum == 150.0


def test_stats_dict_round_trip():
    agg = StatsAggregator()
    agg.record(ok("https://a.test/", links=["x"]))
    stats = agg.snapshot(5.0)
    assert type(stats).from_dict(stats.to_dict()) == stats
