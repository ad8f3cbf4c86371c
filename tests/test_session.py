import threading
from datetime import datetime, timezone

import pytest

from sitecrawl.config import CrawlConfig
from sitecrawl.errors import EngineFault
from sitecrawl.session import CrawlSession, SessionStatus
from sitecrawl.types import PageFailure, PageMetadata, PageSuccess


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def page(url, links=()):
    return PageSuccess(
        url=url, metadata=PageMetadata(status_code=200), response_time_ms=5.0, crawled_at=NOW, links=tuple(links)
    )


def make_session() -> CrawlSession:
    return CrawlSession(CrawlConfig(seed_url="https://a.test/"))


def test_lifecycle():
    s = make_session()
    assert s.status is SessionStatus.PENDING
    s.start()
    assert s.status is SessionStatus.RUNNING
    s.append_result(page("https://a.test/", links=["https://a.test/x"]))
    s.finish(SessionStatus.COMPLETED)

    snap = s.snapshot()
    assert snap.status is SessionStatus.COMPLETED
    assert snap.end_time is not None and snap.end_time >= snap.start_time
    assert snap.stats.total_pages == 1
    assert snap.stats.total_links == 1
    assert snap.stats.total_time_ms >= 0
    assert snap.summary().seed_url == "https://a.test/"


def test_append_requires_running():
    s = make_session()
    with pytest.raises(EngineFault):
        s.append_result(page("https://a.test/"))
    s.start()
    s.finish(SessionStatus.STOPPED)
    with pytest.raises(EngineFault):
        s.append_result(page("https://a.test/"))


def test_finish_twice_is_a_fault():
    s = make_session()
    s.start()
    s.finish(SessionStatus.COMPLETED)
    with pytest.raises(EngineFault):
        s.finish(SessionStatus.STOPPED)


def test_finish_rejects_non_terminal_status():
    s = make_session()
    s.start()
    with pytest.raises(ValueError):
        s.finish(SessionStatus.RUNNING)


def test_request_stop_is_an_intent():
    s = make_session()
    s.start()
    s.request_stop()
    assert s.stop_requested
    assert s.status is SessionStatus.RUNNING
    assert s.snapshot().stop_requested


def test_request_stop_after_finish_is_noop():
    s = make_session()
    s.start()
    s.finish(SessionStatus.COMPLETED)
    s.request_stop()
    assert not s.stop_requested
    assert s.status is SessionStatus.COMPLETED


def test_snapshot_is_isolated_from_later_appends():
    s = make_session()
    s.start()
    s.append_result(page("https://a.test/1"))
    snap = s.snapshot()
    s.append_result(page("https://a.test/2"))
    assert len(snap.results) == 1
    assert len(s.snapshot().results) == 2


def test_concurrent_appends_and_snapshots():
    s = make_session()
    s.start()
    failures = []

    def writer(n):
        for i in range(100):
            s.append_result(page(f"https://a.test/{n}/{i}"))

    def reader():
        for _ in range(100):
            snap = s.snapshot()
            if snap.stats.total_pages != len(snap.results):
                failures.append(snap)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert failures == []
    assert s.snapshot().stats.total_pages == 400


def test_page_result_records_round_trip():
    success = page("https://a.test/", links=["https://a.test/x"])
    failure = PageFailure(
        url="https://a.test/y", metadata=PageMetadata(status_code=404, depth=1),
        response_time_ms=3.0, crawled_at=NOW, reason="HTTP 404",
    )
    assert success.ok and success.error is None
    assert not failure.ok and failure.error == "HTTP 404"
    assert type(success).from_record(success.to_record()) == success
    assert type(failure).from_record(failure.to_record()) == failure
