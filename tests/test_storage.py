from datetime import datetime, timezone

import pytest

from sitecrawl.config import CrawlConfig
from sitecrawl.session import CrawlSession, SessionStatus
from sitecrawl.storage import InMemorySessionStore, SqliteSessionStore
from sitecrawl.types import PageFailure, PageMetadata, PageSuccess


NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def finished_session(seed="https://a.test/") -> CrawlSession:
    s = CrawlSession(CrawlConfig(seed_url=seed, file_types=frozenset({"html"}), exclude_pattern="logout"))
    s.start()
    s.append_result(
        PageSuccess(
            url=seed,
            metadata=PageMetadata(status_code=200, content_type="text/html", content_length=42, depth=0),
            response_time_ms=12.5,
            crawled_at=NOW,
            title="Home",
            description="Welcome",
            text="hello",
            links=("https://a.test/x",),
            images=("https://a.test/logo.png",),
        )
    )
    s.append_result(
        PageFailure(
            url="https://a.test/x",
            metadata=PageMetadata(status_code=404, depth=1),
            response_time_ms=3.0,
            crawled_at=NOW,
            reason="HTTP 404",
        )
    )
    s.finish(SessionStatus.COMPLETED)
    return s


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionStore()
    return SqliteSessionStore(str(tmp_path / "crawl.db"))


def test_save_and_get(store):
    snap = finished_session().snapshot()
    store.save(snap)
    assert store.get(snap.session_id) == snap
    assert store.get("missing") is None


def test_save_overwrites_previous_state(store):
    s = CrawlSession(CrawlConfig(seed_url="https://a.test/"))
    store.save(s.snapshot())
    assert store.get(s.session_id).status is SessionStatus.PENDING
    s.start()
    s.finish(SessionStatus.STOPPED)
    store.save(s.snapshot())
    assert store.get(s.session_id).status is SessionStatus.STOPPED
    assert len(store.list()) == 1


def test_list_newest_first(store):
    older = finished_session("https://a.test/")
    newer = finished_session("https://b.test/")
    store.save(older.snapshot())
    store.save(newer.snapshot())
    # re-saving must not reorder
    store.save(older.snapshot())
    summaries = store.list()
    assert [s.session_id for s in summaries] == [newer.session_id, older.session_id]
    assert summaries[0].seed_url == "https://b.test/"
    assert summaries[1].stats.total_pages == 2
    assert summaries[1].stats.error_count == 1


def test_delete(store):
    snap = finished_session().snapshot()
    store.save(snap)
    assert store.delete(snap.session_id)
    assert store.get(snap.session_id) is None
    assert not store.delete(snap.session_id)
