import json
import sqlite3
import threading
from datetime import datetime
from typing import Dict, List, Optional

from .config import CrawlConfig
from .metrics import Stats
from .session import SessionSnapshot, SessionStatus, SessionSummary
from .types import PageResult


class InMemorySessionStore:
    def __init__(self):
        self._sessions: Dict[str, SessionSnapshot] = {}
        self._lock = threading.Lock()

    def save(self, snapshot: SessionSnapshot) -> None:
        with self._lock:
            self._sessions[snapshot.session_id] = snapshot

    def get(self, session_id: str) -> Optional[SessionSnapshot]:
        with self._lock:
            return self._sessions.get(session_id)

    def list(self) -> List[SessionSummary]:
        with self._lock:
            snapshots = list(self._sessions.values())
        # dicts keep insertion order; newest first, creation time breaks ties
        snapshots.reverse()
        snapshots.sort(key=lambda s: s.created_at, reverse=True)
        return [s.summary() for s in snapshots]

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SqliteSessionStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS sessions ("
                " session_id TEXT PRIMARY KEY,"
                " seed_url TEXT,"
                " status TEXT,"
                " created_at TEXT,"
                " start_time TEXT,"
                " end_time TEXT,"
                " fault TEXT,"
                " stop_requested INTEGER,"
                " config TEXT,"
                " stats TEXT)"
            )
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS pages ("
                " session_id TEXT,"
                " seq INTEGER,"
                " url TEXT,"
                " status_code INTEGER,"
                " error TEXT,"
                " depth INTEGER,"
                " record TEXT,"
                " PRIMARY KEY(session_id, seq))"
            )
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_pages_url ON pages(session_id, url)")

    def save(self, snapshot: SessionSnapshot) -> None:
        pages = [
            (
                snapshot.session_id,
                seq,
                result.url,
                result.metadata.status_code,
                result.error,
                result.metadata.depth,
                json.dumps(result.to_record(), ensure_ascii=False),
            )
            for seq, result in enumerate(snapshot.results)
        ]
        with self._lock, self._conn:
            # Upsert keeps the rowid, which orders list() by creation.
            self._conn.execute(
                "INSERT INTO sessions(session_id, seed_url, status, created_at, start_time, end_time,"
                " fault, stop_requested, config, stats) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(session_id) DO UPDATE SET status=excluded.status,"
                " start_time=excluded.start_time, end_time=excluded.end_time, fault=excluded.fault,"
                " stop_requested=excluded.stop_requested, stats=excluded.stats",
                (
                    snapshot.session_id,
                    snapshot.config.seed_url,
                    snapshot.status.value,
                    _iso(snapshot.created_at),
                    _iso(snapshot.start_time),
                    _iso(snapshot.end_time),
                    snapshot.fault,
                    int(snapshot.stop_requested),
                    json.dumps(snapshot.config.to_dict()),
                    json.dumps(snapshot.stats.to_dict()),
                ),
            )
            self._conn.execute("DELETE FROM pages WHERE session_id = ?", (snapshot.session_id,))
            if pages:
                self._conn.executemany(
                    "INSERT INTO pages(session_id, seq, url, status_code, error, depth, record)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)",
                    pages,
                )

    def get(self, session_id: str) -> Optional[SessionSnapshot]:
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT session_id, status, created_at, start_time, end_time, fault, stop_requested,"
                " config, stats FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            if row is None:
                return None
            records = [
                r[0]
                for r in self._conn.execute(
                    "SELECT record FROM pages WHERE session_id = ? ORDER BY seq ASC", (session_id,)
                ).fetchall()
            ]
        sid, status, created_at, start_time, end_time, fault, stop_requested, config, stats = row
        return SessionSnapshot(
            session_id=sid,
            config=CrawlConfig.from_dict(json.loads(config)),
            results=tuple(PageResult.from_record(json.loads(r)) for r in records),
            stats=Stats.from_dict(json.loads(stats)),
            status=SessionStatus(status),
            created_at=_dt(created_at),
            start_time=_dt(start_time),
            end_time=_dt(end_time),
            fault=fault,
            stop_requested=bool(stop_requested),
        )

    def list(self) -> List[SessionSummary]:
        with self._lock, self._conn:
            rows = self._conn.execute(
                "SELECT session_id, seed_url, status, created_at, start_time, end_time, stats"
                " FROM sessions ORDER BY rowid DESC"
            ).fetchall()
        return [
            SessionSummary(
                session_id=sid,
                seed_url=seed_url,
                status=SessionStatus(status),
                created_at=_dt(created_at),
                start_time=_dt(start_time),
                end_time=_dt(end_time),
                stats=Stats.from_dict(json.loads(stats)),
            )
            for sid, seed_url, status, created_at, start_time, end_time, stats in rows
        ]

    def delete(self, session_id: str) -> bool:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM pages WHERE session_id = ?", (session_id,))
            cur = self._conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            return cur.rowcount > 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()
