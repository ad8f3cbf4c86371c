from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Tuple

if TYPE_CHECKING:
    from .session import SessionSnapshot, SessionSummary


@dataclass(frozen=True)
class FetchOutcome:
    status_code: int
    content_type: str = ""
    content_length: int = 0
    last_modified: Optional[str] = None
    links: Tuple[str, ...] = ()
    title: Optional[str] = None
    description: Optional[str] = None
    text: Optional[str] = None
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FrontierEntry:
    url: str
    depth: int


@dataclass(frozen=True)
class PageMetadata:
    status_code: int
    content_type: str = ""
    content_length: int = 0
    last_modified: Optional[str] = None
    depth: int = 0


@dataclass(frozen=True)
class PageResult:
    """One fetch attempt. Use PageSuccess or PageFailure."""

    url: str
    metadata: PageMetadata
    response_time_ms: float
    crawled_at: datetime

    @property
    def ok(self) -> bool:
        return False

    @property
    def error(self) -> Optional[str]:
        return None

    @property
    def num_links(self) -> int:
        return 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "ok": self.ok,
            "error": self.error,
            "status_code": self.metadata.status_code,
            "content_type": self.metadata.content_type,
            "content_length": self.metadata.content_length,
            "last_modified": self.metadata.last_modified,
            "depth": self.metadata.depth,
            "response_time_ms": self.response_time_ms,
            "crawled_at": self.crawled_at.isoformat(),
        }

    @staticmethod
    def from_record(record: Dict[str, Any]) -> "PageResult":
        metadata = PageMetadata(
            status_code=record["status_code"],
            content_type=record.get("content_type") or "",
            content_length=record.get("content_length") or 0,
            last_modified=record.get("last_modified"),
            depth=record.get("depth") or 0,
        )
        common = dict(
            url=record["url"],
            metadata=metadata,
            response_time_ms=record.get("response_time_ms") or 0.0,
            crawled_at=datetime.fromisoformat(record["crawled_at"]),
        )
        if record.get("ok"):
            return PageSuccess(
                **common,
                title=record.get("title"),
                description=record.get("description"),
                text=record.get("text"),
                links=tuple(record.get("links") or ()),
                images=tuple(record.get("images") or ()),
            )
        return PageFailure(**common, reason=record.get("error") or "unknown error")


@dataclass(frozen=True)
class PageSuccess(PageResult):
    title: Optional[str] = None
    description: Optional[str] = None
    text: Optional[str] = None
    links: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return True

    @property
    def num_links(self) -> int:
        return len(self.links)

    def to_record(self) -> Dict[str, Any]:
        record = super().to_record()
        record.update(
            title=self.title,
            description=self.description,
            text=self.text,
            links=list(self.links),
            images=list(self.images),
        )
        return record


@dataclass(frozen=True)
class PageFailure(PageResult):
    reason: str = ""

    @property
    def error(self) -> Optional[str]:
        return self.reason


class PageFetcher(Protocol):
    def fetch(self, url: str, user_agent: str, timeout: float) -> FetchOutcome: ...


class RobotsPolicy(Protocol):
    def is_allowed(self, url: str, user_agent: str) -> bool: ...


class SessionStore(Protocol):
    def save(self, snapshot: "SessionSnapshot") -> None: ...

    def get(self, session_id: str) -> Optional["SessionSnapshot"]: ...

    def list(self) -> List["SessionSummary"]: ...
