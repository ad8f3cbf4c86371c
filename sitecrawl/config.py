import re
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Pattern, Tuple
from urllib.parse import urlparse

from .errors import ConfigValidationError


DEFAULT_USER_AGENT = "sitecrawl/1.0 (+https://example.com; contact: crawler@example.com)"

MAX_DEPTH_RANGE = (1, 10)
MAX_PAGES_RANGE = (1, 100_000)
CONCURRENCY_RANGE = (1, 50)
DELAY_MS_RANGE = (0, 10_000)
TIMEOUT_RANGE = (1, 300)


@dataclass(frozen=True)
class CrawlConfig:
    seed_url: str
    max_depth: int = 2
    max_pages: int = 200
    concurrency: int = 8
    delay_ms: float = 500.0
    follow_external: bool = False
    respect_robots: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 15.0
    file_types: FrozenSet[str] = field(default_factory=frozenset)
    include_pattern: Optional[str] = None
    exclude_pattern: Optional[str] = None
    per_host_delay: bool = False
    metrics_interval: float = 10.0

    def __post_init__(self) -> None:
        # Accept any iterable of extensions but store a canonical frozenset.
        normalized = frozenset(
            t.strip().lower().lstrip(".") for t in (self.file_types or ()) if isinstance(t, str) and t.strip()
        )
        object.__setattr__(self, "file_types", normalized)
        for name in ("include_pattern", "exclude_pattern"):
            if getattr(self, name) == "":
                object.__setattr__(self, name, None)

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    def compiled_include(self) -> Optional[Pattern[str]]:
        return re.compile(self.include_pattern) if self.include_pattern else None

    def compiled_exclude(self) -> Optional[Pattern[str]]:
        return re.compile(self.exclude_pattern) if self.exclude_pattern else None

    def validate(self) -> "CrawlConfig":
        errors: List[Tuple[str, str]] = []

        parsed = urlparse(self.seed_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(("seed_url", "must be an absolute http(s) URL"))

        for name, (low, high) in (
            ("max_depth", MAX_DEPTH_RANGE),
            ("max_pages", MAX_PAGES_RANGE),
            ("concurrency", CONCURRENCY_RANGE),
            ("delay_ms", DELAY_MS_RANGE),
            ("timeout_seconds", TIMEOUT_RANGE),
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append((name, "must be a number"))
            elif not low <= value <= high:
                errors.append((name, f"must be between {low} and {high}"))

        for name in ("max_depth", "max_pages", "concurrency"):
            value = getattr(self, name)
            if isinstance(value, float) and not value.is_integer():
                errors.append((name, "must be a whole number"))

        if not isinstance(self.user_agent, str) or not self.user_agent.strip():
            errors.append(("user_agent", "must not be empty"))

        for name in ("include_pattern", "exclude_pattern"):
            pattern = getattr(self, name)
            if pattern is None:
                continue
            try:
                re.compile(pattern)
            except (re.error, TypeError) as exc:
                errors.append((name, f"invalid regular expression: {exc}"))

        if isinstance(self.metrics_interval, bool) or not isinstance(self.metrics_interval, (int, float)):
            errors.append(("metrics_interval", "must be a number"))
        elif self.metrics_interval < 0:
            errors.append(("metrics_interval", "must not be negative"))

        if errors:
            raise ConfigValidationError(errors)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["file_types"] = sorted(self.file_types)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CrawlConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "seed_url" not in kwargs:
            raise ConfigValidationError([("seed_url", "is required")])
        if not isinstance(kwargs["seed_url"], str):
            raise ConfigValidationError([("seed_url", "must be a string")])
        file_types = kwargs.get("file_types")
        if file_types is not None and (isinstance(file_types, str) or not all(isinstance(t, str) for t in file_types)):
            raise ConfigValidationError([("file_types", "must be a list of strings")])
        for name in ("follow_external", "respect_robots", "per_host_delay"):
            if name in kwargs and not isinstance(kwargs[name], bool):
                raise ConfigValidationError([(name, "must be a boolean")])
        return cls(**kwargs)
