from typing import List, Optional, Tuple


class CrawlError(Exception):
    """Base class for errors raised by the crawl engine."""


class ConfigValidationError(CrawlError):
    def __init__(self, errors: List[Tuple[str, str]]):
        self.errors = list(errors)
        detail = "; ".join(f"{field}: {message}" for field, message in self.errors)
        super().__init__(f"Invalid configuration: {detail}")


class FetchError(CrawlError):
    """A single page could not be fetched. Recorded on the page, never fatal."""

    def __init__(self, message: str, status_code: Optional[int] = 500):
        super().__init__(message)
        self.status_code = status_code


class RobotsLookupError(CrawlError, LookupError):
    """robots.txt could not be read; the URL is treated as disallowed."""


class EngineFault(CrawlError):
    pass


class SessionNotFound(CrawlError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Crawl session not found: {session_id}")
        self.session_id = session_id
