import logging
import threading
from typing import Dict, Optional, Tuple
from urllib import robotparser
from urllib.parse import urljoin

import urllib3
from urllib3 import exceptions as urllib3_exc
from urllib3.util.retry import Retry

from .errors import FetchError, RobotsLookupError
from .parsing import Extractor, UrlTools
from .types import FetchOutcome


logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0


def build_pool(concurrency: int, max_connections: int = 16) -> urllib3.PoolManager:
    return urllib3.PoolManager(
        num_pools=max(8, concurrency),
        maxsize=max_connections,
        headers={
            "Accept": "text/html,*/*;q=0.8",
            "Accept-Encoding": "gzip, deflate",
        },
        retries=Retry(
            total=2,
            backoff_factor=0.3,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        ),
    )


def _is_timeout(exc: BaseException) -> bool:
    # NewConnectionError subclasses ConnectTimeoutError but means "refused"
    return isinstance(exc, urllib3_exc.TimeoutError) and not isinstance(exc, urllib3_exc.NewConnectionError)


def _request_bytes(
    http: urllib3.PoolManager, url: str, user_agent: str, timeout: float
) -> Tuple[int, Dict[str, str], bytes, str]:
    """GET ``url`` and return status, headers, body and the final URL after redirects."""
    try:
        response = http.request(
            "GET",
            url,
            timeout=urllib3.Timeout(connect=min(CONNECT_TIMEOUT, timeout), read=timeout),
            preload_content=True,
            headers={"User-Agent": user_agent},
        )
    except urllib3_exc.MaxRetryError as exc:
        if _is_timeout(exc.reason):
            raise FetchError(f"timed out: {exc.reason}", status_code=408) from exc
        raise FetchError(f"request failed: {exc.reason}", status_code=500) from exc
    except urllib3_exc.HTTPError as exc:
        status_code = 408 if _is_timeout(exc) else 500
        raise FetchError(f"request failed: {exc}", status_code=status_code) from exc
    final_url = urljoin(url, getattr(response, "url", None) or url)
    return response.status, dict(response.headers), response.data or b"", final_url


class HtmlPageFetcher:
    def __init__(self, concurrency: int = 8, max_connections: int = 16, http: Optional[urllib3.PoolManager] = None):
        self.http = http or build_pool(concurrency, max_connections)

    def fetch(self, url: str, user_agent: str, timeout: float) -> FetchOutcome:
        status, headers, body, final_url = _request_bytes(self.http, url, user_agent, timeout)
        if not 200 <= status < 300:
            raise FetchError(f"HTTP {status}", status_code=status)
        headers = {k.lower(): v for k, v in headers.items()}
        content_type = headers.get("content-type", "")
        try:
            content_length = int(headers.get("content-length", len(body)))
        except ValueError:
            content_length = len(body)
        outcome = dict(
            status_code=status,
            content_type=content_type,
            content_length=content_length,
            last_modified=headers.get("last-modified"),
        )
        if body and "text/html" in content_type:
            html = body.decode("utf-8", errors="ignore")
            try:
                # relative links resolve against where redirects ended up
                record, links, images = Extractor.extract(final_url, html)
            except Exception as exc:
                raise FetchError(f"could not parse {url}: {exc}", status_code=500) from exc
            outcome.update(
                title=record["title"],
                description=record["description"],
                text=record["text"],
                links=tuple(links),
                images=tuple(images),
            )
        return FetchOutcome(**outcome)


class RobotsCache:
    """robots.txt rules fetched once per origin.

    A missing robots.txt (4xx) allows everything. Server errors and transport
    failures raise RobotsLookupError and are not cached.
    """

    def __init__(self, http: Optional[urllib3.PoolManager] = None, timeout: float = 10.0):
        self.http = http or build_pool(1)
        self.timeout = timeout
        self._cache: Dict[str, Optional[robotparser.RobotFileParser]] = {}
        self._lock = threading.Lock()

    def _fetch_robots(self, root: str, user_agent: str) -> Optional[robotparser.RobotFileParser]:
        robots_url = urljoin(root, "/robots.txt")
        try:
            status, _headers, body, _final_url = _request_bytes(self.http, robots_url, user_agent, self.timeout)
        except FetchError as exc:
            raise RobotsLookupError(f"could not fetch {robots_url}: {exc}") from exc
        if status >= 500:
            raise RobotsLookupError(f"{robots_url} returned HTTP {status}")
        if status >= 400:
            return None
        rp = robotparser.RobotFileParser()
        rp.set_url(robots_url)
        rp.parse(body.decode("utf-8", errors="ignore").splitlines())
        return rp

    def is_allowed(self, url: str, user_agent: str) -> bool:
        root = UrlTools.origin(url)
        with self._lock:
            cached = root in self._cache
            rp = self._cache.get(root)
        if not cached:
            rp = self._fetch_robots(root, user_agent)
            with self._lock:
                self._cache[root] = rp
            logger.debug("Loaded robots.txt for %s (%s)", root, "rules" if rp else "allow all")
        if rp is None:
            return True
        return rp.can_fetch(user_agent, url)
