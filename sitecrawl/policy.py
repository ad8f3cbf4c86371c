import logging
from typing import Optional, Pattern

from .config import CrawlConfig
from .parsing import UrlTools


logger = logging.getLogger(__name__)


class UrlFilter:
    """Decides whether a discovered link may enter the frontier.

    Links that cannot be parsed are rejected outright. The remaining rules run
    in order and the first failing one rejects: include pattern, exclude
    pattern, file-type allowlist, then the external-link policy.
    URLs whose last path segment has no extension pass the file-type rule.
    """

    def __init__(self, config: CrawlConfig):
        self.file_types = config.file_types
        self.follow_external = config.follow_external
        self._include: Optional[Pattern[str]] = config.compiled_include()
        self._exclude: Optional[Pattern[str]] = config.compiled_exclude()

    def admit(self, url: str, source_origin: str) -> bool:
        try:
            origin = UrlTools.origin(url)
            ext = UrlTools.extension(url)
        except ValueError:
            logger.debug("Rejected %s: not a parseable URL", url)
            return False
        if self._include is not None and not self._include.search(url):
            logger.debug("Rejected %s: does not match include pattern", url)
            return False
        if self._exclude is not None and self._exclude.search(url):
            logger.debug("Rejected %s: matches exclude pattern", url)
            return False
        if self.file_types and ext is not None and ext not in self.file_types:
            logger.debug("Rejected %s: file type %r not allowed", url, ext)
            return False
        if not self.follow_external and origin != source_origin.lower():
            logger.debug("Rejected %s: external to %s", url, source_origin)
            return False
        return True
