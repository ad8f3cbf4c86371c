import logging
import threading
import time
from typing import Callable, Dict

from .types import RobotsPolicy


logger = logging.getLogger(__name__)

GLOBAL_TIMELINE = "*"


class PolitenessGovernor:
    """Spaces out fetch dispatches and applies the robots policy.

    By default all hosts share one timeline; with ``per_host`` each host gets
    its own.
    """

    def __init__(
        self,
        delay_seconds: float,
        robots: RobotsPolicy | None = None,
        user_agent: str = "",
        respect_robots: bool = True,
        per_host: bool = False,
        now: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.delay_seconds = delay_seconds
        self.robots = robots
        self.user_agent = user_agent
        self.respect_robots = respect_robots
        self.per_host = per_host
        self._next_time: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._now = now or time.monotonic
        self._sleep = sleep or time.sleep

    def await_slot(self, host: str) -> None:
        if self.delay_seconds <= 0:
            return
        key = host.lower() if self.per_host else GLOBAL_TIMELINE
        with self._lock:
            now = self._now()
            next_allowed = self._next_time.get(key, 0.0)
            sleep_for = next_allowed - now if next_allowed > now else 0.0
            self._next_time[key] = max(next_allowed, now) + self.delay_seconds
        if sleep_for > 0:
            self._sleep(sleep_for)

    def is_allowed(self, url: str) -> bool:
        if not self.respect_robots or self.robots is None:
            return True
        try:
            return bool(self.robots.is_allowed(url, self.user_agent))
        except (LookupError, OSError) as exc:
            # lookup or transport failure: fail closed for this URL
            logger.info("Robots lookup failed for %s, skipping: %s", url, exc)
            return False
