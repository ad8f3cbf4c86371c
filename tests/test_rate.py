import pytest

from sitecrawl.errors import RobotsLookupError
from sitecrawl.rate import PolitenessGovernor


class FakeClock:
    def __init__(self):
        self.t = 0.0
        self.sleeps = []

    def now(self):
        return self.t

    def sleep(self, s):
        self.sleeps.append(s)
        self.t += s


def test_governor_waits_on_global_timeline():
    clock = FakeClock()
    gov = PolitenessGovernor(0.5, now=clock.now, sleep=clock.sleep)
    gov.await_slot("a.com")
    assert clock.sleeps == []  # first call no wait
    gov.await_slot("b.com")  # different host still shares the timeline
    assert clock.sleeps and 0.49 <= clock.sleeps[-1] <= 0.5


def test_governor_per_host_timelines():
    clock = FakeClock()
    gov = PolitenessGovernor(0.5, per_host=True, now=clock.now, sleep=clock.sleep)
    gov.await_slot("a.com")
    gov.await_slot("b.com")
    assert clock.sleeps == []
    gov.await_slot("A.com")
    assert clock.sleeps == [pytest.approx(0.5)]


def test_governor_no_delay():
    clock = FakeClock()
    gov = PolitenessGovernor(0.0, now=clock.now, sleep=clock.sleep)
    for _ in range(5):
        gov.await_slot("a.com")
    assert clock.sleeps == []


def test_governor_no_wait_after_delay_elapsed():
    clock = FakeClock()
    gov = PolitenessGovernor(0.5, now=clock.now, sleep=clock.sleep)
    gov.await_slot("a.com")
    clock.t += 1.0
    gov.await_slot("a.com")
    assert clock.sleeps == []


class StubRobots:
    def __init__(self, allowed=True, fail=None):
        self.allowed = allowed
        self.fail = fail
        self.calls = []

    def is_allowed(self, url, user_agent):
        self.calls.append((url, user_agent))
        if self.fail is not None:
            raise self.fail
        return self.allowed


def test_robots_consulted_when_respected():
    robots = StubRobots(allowed=False)
    gov = PolitenessGovernor(0.0, robots=robots, user_agent="ua")
    assert not gov.is_allowed("https://a.test/x")
    assert robots.calls == [("https://a.test/x", "ua")]


def test_robots_ignored_when_not_respected():
    robots = StubRobots(allowed=False)
    gov = PolitenessGovernor(0.0, robots=robots, respect_robots=False)
    assert gov.is_allowed("https://a.test/x")
    assert robots.calls == []


@pytest.mark.parametrize(
    "failure",
    [RobotsLookupError("boom"), LookupError("dns failure"), ConnectionResetError("reset")],
)
def test_robots_lookup_failure_fails_closed(failure):
    gov = PolitenessGovernor(0.0, robots=StubRobots(fail=failure))
    assert not gov.is_allowed("https://a.test/x")


def test_robots_lookup_error_is_a_lookup_error():
    assert issubclass(RobotsLookupError, LookupError)
