from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fleetguard.auth.rate_limit import RateLimiter, get_rate_limiter
from fleetguard.authz.audit_rules import RateLimit


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def test_allows_up_to_limit_then_blocks() -> None:
    limiter = RateLimiter(clock=_Clock())
    limit = RateLimit(requests=3, window_seconds=60)
    assert limiter.check_and_increment("s1", limit) == (True, 2)
    assert limiter.check_and_increment("s1", limit) == (True, 1)
    assert limiter.check_and_increment("s1", limit) == (True, 0)
    assert limiter.check_and_increment("s1", limit) == (False, 0)


def test_identifiers_are_independent() -> None:
    limiter = RateLimiter(clock=_Clock())
    limit = RateLimit(requests=1, window_seconds=60)
    assert limiter.check_and_increment("s1", limit)[0] is True
    assert limiter.check_and_increment("s2", limit)[0] is True
    assert limiter.check_and_increment("s1", limit)[0] is False


def test_window_slides() -> None:
    clock = _Clock()
    limiter = RateLimiter(clock=clock)
    limit = RateLimit(requests=1, window_seconds=60)
    assert limiter.check_and_increment("s1", limit)[0] is True
    clock.now += timedelta(seconds=59)
    assert limiter.check_and_increment("s1", limit)[0] is False
    clock.now += timedelta(seconds=2)
    assert limiter.check_and_increment("s1", limit)[0] is True


def test_reset_clears_history() -> None:
    limiter = RateLimiter(clock=_Clock())
    limit = RateLimit(requests=1, window_seconds=3600)
    limiter.check_and_increment("s1", limit)
    limiter.reset("s1")
    limiter.reset("never-seen")
    assert limiter.check_and_increment("s1", limit)[0] is True


def test_global_limiter_is_a_singleton() -> None:
    assert get_rate_limiter() is get_rate_limiter()
