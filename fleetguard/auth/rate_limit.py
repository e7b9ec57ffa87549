from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from fleetguard.auth.util import utcnow
from fleetguard.authz.audit_rules import RateLimit


class RateLimiter:
    """
    Sliding-window, in-memory rate limiter for token-authenticated viewers.

    Requests are tracked per identifier (a session id). The limit is passed on each
    call, so a policy reload that changes a role's rate limit applies immediately.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._hits: Dict[str, List[datetime]] = defaultdict(list)
        self._clock = clock or utcnow
        self._lock = threading.Lock()

    def check_and_increment(self, identifier: str, limit: RateLimit) -> Tuple[bool, int]:
        """
        Check whether `identifier` may make another request and record it if so.

        Returns:
            Tuple of (is_allowed, requests_remaining)
        """
        now = self._clock()
        window = timedelta(seconds=limit.window_seconds)
        with self._lock:
            hits = [t for t in self._hits[identifier] if now - t < window]
            if len(hits) >= limit.requests:
                self._hits[identifier] = hits
                return False, 0
            hits.append(now)
            self._hits[identifier] = hits
            return True, limit.requests - len(hits)

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._hits.pop(identifier, None)


# Global rate limiter instance
_global_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _global_rate_limiter
    if _global_rate_limiter is None:
        _global_rate_limiter = RateLimiter()
    return _global_rate_limiter


def reset_rate_limiter() -> None:
    global _global_rate_limiter
    _global_rate_limiter = None
