"""Fixed-window rate limiting for the credential endpoints.

Counters live in process memory, keyed by ``(scope, identifier)`` such as
``("login:ip", "203.0.113.7")``. Rules are written ``"count/window_seconds"``.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.core.exceptions import RateLimitedError
from src.core.logging import get_logger

log = get_logger(__name__)


def parse_rule(rule: str) -> tuple[int, int]:
    """``"10/60"`` -> ``(10, 60)``."""
    try:
        count, window = (int(part) for part in rule.split("/"))
    except ValueError as exc:
        msg = f"invalid rate limit rule: {rule!r}"
        raise ValueError(msg) from exc
    if count < 1 or window < 1:
        msg = f"invalid rate limit rule: {rule!r}"
        raise ValueError(msg)
    return count, window


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    reset_in: float


class RateLimiter:
    """Counts hits per key in fixed windows."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._buckets: dict[tuple[str, str], tuple[int, float]] = {}  # key -> (count, reset_at)

    def hit(self, scope: str, identifier: str, rule: str) -> RateDecision:
        limit, window = parse_rule(rule)
        now = self._clock()
        self._prune(now)

        key = (scope, identifier)
        count, reset_at = self._buckets.get(key, (0, now + window))
        count += 1
        self._buckets[key] = (count, reset_at)
        return RateDecision(
            allowed=count <= limit,
            remaining=max(limit - count, 0),
            reset_in=reset_at - now,
        )

    def check(self, scope: str, identifier: str, rule: str) -> None:
        """Record a hit, raising ``RateLimitedError`` once over the limit."""
        decision = self.hit(scope, identifier, rule)
        if not decision.allowed:
            retry_after = max(math.ceil(decision.reset_in), 1)
            log.warning("rate_limited", scope=scope, identifier=identifier, retry_after=retry_after)
            raise RateLimitedError(retry_after, context={"scope": scope})

    def reset(self) -> None:
        self._buckets.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._buckets.items() if reset_at <= now]
        for key in expired:
            del self._buckets[key]
