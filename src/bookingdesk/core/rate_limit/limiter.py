"""Fixed-window rate limiter over the state store.

Each (identity, window) pair is one bucket key,
``rate:<identity>:<window_start_ms>``, holding ``{"count": n}`` with a
TTL of one window. Windows are disjoint: a client can burst up to twice
the limit across a window boundary.

The read-increment-write is not atomic across processes, so concurrent
requests for the same identity may over-admit slightly. A bucket whose
stored value cannot be parsed counts as zero (fail open) and is logged.
"""

from __future__ import annotations

import json

import structlog

from bookingdesk.contracts import RateLimitDecision
from bookingdesk.core.clock import Clock, system_clock
from bookingdesk.core.state.store import StateStore

logger = structlog.get_logger(__name__)


def bucket_key(identity: str, window_start_ms: int) -> str:
    return f"rate:{identity}:{window_start_ms}"


class FixedWindowRateLimiter:
    """Admission control with a fixed request budget per window.

    Example:
        limiter = FixedWindowRateLimiter(store)
        decision = limiter.admit("alice@example.com", limit=10, window_seconds=60)
        if not decision.allowed:
            ...  # respond 429, Retry-After from decision.reset_at_ms
    """

    def __init__(self, store: StateStore, *, clock: Clock = system_clock) -> None:
        self._store = store
        self._clock = clock

    def _read_count(self, key: str) -> int:
        raw = self._store.get(key)
        if raw is None:
            return 0
        try:
            data = json.loads(raw)
            count = data["count"]
            if not isinstance(count, int) or isinstance(count, bool) or count < 0:
                raise ValueError(f"invalid count {count!r}")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("rate_limit.bucket_unreadable", key=key, error=str(e))
            return 0
        return count

    def admit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Count one request against key's current window.

        Args:
            key: Identity being limited (e.g. lowercased customer email)
            limit: Requests admitted per window
            window_seconds: Window length

        Returns:
            RateLimitDecision; a denied request does not consume budget
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        if window_seconds < 1:
            raise ValueError(f"window_seconds must be >= 1, got {window_seconds}")

        window_ms = window_seconds * 1000
        now = self._clock()
        window_start = (now // window_ms) * window_ms
        reset_at = window_start + window_ms
        storage_key = bucket_key(key, window_start)

        count = self._read_count(storage_key)
        if count >= limit:
            return RateLimitDecision(allowed=False, remaining=0, reset_at_ms=reset_at)

        self._store.put(storage_key, json.dumps({"count": count + 1}), ttl_seconds=window_seconds)
        return RateLimitDecision(allowed=True, remaining=limit - count - 1, reset_at_ms=reset_at)
