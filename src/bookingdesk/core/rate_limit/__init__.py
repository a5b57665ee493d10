"""Fixed-window rate limiting over the state store."""

from bookingdesk.core.rate_limit.limiter import FixedWindowRateLimiter

__all__ = ["FixedWindowRateLimiter"]
