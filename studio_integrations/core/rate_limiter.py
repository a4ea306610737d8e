"""Rate limiting utilities."""
import asyncio
import time
from typing import Hashable


class RateLimiter:
    """
    Token bucket rate limiter for the event loop.

    Waiting never blocks a thread: ``wait`` sleeps cooperatively until a
    token is available.
    """

    def __init__(self, requests_per_minute: int = 60):
        self.rate = requests_per_minute
        self.tokens = float(requests_per_minute)
        self.last_update = time.monotonic()

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.rate, self.tokens + elapsed * (self.rate / 60))
        self.last_update = now

    def acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens without waiting.

        Returns:
            True if tokens acquired, False otherwise
        """
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def get_wait_time(self, tokens: int = 1) -> float:
        """Estimated seconds until ``tokens`` are available."""
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        needed = tokens - self.tokens
        return needed / (self.rate / 60)

    async def wait(self, tokens: int = 1) -> None:
        """Wait until tokens are available."""
        while not self.acquire(tokens):
            await asyncio.sleep(max(self.get_wait_time(tokens), 0.05))


class KeyedRateLimiter:
    """One token bucket per key, e.g. per (platform, workspace)."""

    def __init__(self, requests_per_minute: int = 60):
        self.rate = requests_per_minute
        self._buckets: dict[Hashable, RateLimiter] = {}

    def for_key(self, key: Hashable) -> RateLimiter:
        limiter = self._buckets.get(key)
        if limiter is None:
            limiter = RateLimiter(self.rate)
            self._buckets[key] = limiter
        return limiter

    async def wait(self, key: Hashable, tokens: int = 1) -> None:
        await self.for_key(key).wait(tokens)

