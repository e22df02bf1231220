import time
import threading
from typing import Dict, Tuple

from core.errors import TrainerError


class RateLimitExceeded(TrainerError):
    status_code = 429
    error_type = "rate_limited"


class RateLimiter:
    """Fixed-window limiter with one bucket per key (usually the user id)."""

    def __init__(self, calls: int, period: int):
        self.calls = calls
        self.period = period
        self.buckets: Dict[str, Tuple[int, float]] = {}
        self.last_prune = 0.0
        self.lock = threading.Lock()

    def _prune(self, now: float):
        # Sweep expired windows at most once per period.
        if now - self.last_prune <= self.period:
            return
        self.buckets = {k: v for k, v in self.buckets.items() if now - v[1] <= self.period}
        self.last_prune = now

    def _refill(self, key: str, now: float) -> int:
        tokens, window_start = self.buckets.get(key, (self.calls, now))
        if now - window_start > self.period:
            tokens, window_start = self.calls, now
        self.buckets[key] = (tokens, window_start)
        return tokens

    def acquire(self, key: str = "global"):
        with self.lock:
            now = time.time()
            self._prune(now)
            tokens = self._refill(key, now)
            if tokens > 0:
                self.buckets[key] = (tokens - 1, self.buckets[key][1])
                return True
            else:
                raise RateLimitExceeded("Rate limit exceeded. Please try again later.")

    def reset(self):
        with self.lock:
            self.buckets.clear()
            self.last_prune = 0.0

# Global limiter instance
from .config import settings
limiter = RateLimiter(calls=settings.RATE_LIMIT_CALLS, period=settings.RATE_LIMIT_PERIOD)
