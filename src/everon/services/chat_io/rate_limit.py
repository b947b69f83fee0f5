from __future__ import annotations
import threading
import time
from typing import Callable, Dict


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: int, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.rate = rate_per_sec
        self.capacity = capacity
        self.tokens = float(capacity)
        self._clock = clock
        self.updated = clock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
        self.updated = now

    def take(self, cost: float = 1.0) -> float:
        """Consume ``cost`` tokens; return seconds to wait before using them (0 when free)."""
        self._refill()
        self.tokens -= cost
        if self.tokens >= 0:
            return 0.0
        return -self.tokens / self.rate if self.rate > 0 else float("inf")

    @property
    def full(self) -> bool:
        self._refill()
        return self.tokens >= self.capacity


class PerChatLimiter:
    """Token bucket per chat id; Telegram throttles bursts to a single chat."""

    def __init__(self, rate_per_sec: float = 1.0, capacity: int = 30, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.rate = rate_per_sec
        self.capacity = capacity
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def delay(self, chat_id: str, cost: float = 1.0) -> float:
        with self._lock:
            b = self._buckets.get(chat_id)
            if not b:
                b = self._buckets[chat_id] = TokenBucket(self.rate, self.capacity, clock=self._clock)
            wait = b.take(cost)
            # drop buckets that refilled completely so idle chats do not accumulate
            for key in [k for k, v in self._buckets.items() if k != chat_id and v.full]:
                del self._buckets[key]
            return wait
