"""Fetch budget for the product data source.

A token bucket: ``capacity`` fetches may go out back to back, after which the
budget refills at ``rate`` fetches per second. The worker paces itself on the
bucket with a bounded wait. Only the product source itself can suspend a drain.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket shared by every fetch in one process.

    Example:
        limiter = RateLimiter(rate=1.0, capacity=10)  # 1 fetch/sec, burst of 10
        if limiter.wait(timeout=30.0):
            ...  # fetch
    """

    def __init__(
        self,
        rate: float,
        capacity: int | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the bucket full.

        Args:
            rate: Fetches added back to the budget per second.
            capacity: Largest burst (default: twice the rate, at least 1).
            monotonic: Clock used for refills and deadlines.
            sleep: Called with the number of seconds to pause while waiting.
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = capacity or max(1, int(rate * 2))
        self._monotonic = monotonic
        self._sleep = sleep
        self._available = float(self.capacity)
        self._updated_at = monotonic()
        self._lock = threading.Lock()

    def _top_up(self) -> float:
        now = self._monotonic()
        earned = (now - self._updated_at) * self.rate
        self._available = min(float(self.capacity), self._available + earned)
        self._updated_at = now
        return self._available

    def _acquire_or_estimate(self, tokens: int) -> float:
        """Spend ``tokens`` and return 0.0, or return the seconds still missing."""
        with self._lock:
            shortfall = tokens - self._top_up()
            if shortfall <= 0:
                self._available -= tokens
                return 0.0
        return shortfall / self.rate

    def acquire(self, tokens: int = 1) -> bool:
        """Spend ``tokens`` from the budget if they are there.

        Returns:
            False, without spending anything, if the budget is short.
        """
        return self._acquire_or_estimate(tokens) == 0.0

    def wait(self, tokens: int = 1, timeout: float | None = None) -> bool:
        """Block until ``tokens`` can be spent, then spend them.

        The thread lock is never held while sleeping.

        Args:
            tokens: Number of tokens to spend.
            timeout: Longest total wait in seconds (None = no limit).

        Returns:
            True once the tokens are spent, False if the timeout ran out first.
        """
        if tokens > self.capacity:
            raise ValueError(f"cannot wait for {tokens} tokens with capacity {self.capacity}")
        deadline = self._monotonic() + timeout if timeout is not None else None

        while True:
            delay = self._acquire_or_estimate(tokens)
            if delay == 0.0:
                return True
            if deadline is not None:
                delay = min(delay, deadline - self._monotonic())
                if delay <= 0:
                    return False
            logger.debug(f"Fetch budget empty, pausing {delay:.2f}s")
            self._sleep(delay)
