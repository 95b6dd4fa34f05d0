"""Tests for the fetch rate limiter."""

import threading

import pytest

from product_renewal.core.rate_limiter import RateLimiter


class FakeTime:
    """Monotonic clock whose sleep advances it instantly."""

    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


def make_limiter(fake_time: FakeTime, rate: float, capacity: int) -> RateLimiter:
    return RateLimiter(
        rate=rate, capacity=capacity, monotonic=fake_time.monotonic, sleep=fake_time.sleep
    )


class TestRateLimiterBasics:
    """Test construction."""

    def test_default_capacity(self) -> None:
        """Default capacity is twice the rate, never below one."""
        assert RateLimiter(rate=10.0).capacity == 20
        assert RateLimiter(rate=0.1).capacity == 1

    def test_invalid_rate(self) -> None:
        with pytest.raises(ValueError, match="rate must be positive"):
            RateLimiter(rate=0.0)


class TestRateLimiterAcquire:
    """Test non-blocking acquire."""

    def test_acquire_fails_when_insufficient(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=2.0, capacity=10)
        assert limiter.acquire(tokens=10) is True
        assert limiter.acquire() is False

    def test_tokens_refill_over_time(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=10.0, capacity=10)
        assert limiter.acquire(tokens=10) is True

        fake_time.now += 0.15

        assert limiter.acquire() is True
        assert limiter.acquire() is False

    def test_refill_is_capped(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=10.0, capacity=5)
        fake_time.now += 60
        assert limiter.acquire(tokens=5) is True
        assert limiter.acquire() is False

    def test_thread_safety(self) -> None:
        """Concurrent acquires never hand out more tokens than the capacity."""
        limiter = RateLimiter(rate=0.001, capacity=50)
        acquired: list[bool] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(20):
                result = limiter.acquire()
                with lock:
                    acquired.append(result)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(acquired) == 50


class TestRateLimiterWait:
    """Test pacing with a bounded wait."""

    def test_no_sleep_while_budget_lasts(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=1.0, capacity=3)
        assert all(limiter.wait(timeout=5.0) for _ in range(3))
        assert fake_time.sleeps == []

    def test_paces_beyond_the_burst(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=2.0, capacity=2)
        start = fake_time.now

        results = [limiter.wait(timeout=5.0) for _ in range(6)]

        assert results == [True] * 6
        # Two from the burst, four more at two per second
        assert fake_time.now - start == pytest.approx(2.0)
        assert all(s == pytest.approx(0.5) for s in fake_time.sleeps)

    def test_timeout_expires(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=0.1, capacity=1)
        assert limiter.wait() is True

        assert limiter.wait(timeout=3.0) is False
        assert sum(fake_time.sleeps) == pytest.approx(3.0)
        # Nothing was spent by the failed wait
        fake_time.now += 8.0
        assert limiter.acquire() is True

    def test_more_than_capacity_rejected(self, fake_time: FakeTime) -> None:
        limiter = make_limiter(fake_time, rate=1.0, capacity=2)
        with pytest.raises(ValueError):
            limiter.wait(tokens=3)
