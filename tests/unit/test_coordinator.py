"""Unit tests for RenewalCoordinator against real LanceDB tables."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from product_renewal.core.errors import StorageError, ValidationError
from product_renewal.core.freshness_store import FreshnessStore
from product_renewal.core.models import QueueItem, WorkResult
from product_renewal.core.rate_limiter import RateLimiter
from product_renewal.core.renewal_queue import RenewalQueue
from product_renewal.services.coordinator import RenewalCoordinator
from product_renewal.services.queue_worker import QueueWorker
from tests.conftest import FakeProductSource, FrozenClock


@pytest.fixture
def worker(store: FreshnessStore, source: FakeProductSource, clock: FrozenClock) -> QueueWorker:
    return QueueWorker(store, source, clock=clock)


@pytest.fixture
def coordinator(
    store: FreshnessStore, queue: RenewalQueue, worker: QueueWorker
) -> RenewalCoordinator:
    return RenewalCoordinator(store, queue, worker, max_item_attempts=3)


class TestQueueRenewalSweep:
    def test_enqueues_only_stale_keys(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
        clock: FrozenClock,
    ) -> None:
        store.mark_renewed("B000000001", now=clock() - timedelta(days=2))
        store.mark_renewed("B000000002", now=clock() - timedelta(minutes=10))

        assert coordinator.queue_renewal_sweep() == 1

        items = queue.items()
        assert [i.key for i in items] == ["B000000001"]
        assert items[0].forced is False

    def test_explicit_keys_are_forced(
        self, coordinator: RenewalCoordinator, queue: RenewalQueue
    ) -> None:
        assert coordinator.queue_renewal_sweep(["B000000002", "B000000003"]) == 2
        assert all(item.forced for item in queue.items())

    def test_invalid_explicit_key(self, coordinator: RenewalCoordinator) -> None:
        with pytest.raises(ValidationError):
            coordinator.queue_renewal_sweep(["bad key"])

    def test_repeated_sweep_skips_pending_keys(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
    ) -> None:
        store.track(["B000000001", "B000000002"])

        assert coordinator.queue_renewal_sweep() == 2
        assert coordinator.queue_renewal_sweep() == 0
        assert queue.count() == 2

        store.track(["B000000003"])
        assert coordinator.queue_renewal_sweep() == 1
        assert sorted(queue.pending_keys()) == ["B000000001", "B000000002", "B000000003"]

    def test_explicit_keys_enqueued_even_if_pending(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
    ) -> None:
        store.track(["B000000001"])
        coordinator.queue_renewal_sweep()

        assert coordinator.queue_renewal_sweep(["B000000001"]) == 1
        assert [i.forced for i in queue.items()] == [False, True]

    def test_empty_store_enqueues_nothing(
        self, coordinator: RenewalCoordinator, queue: RenewalQueue
    ) -> None:
        assert coordinator.queue_renewal_sweep() == 0
        assert queue.count() == 0


class TestDrainQueue:
    def test_stale_and_fresh_keys(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
        source: FakeProductSource,
        clock: FrozenClock,
    ) -> None:
        """A stale key is renewed; a fresh key is never fetched."""
        store.mark_renewed("B000000001", now=clock() - timedelta(days=2))
        store.mark_renewed("B000000002", now=clock() - timedelta(hours=1))

        coordinator.queue_renewal_sweep()
        result = coordinator.drain_queue()

        assert result.processed == 1
        assert result.succeeded == 1
        assert result.exhausted
        assert source.calls == [{"B000000001"}]
        assert store.is_stale("B000000001") is False
        assert queue.count() == 0

    def test_drains_after_reset_all(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
    ) -> None:
        store.mark_renewed("B000000001")
        store.mark_renewed("B000000002")
        store.reset_all()

        assert coordinator.queue_renewal_sweep() == 2
        result = coordinator.drain_queue()

        assert result.succeeded == 2
        assert store.count_stale() == 0
        assert queue.count() == 0

    def test_transient_failure_is_released(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
        source: FakeProductSource,
    ) -> None:
        store.track(["B000000001", "B000000002"])
        source.failing.add("B000000001")
        coordinator.queue_renewal_sweep()

        result = coordinator.drain_queue()

        assert result.processed == 2
        assert result.succeeded == 1
        assert result.failed == 1
        assert result.errors == ["B000000001: HTTP 500"]
        # Released once, not reclaimed within the same run
        remaining = queue.items()
        assert [(i.key, i.attempts, i.claim_id) for i in remaining] == [
            ("B000000001", 1, None)
        ]
        assert store.is_stale("B000000001") is True

    def test_failed_item_dropped_at_attempt_cap(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
        source: FakeProductSource,
    ) -> None:
        store.track(["B000000001"])
        source.failing.add("B000000001")
        coordinator.queue_renewal_sweep()

        runs = [coordinator.drain_queue() for _ in range(3)]

        assert [r.dropped for r in runs] == [0, 0, 1]
        assert queue.count() == 0
        # The key is still stale and the next sweep picks it up again
        assert store.is_stale("B000000001") is True
        assert coordinator.queue_renewal_sweep() == 1

    def test_suspend_stops_drain(
        self,
        coordinator: RenewalCoordinator,
        store: FreshnessStore,
        queue: RenewalQueue,
        source: FakeProductSource,
    ) -> None:
        store.track(["B000000001", "B000000002", "B000000003"])
        source.throttled.add("B000000002")
        coordinator.queue_renewal_sweep()

        result = coordinator.drain_queue()

        assert result.suspended is True
        assert result.exhausted is False
        assert result.suspend_reason == "HTTP 429"
        assert result.processed == 2
        assert result.succeeded == 1
        assert source.calls == [{"B000000001"}, {"B000000002"}]
        assert store.is_stale("B000000002") is True
        # The suspending item is back in the queue, unclaimed
        assert sorted(i.key for i in queue.items()) == ["B000000002", "B000000003"]
        assert queue.count_claimed() == 0

    def test_unexpected_error_does_not_halt_drain(
        self, store: FreshnessStore, queue: RenewalQueue
    ) -> None:
        worker = MagicMock()

        def process(item: QueueItem) -> WorkResult:
            if item.key == "B000000001":
                raise RuntimeError("boom")
            return WorkResult.success(item.key)

        worker.process_item.side_effect = process
        coordinator = RenewalCoordinator(store, queue, worker)
        coordinator.queue_renewal_sweep(["B000000001", "B000000002"])

        result = coordinator.drain_queue()

        assert result.processed == 2
        assert result.succeeded == 1
        assert result.failed == 1
        assert result.errors == ["B000000001: boom"]
        assert [i.key for i in queue.items()] == ["B000000001"]

    def test_storage_error_propagates_and_releases(
        self, store: FreshnessStore, queue: RenewalQueue
    ) -> None:
        worker = MagicMock()
        worker.process_item.side_effect = StorageError("disk full")
        coordinator = RenewalCoordinator(store, queue, worker)
        coordinator.queue_renewal_sweep(["B000000001", "B000000002"])

        with pytest.raises(StorageError, match="disk full"):
            coordinator.drain_queue()

        assert worker.process_item.call_count == 1
        assert queue.count() == 2
        assert queue.count_claimed() == 0

    def test_empty_queue(self, coordinator: RenewalCoordinator) -> None:
        result = coordinator.drain_queue()
        assert result.processed == 0
        assert result.exhausted

    def test_invalid_attempt_cap(
        self, store: FreshnessStore, queue: RenewalQueue, worker: QueueWorker
    ) -> None:
        with pytest.raises(ValueError):
            RenewalCoordinator(store, queue, worker, max_item_attempts=0)

    def test_rate_limited_drain_renews_past_the_burst(
        self,
        store: FreshnessStore,
        queue: RenewalQueue,
        source: FakeProductSource,
        clock: FrozenClock,
    ) -> None:
        """A small fetch budget slows the drain down but never stops it."""
        elapsed: list[float] = []
        limiter = RateLimiter(
            rate=1.0,
            capacity=1,
            monotonic=lambda: sum(elapsed),
            sleep=elapsed.append,
        )
        worker = QueueWorker(store, source, rate_limiter=limiter, clock=clock)
        coordinator = RenewalCoordinator(store, queue, worker)
        store.track(["B000000001", "B000000002", "B000000003"])
        coordinator.queue_renewal_sweep()

        result = coordinator.drain_queue()

        assert result.suspended is False
        assert result.succeeded == 3
        assert store.count_stale() == 0
        assert sum(elapsed) == pytest.approx(2.0)
