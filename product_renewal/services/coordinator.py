"""Renewal coordinator: enqueue stale keys and drain the renewal queue.

The drain loop is sequential. It stops when no claimable item is left, when the
worker reports FATAL_SUSPEND, or when the storage layer fails. A single bad
item never halts the drain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from product_renewal.core.errors import QueueItemNotClaimedError, StorageError
from product_renewal.core.models import DrainResult, ItemOutcome, ProductKey, QueueItem
from product_renewal.core.validation import validate_product_keys

if TYPE_CHECKING:
    from product_renewal.ports.repositories import (
        FreshnessStoreProtocol,
        RenewalQueueProtocol,
    )
    from product_renewal.services.queue_worker import QueueWorker

logger = logging.getLogger(__name__)


class RenewalCoordinator:
    """Orchestrates renewal sweeps and queue drains.

    Collaborators are passed in explicitly; see ServiceFactory for the wiring.

    Example:
        coordinator = RenewalCoordinator(store, queue, worker, max_item_attempts=5)
        coordinator.queue_renewal_sweep()
        result = coordinator.drain_queue()
    """

    def __init__(
        self,
        store: FreshnessStoreProtocol,
        queue: RenewalQueueProtocol,
        worker: QueueWorker,
        max_item_attempts: int = 5,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Freshness store, source of stale keys.
            queue: Renewal queue.
            worker: Processes claimed items.
            max_item_attempts: Failed attempts after which an item is dropped
                instead of released.
        """
        if max_item_attempts < 1:
            raise ValueError("max_item_attempts must be at least 1")
        self._store = store
        self._queue = queue
        self._worker = worker
        self._max_item_attempts = max_item_attempts

    def queue_renewal_sweep(self, keys: Iterable[ProductKey] | None = None) -> int:
        """Enqueue keys for renewal.

        Without ``keys`` every stale key is enqueued, except keys that already
        have an item waiting to be claimed. Explicit keys are always enqueued
        as forced requests, fetched even if currently fresh.

        Fails fast: the first storage error propagates and enqueues already
        made stand.

        Args:
            keys: Keys to force-renew, or None for all stale keys.

        Returns:
            Number of items enqueued.
        """
        if keys is None:
            stale = self._store.stale_keys()
            pending = self._queue.pending_keys()
            to_enqueue = [key for key in stale if key not in pending]
            forced = False
            if len(to_enqueue) < len(stale):
                logger.debug(
                    f"Skipped {len(stale) - len(to_enqueue)} stale products already queued"
                )
        else:
            to_enqueue = validate_product_keys(keys)
            forced = True

        for key in to_enqueue:
            self._queue.enqueue(key, forced=forced)

        logger.info(f"Queued {len(to_enqueue)} products for renewal (forced={forced})")
        return len(to_enqueue)

    def drain_queue(self) -> DrainResult:
        """Process queued items until the queue is exhausted or suspended.

        Only items positioned at or before the tail at the start of the run are
        claimed, so items released during the run wait for the next one.

        Returns:
            Summary of the run.

        Raises:
            StorageError: If the store or queue fails. The in-flight item is
                released on a best-effort basis; otherwise its lease expires.
        """
        result = DrainResult()
        horizon = self._queue.max_sequence()

        while True:
            item = self._queue.claim(max_sequence=horizon)
            if item is None:
                break

            result.processed += 1
            try:
                work = self._worker.process_item(item)
            except StorageError:
                self._release_quietly(item)
                raise
            except Exception as e:
                logger.error(f"Unexpected error renewing {item.key}", exc_info=True)
                result.failed += 1
                result.errors.append(f"{item.key}: {e}")
                try:
                    self._release_or_drop(item, result)
                except QueueItemNotClaimedError:
                    logger.warning(f"Lost claim on {item.key} while processing it")
                continue

            try:
                if work.outcome is ItemOutcome.SUCCESS:
                    self._queue.delete(item)
                    result.succeeded += 1
                elif work.outcome is ItemOutcome.TRANSIENT_FAILURE:
                    result.failed += 1
                    result.errors.append(f"{item.key}: {work.error}")
                    self._release_or_drop(item, result)
                else:
                    result.suspended = True
                    result.suspend_reason = work.error
                    self._queue.release(item)
            except QueueItemNotClaimedError:
                # Lease expired and another worker took the item over
                logger.warning(f"Lost claim on {item.key} while processing it")

            if result.suspended:
                logger.info(f"Renewal suspended at {item.key}: {work.error}")
                break

        logger.info(
            "Drain finished. Processed: %d, Succeeded: %d, Failed: %d, Dropped: %d, "
            "Suspended: %s",
            result.processed,
            result.succeeded,
            result.failed,
            result.dropped,
            result.suspended,
        )
        return result

    def _release_or_drop(self, item: QueueItem, result: DrainResult) -> None:
        if item.attempts + 1 >= self._max_item_attempts:
            self._queue.drop(item)
            result.dropped += 1
        else:
            self._queue.release(item)

    def _release_quietly(self, item: QueueItem) -> None:
        try:
            self._queue.release(item)
        except Exception as e:
            logger.error(f"Could not release {item.key} after storage failure: {e}")
