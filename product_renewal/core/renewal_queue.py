"""Durable claim/release work queue of product renewal requests.

Items are ordered by a queue-wide sequence number. Released items receive a
new sequence so they re-enter at the tail. A claim is exclusive and
time-bounded: once ``claimed_until`` passes, the item is claimable again, so a
worker that died mid-item never loses it.

Every claim, delete, release and drop is a read-modify-write under the database
lock, so two callers (threads or processes) never receive the same item.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from product_renewal.core.database import Database, with_storage_lock
from product_renewal.core.errors import QueueItemNotClaimedError, StorageError
from product_renewal.core.models import ProductKey, QueueItem
from product_renewal.core.utils import to_aware_utc, to_naive_utc, utc_now
from product_renewal.core.validation import sanitize_string, validate_product_key

if TYPE_CHECKING:
    from lancedb.table import Table as LanceTable

logger = logging.getLogger(__name__)

QUEUE_TABLE = "renewal_queue"

QUEUE_SCHEMA = pa.schema([
    pa.field("item_id", pa.string(), nullable=False),
    pa.field("key", pa.string(), nullable=False),
    pa.field("sequence", pa.int64(), nullable=False),
    pa.field("enqueued_at", pa.timestamp("us"), nullable=False),
    pa.field("attempts", pa.int64(), nullable=False),
    pa.field("forced", pa.bool_(), nullable=False),
    pa.field("claim_id", pa.string()),
    pa.field("claimed_until", pa.timestamp("us")),
])


class RenewalQueue:
    """LanceDB-backed renewal queue with exclusive, leased claims.

    Example:
        queue = RenewalQueue(database, lease=timedelta(hours=1))
        queue.enqueue("B00TEST123")
        item = queue.claim()
        if item is not None:
            ...  # process
            queue.delete(item)
    """

    def __init__(
        self,
        database: Database,
        lease: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the queue.

        Args:
            database: Connected database owning the table and locks.
            lease: How long a claim stays exclusive.
            clock: Source of "now" when a caller does not pass one.
        """
        if lease <= timedelta(0):
            raise ValueError("lease must be positive")
        self._database = database
        self.lease = lease
        self._clock = clock

    @property
    def table(self) -> LanceTable:
        return self._database.open_table(QUEUE_TABLE, QUEUE_SCHEMA)

    # =========================================================================
    # Row helpers
    # =========================================================================

    def _rows(self) -> list[dict[str, Any]]:
        try:
            rows = self.table.to_arrow().to_pylist()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read renewal queue: {e}") from e
        rows.sort(key=lambda row: row["sequence"])
        return rows

    @staticmethod
    def _to_item(row: dict[str, Any]) -> QueueItem:
        claimed_until = row.get("claimed_until")
        return QueueItem(
            item_id=row["item_id"],
            key=row["key"],
            enqueued_at=to_aware_utc(row["enqueued_at"]),
            sequence=int(row["sequence"]),
            attempts=int(row["attempts"]),
            forced=bool(row["forced"]),
            claim_id=row.get("claim_id"),
            claimed_until=to_aware_utc(claimed_until) if claimed_until else None,
        )

    @staticmethod
    def _to_row(item: QueueItem) -> dict[str, Any]:
        return {
            "item_id": item.item_id,
            "key": item.key,
            "sequence": item.sequence,
            "enqueued_at": to_naive_utc(item.enqueued_at),
            "attempts": item.attempts,
            "forced": item.forced,
            "claim_id": item.claim_id,
            "claimed_until": (
                to_naive_utc(item.claimed_until) if item.claimed_until else None
            ),
        }

    def _upsert(self, item: QueueItem) -> None:
        data = pa.Table.from_pylist([self._to_row(item)], schema=QUEUE_SCHEMA)
        try:
            (
                self.table.merge_insert("item_id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(data)
            )
        except Exception as e:
            raise StorageError(f"Failed to write queue item {item.item_id}: {e}") from e

    def _remove(self, item_id: str) -> None:
        try:
            self.table.delete(f"item_id = '{sanitize_string(item_id)}'")
        except Exception as e:
            raise StorageError(f"Failed to remove queue item {item_id}: {e}") from e

    @staticmethod
    def _is_available(row: dict[str, Any], now: datetime) -> bool:
        if row.get("claim_id") is None:
            return True
        claimed_until = row.get("claimed_until")
        return claimed_until is None or to_aware_utc(claimed_until) <= now

    def _require_claim(self, item: QueueItem) -> dict[str, Any]:
        """Return the stored row for ``item`` if the caller still holds its claim.

        Raises:
            QueueItemNotClaimedError: If the item is gone, unclaimed, or now
                claimed under a different token.
        """
        if item.claim_id is None:
            raise QueueItemNotClaimedError(item.item_id, item.key)
        row = next((r for r in self._rows() if r["item_id"] == item.item_id), None)
        if row is None or row.get("claim_id") != item.claim_id:
            raise QueueItemNotClaimedError(item.item_id, item.key)
        return row

    @staticmethod
    def _next_sequence(rows: list[dict[str, Any]]) -> int:
        return max((row["sequence"] for row in rows), default=0) + 1

    # =========================================================================
    # Queue operations
    # =========================================================================

    @with_storage_lock
    def enqueue(self, key: ProductKey, forced: bool = False) -> QueueItem:
        """Append a renewal request for ``key``.

        Duplicate keys may coexist in the queue.

        Args:
            key: Product key to renew.
            forced: Fetch even if the key is fresh when the item is processed.

        Returns:
            The new, unclaimed item.
        """
        key = validate_product_key(key)
        item = QueueItem(
            item_id=str(uuid.uuid4()),
            key=key,
            enqueued_at=self._clock(),
            sequence=self._next_sequence(self._rows()),
            forced=forced,
        )
        data = pa.Table.from_pylist([self._to_row(item)], schema=QUEUE_SCHEMA)
        try:
            self.table.add(data)
        except Exception as e:
            raise StorageError(f"Failed to enqueue {key}: {e}") from e
        logger.debug(f"Enqueued {key} (sequence {item.sequence}, forced={forced})")
        return item

    @with_storage_lock
    def claim(
        self,
        now: datetime | None = None,
        max_sequence: int | None = None,
    ) -> QueueItem | None:
        """Claim the next available item. Never blocks.

        Args:
            now: Claim time (defaults to the queue clock).
            max_sequence: Only consider items at or before this position.

        Returns:
            The claimed item, carrying the claim token, or None if nothing is
            available.
        """
        now = now or self._clock()
        for row in self._rows():
            if max_sequence is not None and row["sequence"] > max_sequence:
                break
            if not self._is_available(row, now):
                continue
            item = self._to_item(row).with_claim(str(uuid.uuid4()), now + self.lease)
            self._upsert(item)
            logger.debug(f"Claimed {item.key} (item {item.item_id})")
            return item
        return None

    @with_storage_lock
    def delete(self, item: QueueItem) -> None:
        """Permanently remove a claimed item.

        Raises:
            QueueItemNotClaimedError: If the caller does not hold the claim.
        """
        self._require_claim(item)
        self._remove(item.item_id)
        logger.debug(f"Deleted {item.key} (item {item.item_id})")

    @with_storage_lock
    def release(self, item: QueueItem) -> QueueItem:
        """Return a claimed item to the tail of the queue with one more attempt.

        Returns:
            The released, unclaimed item.

        Raises:
            QueueItemNotClaimedError: If the caller does not hold the claim.
        """
        row = self._require_claim(item)
        released = QueueItem(
            item_id=item.item_id,
            key=item.key,
            enqueued_at=to_aware_utc(row["enqueued_at"]),
            sequence=self._next_sequence(self._rows()),
            attempts=int(row["attempts"]) + 1,
            forced=bool(row["forced"]),
        )
        self._upsert(released)
        logger.debug(f"Released {item.key} (attempts={released.attempts})")
        return released

    @with_storage_lock
    def drop(self, item: QueueItem) -> None:
        """Abandon a claimed item without returning it to the queue.

        Raises:
            QueueItemNotClaimedError: If the caller does not hold the claim.
        """
        self._require_claim(item)
        self._remove(item.item_id)
        logger.warning(f"Dropped {item.key} after {item.attempts + 1} failed attempts")

    # =========================================================================
    # Inspection
    # =========================================================================

    def count(self) -> int:
        """Number of items in the queue, claimed or not."""
        try:
            return int(self.table.count_rows())
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to count renewal queue: {e}") from e

    def count_claimed(self, now: datetime | None = None) -> int:
        """Number of items under a live claim."""
        now = now or self._clock()
        return sum(1 for row in self._rows() if not self._is_available(row, now))

    def pending_keys(self, now: datetime | None = None) -> set[ProductKey]:
        """Keys with an item waiting to be claimed (unclaimed or lease expired)."""
        now = now or self._clock()
        return {row["key"] for row in self._rows() if self._is_available(row, now)}

    def max_sequence(self) -> int:
        """Position of the current tail (0 for an empty queue)."""
        return self._next_sequence(self._rows()) - 1

    def items(self) -> list[QueueItem]:
        """Snapshot of all items in queue order."""
        return [self._to_item(row) for row in self._rows()]

    @with_storage_lock
    def clear(self) -> int:
        """Remove every item. Returns the number removed."""
        count = self.count()
        try:
            self.table.delete("item_id IS NOT NULL")
        except Exception as e:
            raise StorageError(f"Failed to clear renewal queue: {e}") from e
        logger.info(f"Cleared {count} items from the renewal queue")
        return count
