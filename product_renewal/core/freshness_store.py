"""Freshness store: product key -> last renewal time.

The store is the single source of truth for staleness. A key is stale when it
has no record, was never renewed (or was reset), or its last renewal is at least
one renewal interval old.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from product_renewal.core.database import Database, with_storage_lock
from product_renewal.core.errors import StorageError
from product_renewal.core.models import FreshnessRecord, ProductKey
from product_renewal.core.utils import (
    NEVER_RENEWED,
    is_never_renewed,
    to_aware_utc,
    to_naive_utc,
    utc_now,
)
from product_renewal.core.validation import (
    sanitize_string,
    validate_product_key,
    validate_product_keys,
)

if TYPE_CHECKING:
    from lancedb.table import Table as LanceTable

logger = logging.getLogger(__name__)

FRESHNESS_TABLE = "freshness"

FRESHNESS_SCHEMA = pa.schema([
    pa.field("key", pa.string(), nullable=False),
    pa.field("ordinal", pa.int64(), nullable=False),
    pa.field("last_renewed_at", pa.timestamp("us"), nullable=False),
    pa.field("product_data", pa.string()),
])


class FreshnessStore:
    """Persistent freshness records backed by a LanceDB table.

    Reads take no lock; every mutation runs under the database lock so that
    concurrent sweeps in other processes see consistent rows.

    Example:
        store = FreshnessStore(database, ttl=timedelta(hours=24))
        store.track(["B00TEST123"])
        if store.is_stale("B00TEST123"):
            ...
        store.mark_renewed("B00TEST123", product_data={"title": "..."})
    """

    def __init__(
        self,
        database: Database,
        ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            database: Connected database owning the table and locks.
            ttl: Renewal interval; records at least this old are stale.
            clock: Source of "now" when a caller does not pass one.
        """
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self._database = database
        self.ttl = ttl
        self._clock = clock

    @property
    def table(self) -> LanceTable:
        return self._database.open_table(FRESHNESS_TABLE, FRESHNESS_SCHEMA)

    # =========================================================================
    # Row conversion
    # =========================================================================

    def _rows(self) -> list[dict[str, Any]]:
        try:
            rows = self.table.to_arrow().to_pylist()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read freshness records: {e}") from e
        rows.sort(key=lambda row: row["ordinal"])
        return rows

    @staticmethod
    def _to_record(row: dict[str, Any]) -> FreshnessRecord:
        raw_data = row.get("product_data")
        return FreshnessRecord(
            key=row["key"],
            last_renewed_at=to_aware_utc(row["last_renewed_at"]),
            product_data=json.loads(raw_data) if raw_data else None,
        )

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        """Upsert rows keyed by product key. Caller holds the storage lock."""
        if not rows:
            return
        data = pa.Table.from_pylist(rows, schema=FRESHNESS_SCHEMA)
        try:
            (
                self.table.merge_insert("key")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(data)
            )
        except Exception as e:
            raise StorageError(f"Failed to write freshness records: {e}") from e

    def _is_stale(
        self,
        last_renewed_at: datetime | None,
        now: datetime,
        ttl: timedelta,
    ) -> bool:
        if is_never_renewed(last_renewed_at):
            return True
        assert last_renewed_at is not None
        return to_aware_utc(now) - to_aware_utc(last_renewed_at) >= ttl

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, key: ProductKey) -> FreshnessRecord | None:
        """Look up the record for one key.

        Args:
            key: Product key.

        Returns:
            The record, or None if the key is unknown.

        Raises:
            ValidationError: If the key is malformed.
            StorageError: If the table cannot be read.
        """
        key = validate_product_key(key)
        try:
            results = (
                self.table.search()
                .where(f"key = '{sanitize_string(key)}'")
                .limit(1)
                .to_list()
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to look up freshness record: {e}") from e

        if not results:
            return None
        return self._to_record(results[0])

    def is_stale(
        self,
        key: ProductKey,
        now: datetime | None = None,
        ttl: timedelta | None = None,
    ) -> bool:
        """Whether a key needs renewal.

        Unknown and never-renewed keys are stale for any ttl. Otherwise a key is
        stale once ``now - last_renewed_at >= ttl`` (the boundary is stale).
        """
        record = self.get(key)
        return self._is_stale(
            record.last_renewed_at if record else None,
            now if now is not None else self._clock(),
            ttl if ttl is not None else self.ttl,
        )

    def stale_keys(self, now: datetime | None = None) -> list[ProductKey]:
        """All known keys that are stale, in insertion order."""
        now = now or self._clock()
        return [
            row["key"]
            for row in self._rows()
            if self._is_stale(row["last_renewed_at"], now, self.ttl)
        ]

    def has_stale_data(self, now: datetime | None = None) -> bool:
        return bool(self.stale_keys(now))

    def count_stale(self, now: datetime | None = None) -> int:
        return len(self.stale_keys(now))

    def all_keys(self) -> list[ProductKey]:
        """Every known key, in the order the keys were first recorded."""
        return [row["key"] for row in self._rows()]

    def count(self) -> int:
        try:
            return int(self.table.count_rows())
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to count freshness records: {e}") from e

    # =========================================================================
    # Mutations
    # =========================================================================

    @with_storage_lock
    def mark_renewed(
        self,
        key: ProductKey,
        now: datetime | None = None,
        product_data: dict[str, Any] | None = None,
    ) -> FreshnessRecord:
        """Record a successful renewal (upsert).

        Args:
            key: Product key that was renewed.
            now: Renewal time (defaults to the store clock).
            product_data: Freshly fetched data to cache with the record. When
                None, previously cached data is kept.

        Returns:
            The updated record.
        """
        key = validate_product_key(key)
        now = now or self._clock()

        rows = self._rows()
        existing = next((row for row in rows if row["key"] == key), None)
        if existing is not None:
            row = dict(existing)
        else:
            row = {
                "key": key,
                "ordinal": self._next_ordinal(rows),
                "product_data": None,
            }
        row["last_renewed_at"] = to_naive_utc(now)
        if product_data is not None:
            row["product_data"] = json.dumps(product_data)

        self._write_rows([row])
        logger.debug(f"Marked {key} renewed at {now.isoformat()}")
        return self._to_record(row)

    @with_storage_lock
    def track(self, keys: Iterable[ProductKey]) -> int:
        """Register keys the store does not know yet as never renewed.

        Args:
            keys: Product keys to register. Known keys are left untouched.

        Returns:
            Number of newly registered keys.
        """
        keys = validate_product_keys(keys)
        rows = self._rows()
        known = {row["key"] for row in rows}
        ordinal = self._next_ordinal(rows)

        new_rows = []
        for key in keys:
            if key in known:
                continue
            new_rows.append({
                "key": key,
                "ordinal": ordinal,
                "last_renewed_at": to_naive_utc(NEVER_RENEWED),
                "product_data": None,
            })
            ordinal += 1

        self._write_rows(new_rows)
        if new_rows:
            logger.info(f"Tracking {len(new_rows)} new product keys")
        return len(new_rows)

    @with_storage_lock
    def reset_all(self) -> int:
        """Mark every record as never renewed so that all keys become stale.

        Cached product data is kept.

        Returns:
            Number of records reset.
        """
        rows = self._rows()
        never = to_naive_utc(NEVER_RENEWED)
        for row in rows:
            row["last_renewed_at"] = never
        self._write_rows(rows)
        logger.info(f"Reset renewal time of {len(rows)} products")
        return len(rows)

    @staticmethod
    def _next_ordinal(rows: list[dict[str, Any]]) -> int:
        return max((row["ordinal"] for row in rows), default=-1) + 1
