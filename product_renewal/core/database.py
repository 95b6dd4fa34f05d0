"""LanceDB connection and locking shared by the freshness store and renewal queue.

Every read-modify-write on a table runs under two locks:

1. A cross-process file lock (filelock) so that concurrent invocations of the
   command line (e.g. a cron sweep overlapping a manual run) never interleave.
2. A per-Database re-entrant thread lock so that threads sharing one Database
   never interleave either.

Locks are held per operation, never across a whole drain.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import timedelta
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar, cast

import lancedb
import pyarrow as pa
from filelock import FileLock
from filelock import Timeout as FileLockTimeout

from product_renewal.core.errors import FileLockError, StorageError

if TYPE_CHECKING:
    from lancedb.table import Table as LanceTable

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

LOCK_FILE_NAME = ".product-renewal.lock"


# ============================================================================
# Cross-Process Locking
# ============================================================================


class ProcessLockManager:
    """Re-entrant cross-process lock around the storage directory.

    The file lock keeps a cron sweep and a manual run from interleaving their
    read-modify-write cycles. Nesting depth is tracked per thread, so a locked
    operation may call another locked operation on the same Database.

    Example:
        lock = ProcessLockManager(Path("/tmp/renewal.lock"), timeout=30.0)
        with lock:
            with lock:  # same thread, no deadlock
                pass
    """

    def __init__(
        self,
        lock_path: Path,
        timeout: float = 30.0,
        poll_interval: float = 0.1,
        enabled: bool = True,
    ) -> None:
        """Initialize the lock.

        Args:
            lock_path: Lock file, created on first acquisition.
            timeout: Seconds to wait before raising FileLockError.
            poll_interval: Seconds between acquisition attempts.
            enabled: When False the lock is a no-op.
        """
        self.lock_path = lock_path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._held = threading.local()
        self._file_lock: FileLock | None = None
        if enabled:
            try:
                self._file_lock = FileLock(str(lock_path), timeout=timeout)
            except Exception as e:
                # e.g. read-only storage directory
                logger.warning(f"File lock unavailable at {lock_path} ({e}); running unlocked")

    @property
    def enabled(self) -> bool:
        return self._file_lock is not None

    @property
    def depth(self) -> int:
        """How many times the current thread holds the lock."""
        return getattr(self._held, "depth", 0)

    def __enter__(self) -> ProcessLockManager:
        if self._file_lock is not None and self.depth == 0:
            try:
                self._file_lock.acquire(
                    timeout=self.timeout, poll_interval=self.poll_interval
                )
            except FileLockTimeout:
                raise FileLockError(
                    lock_path=str(self.lock_path),
                    timeout=self.timeout,
                    message=(
                        f"Another product-renewal process held {self.lock_path.name} "
                        f"for more than {self.timeout}s"
                    ),
                ) from None
        self._held.depth = self.depth + 1
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        depth = self.depth
        if depth == 0:
            return
        self._held.depth = depth - 1
        if depth == 1 and self._file_lock is not None:
            self._file_lock.release()


def with_storage_lock(func: F) -> F:
    """Decorator serializing a store/queue operation across processes and threads.

    The decorated method's instance must expose the owning Database as
    ``self._database``. The process lock is taken first, then the thread lock;
    they are released in reverse order.
    """
    @wraps(func)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        with self._database.locked():
            return func(self, *args, **kwargs)
    return cast(F, wrapper)


# ============================================================================
# Database
# ============================================================================


class Database:
    """Thin LanceDB wrapper owning the connection and the write locks.

    Tables are opened on every access so that rows written by other processes
    are always visible.

    Example:
        db = Database(Path("./.product-renewal"))
        db.connect()
        table = db.open_table("freshness", FRESHNESS_SCHEMA)
        db.close()
    """

    def __init__(
        self,
        storage_path: Path,
        read_consistency_interval_ms: int = 0,
        filelock_enabled: bool = True,
        filelock_timeout: float = 30.0,
        filelock_poll_interval: float = 0.1,
    ) -> None:
        """Initialize the database wrapper.

        Args:
            storage_path: Directory holding the LanceDB tables.
            read_consistency_interval_ms: Interval for read consistency checks
                (0 = check for newer versions on every read).
            filelock_enabled: Serialize writes across processes.
            filelock_timeout: Seconds to wait for the process lock.
            filelock_poll_interval: Seconds between lock acquisition attempts.
        """
        self.storage_path = Path(storage_path)
        self.read_consistency_interval_ms = read_consistency_interval_ms
        self.filelock_enabled = filelock_enabled
        self.filelock_timeout = filelock_timeout
        self.filelock_poll_interval = filelock_poll_interval

        self._db: lancedb.DBConnection | None = None
        self._process_lock: ProcessLockManager | None = None
        self._write_lock = threading.RLock()
        self._known_tables: set[str] = set()

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    def connect(self) -> None:
        """Connect to the LanceDB storage directory.

        Raises:
            StorageError: If the directory cannot be created or opened.
        """
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)

            if self.filelock_enabled:
                self._process_lock = ProcessLockManager(
                    lock_path=self.storage_path / LOCK_FILE_NAME,
                    timeout=self.filelock_timeout,
                    poll_interval=self.filelock_poll_interval,
                )
            else:
                self._process_lock = None

            self._db = lancedb.connect(
                str(self.storage_path),
                read_consistency_interval=timedelta(
                    milliseconds=self.read_consistency_interval_ms
                ),
            )
            logger.info(f"Connected to LanceDB at {self.storage_path}")
        except Exception as e:
            raise StorageError(f"Failed to connect to database: {e}") from e

    def close(self) -> None:
        """Drop the connection. Tables written so far stay on disk."""
        self._db = None
        self._known_tables.clear()

    def __enter__(self) -> Database:
        if not self.is_connected:
            self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the process lock and the thread lock for one operation."""
        if self._process_lock is None:
            with self._write_lock:
                yield
            return
        with self._process_lock:
            with self._write_lock:
                yield

    def _list_tables(self) -> list[str]:
        assert self._db is not None
        result = self._db.list_tables()
        if hasattr(result, "tables"):
            return list(result.tables)
        return list(result)

    def open_table(self, name: str, schema: pa.Schema) -> LanceTable:
        """Open a table, creating it with ``schema`` on first use.

        Args:
            name: Table name.
            schema: Arrow schema used when the table does not exist yet.

        Returns:
            The opened LanceDB table.

        Raises:
            StorageError: If the database is not connected or the table cannot be opened.
        """
        if self._db is None:
            raise StorageError("Database not connected")

        try:
            if name not in self._known_tables:
                if name not in self._list_tables():
                    self._db.create_table(name, schema=schema, exist_ok=True)
                    logger.info(f"Created {name} table")
                self._known_tables.add(name)
            return self._db.open_table(name)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to open table {name}: {e}") from e
