"""
SQLite database backing the registry.

One database file holds every table the registry needs:
- id_counters: last issued identity per entity class
- records: one row per (entity, record_id)
- relations: one row per (relation, parent_id, member_key)
- applied_calls: receipts of ledger calls, for idempotency

Invariants:
    - A single connection is shared and guarded by one re-entrant lock
    - Every write happens inside transaction(); nested calls join the outer one
    - Any exception inside transaction() rolls back every write it made

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Bump SCHEMA_VERSION when a migration is introduced

Table schema:
    id_counters:
        - entity TEXT PRIMARY KEY
        - last_id INTEGER

    records:
        - entity TEXT
        - record_id INTEGER
        - payload_json TEXT
        - PRIMARY KEY (entity, record_id)

    relations:
        - relation TEXT
        - parent_id INTEGER
        - member_key (no affinity: integers stay integers, text stays text)
        - payload_json TEXT
        - PRIMARY KEY (relation, parent_id, member_key)

    applied_calls:
        - idempotency_key TEXT PRIMARY KEY
        - caller TEXT
        - operation TEXT
        - stream_pos TEXT
        - height INTEGER
        - outcome_json TEXT
        - applied_at INTEGER (Unix ms)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..config import StorageConfig

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class RegistryDatabase:
    """Shared SQLite connection with a single-writer serialization boundary.

    Thread safety:
        All access goes through an RLock, so calls from the applier task and
        from HTTP read handlers never interleave inside one transaction.

    Example:
        >>> db = RegistryDatabase(":memory:")
        >>> with db.transaction() as conn:
        ...     conn.execute("SELECT 1")
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str | Path = MEMORY_DB,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Open (and create if needed) the registry database.

        Args:
            path: Database file path, or ":memory:"
            wal_mode: Enable SQLite WAL journal mode (ignored in memory)
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = str(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = self._connect()
        self._create_schema()

    @classmethod
    def from_config(cls, storage: StorageConfig) -> RegistryDatabase:
        """Open the database described by a StorageConfig."""
        if storage.db_name == MEMORY_DB:
            path: str | Path = MEMORY_DB
        else:
            path = Path(storage.data_dir) / storage.db_name
        return cls(path, wal_mode=storage.wal_mode, busy_timeout_ms=storage.busy_timeout_ms)

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY_DB

    def _connect(self) -> sqlite3.Connection:
        if not self.in_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            self.path,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
        if self.wal_mode and not self.in_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def _create_schema(self) -> None:
        with self._lock:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS id_counters (
                    entity TEXT PRIMARY KEY,
                    last_id INTEGER NOT NULL
                );

                CREATE TABLE IF NOT EXISTS records (
                    entity TEXT NOT NULL,
                    record_id INTEGER NOT NULL,
                    payload_json TEXT NOT NULL,
                    PRIMARY KEY (entity, record_id)
                );

                CREATE TABLE IF NOT EXISTS relations (
                    relation TEXT NOT NULL,
                    parent_id INTEGER NOT NULL,
                    member_key NOT NULL,
                    payload_json TEXT NOT NULL,
                    PRIMARY KEY (relation, parent_id, member_key)
                );

                CREATE TABLE IF NOT EXISTS applied_calls (
                    idempotency_key TEXT PRIMARY KEY,
                    caller TEXT,
                    operation TEXT,
                    stream_pos TEXT,
                    height INTEGER,
                    outcome_json TEXT NOT NULL,
                    applied_at INTEGER NOT NULL
                );

                INSERT OR IGNORE INTO schema_version (version, applied_at)
                VALUES (1, strftime('%s', 'now') * 1000);
            """)
        logger.info("Registry database ready", extra={"path": self.path})

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one atomic write transaction.

        Nested use joins the outermost transaction, so an operation can be
        composed into a larger unit (the applier records a receipt in the same
        transaction as the call it applied).

        Yields:
            The shared SQLite connection
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self._conn
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        """Borrow the connection for reads."""
        with self._lock:
            yield self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Registry database closed", extra={"path": self.path})
