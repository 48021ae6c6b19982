"""Persistent ordered key-value store on top of SQLite.

Three logical namespaces (``endpoints``, ``history``, ``settings``) live in a
single table. Keys are stored as BLOBs so SQLite orders them bytewise, which
makes prefix scans over ``"<endpoint-id>:<timestamp>"`` keys chronological.

Writes run inside ``BEGIN IMMEDIATE`` transactions (one writer at a time),
reads inside deferred transactions. A transaction either commits as a whole
or is rolled back.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from sitewatch.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent.parent / "data" / "sitewatch.db"

ENDPOINTS = "endpoints"
HISTORY = "history"
SETTINGS = "settings"
NAMESPACES = (ENDPOINTS, HISTORY, SETTINGS)


def _prefix_upper_bound(prefix: bytes) -> bytes | None:
    """Smallest key greater than every key starting with ``prefix``."""
    trimmed = prefix.rstrip(b"\xff")
    if not trimmed:
        return None
    return trimmed[:-1] + bytes([trimmed[-1] + 1])


class Transaction:
    """Operations bound to one open SQLite transaction."""

    def __init__(self, conn: sqlite3.Connection, write: bool) -> None:
        self._conn = conn
        self.write = write

    def _check(self, namespace: str, mutating: bool = False) -> None:
        if namespace not in NAMESPACES:
            raise StorageError(f"unknown namespace: {namespace}")
        if mutating and not self.write:
            raise StorageError("write attempted inside a read-only transaction")

    def put(self, namespace: str, key: str, data: bytes) -> None:
        self._check(namespace, mutating=True)
        self._conn.execute(
            "INSERT OR REPLACE INTO kv (namespace, key, value) VALUES (?, ?, ?)",
            (namespace, key.encode("utf-8"), data),
        )

    def get(self, namespace: str, key: str) -> bytes:
        self._check(namespace)
        row = self._conn.execute(
            "SELECT value FROM kv WHERE namespace = ? AND key = ?",
            (namespace, key.encode("utf-8")),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"{namespace}/{key}")
        return bytes(row[0])

    def exists(self, namespace: str, key: str) -> bool:
        self._check(namespace)
        row = self._conn.execute(
            "SELECT 1 FROM kv WHERE namespace = ? AND key = ?",
            (namespace, key.encode("utf-8")),
        ).fetchone()
        return row is not None

    def delete(self, namespace: str, key: str) -> bool:
        """Delete a key. Returns False if it did not exist."""
        self._check(namespace, mutating=True)
        cursor = self._conn.execute(
            "DELETE FROM kv WHERE namespace = ? AND key = ?",
            (namespace, key.encode("utf-8")),
        )
        return cursor.rowcount > 0

    def scan(self, namespace: str) -> list[tuple[str, bytes]]:
        """All entries of a namespace in key order."""
        self._check(namespace)
        rows = self._conn.execute(
            "SELECT key, value FROM kv WHERE namespace = ? ORDER BY key",
            (namespace,),
        ).fetchall()
        return [(bytes(k).decode("utf-8"), bytes(v)) for k, v in rows]

    def scan_prefix(self, namespace: str, prefix: str) -> list[tuple[str, bytes]]:
        """Entries whose key starts with ``prefix``, in key order."""
        self._check(namespace)
        low = prefix.encode("utf-8")
        high = _prefix_upper_bound(low)
        if high is None:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE namespace = ? AND key >= ? ORDER BY key",
                (namespace, low),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT key, value FROM kv "
                "WHERE namespace = ? AND key >= ? AND key < ? ORDER BY key",
                (namespace, low, high),
            ).fetchall()
        return [(bytes(k).decode("utf-8"), bytes(v)) for k, v in rows]

    def for_each(self, namespace: str, fn: Callable[[str, bytes], None]) -> None:
        for key, value in self.scan(namespace):
            fn(key, value)


class KVStore:
    """SQLite-backed ordered key-value store with namespaces."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path) if db_path else DB_PATH
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._active: Transaction | None = None
        self._init_db()

    @property
    def path(self) -> Path:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                # Autocommit mode: transactions are opened explicitly below.
                self._conn = sqlite3.connect(
                    str(self._db_path), check_same_thread=False, isolation_level=None,
                )
                self._conn.execute("PRAGMA journal_mode=WAL")
            except sqlite3.Error as e:
                self._conn = None
                raise StorageError(f"failed to open database {self._db_path}: {e}") from e
        return self._conn

    def _init_db(self) -> None:
        with self._lock:
            try:
                self._get_conn().execute("""
                    CREATE TABLE IF NOT EXISTS kv (
                        namespace TEXT NOT NULL,
                        key       BLOB NOT NULL,
                        value     BLOB NOT NULL,
                        PRIMARY KEY (namespace, key)
                    ) WITHOUT ROWID
                """)
            except sqlite3.Error as e:
                raise StorageError(f"failed to initialise schema: {e}") from e

    @contextmanager
    def transaction(self, write: bool = False) -> Iterator[Transaction]:
        """Open a read (shared) or write (exclusive) transaction.

        Nested calls on the same thread join the outer transaction; a write
        cannot be nested inside a read.
        """
        with self._lock:
            if self._active is not None:
                if write and not self._active.write:
                    raise StorageError("cannot upgrade a read transaction to write")
                yield self._active
                return

            conn = self._get_conn()
            try:
                conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            except sqlite3.Error as e:
                raise StorageError(f"failed to begin transaction: {e}") from e

            tx = Transaction(conn, write)
            self._active = tx
            try:
                yield tx
            except BaseException as exc:
                self._active = None
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error:
                    logger.exception("Rollback failed")
                if isinstance(exc, sqlite3.Error):
                    raise StorageError(str(exc)) from exc
                raise
            else:
                self._active = None
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as e:
                    conn.execute("ROLLBACK")
                    raise StorageError(f"commit failed: {e}") from e

    # -- single-operation helpers --------------------------------------------

    def put(self, namespace: str, key: str, data: bytes) -> None:
        with self.transaction(write=True) as tx:
            tx.put(namespace, key, data)

    def get(self, namespace: str, key: str) -> bytes:
        with self.transaction() as tx:
            return tx.get(namespace, key)

    def delete(self, namespace: str, key: str) -> bool:
        with self.transaction(write=True) as tx:
            return tx.delete(namespace, key)

    def scan(self, namespace: str) -> list[tuple[str, bytes]]:
        with self.transaction() as tx:
            return tx.scan(namespace)

    def scan_prefix(self, namespace: str, prefix: str) -> list[tuple[str, bytes]]:
        with self.transaction() as tx:
            return tx.scan_prefix(namespace, prefix)

    def for_each(self, namespace: str, fn: Callable[[str, bytes], None]) -> None:
        with self.transaction() as tx:
            tx.for_each(namespace, fn)

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
