"""SQLite connection pool with thread-local storage and WAL mode."""
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from src.shared.constants import DB_BUSY_TIMEOUT_MS


class ConnectionPool:
    """Thread-local SQLite connection pool with WAL mode.

    Each thread gets its own connection. Connections are configured with:
    - WAL journal mode for concurrent read/write
    - busy_timeout=30000 (30 seconds)
    - foreign_keys=ON
    - Row factory for dict-like access

    With ``create=False`` the pool only opens an existing database file
    (``mode=rw``) and never creates one; a missing file surfaces as
    :class:`sqlite3.OperationalError` on the first :meth:`get`.
    """

    def __init__(
        self,
        db_path: str | Path,
        timeout: float = 30.0,
        create: bool = True,
    ) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._create = create
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []

        # Ensure parent directory exists
        if create:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

    def get(self) -> sqlite3.Connection:
        """Get a thread-local database connection.

        Returns the existing connection for the current thread,
        or creates a new one if none exists.
        """
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            return conn

        if self._create:
            conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        else:
            conn = sqlite3.connect(
                f"{self._db_path.resolve().as_uri()}?mode=rw",
                timeout=self._timeout,
                uri=True,
            )
        # Configure WAL mode and pragmas
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={DB_BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row

        self._local.connection = conn

        with self._lock:
            self._connections.append(conn)

        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so concurrent
        readers keep seeing the last committed snapshot until the block
        commits.  Any exception rolls the whole block back.
        """
        conn = self.get()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    @contextmanager
    def read_snapshot(self) -> Iterator[sqlite3.Connection]:
        """Run several reads against one consistent snapshot."""
        conn = self.get()
        conn.execute("BEGIN")
        try:
            yield conn
        finally:
            conn.rollback()

    def close(self) -> None:
        """Close all connections in the pool."""
        with self._lock:
            for conn in self._connections:
                try:
                    conn.close()
                except (sqlite3.Error, OSError):
                    pass
            self._connections.clear()
        # Clear thread-local
        self._local.connection = None

    @property
    def db_path(self) -> Path:
        """Return the database file path."""
        return self._db_path
