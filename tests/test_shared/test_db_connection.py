"""Tests for the SQLite ConnectionPool."""
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from src.shared.db.connection import ConnectionPool


@pytest.fixture
def pool(tmp_path: Path):
    pool = ConnectionPool(tmp_path / "index" / "repo_index.db")
    yield pool
    pool.close()


class TestConnectionPool:
    @pytest.mark.parametrize(
        ("pragma", "expected"),
        [("journal_mode", "wal"), ("busy_timeout", 30000), ("foreign_keys", 1)],
    )
    def test_pragmas(self, pool: ConnectionPool, pragma: str, expected):
        assert pool.get().execute(f"PRAGMA {pragma}").fetchone()[0] == expected

    def test_row_factory(self, pool: ConnectionPool):
        row = pool.get().execute("SELECT 1 AS one").fetchone()
        assert row["one"] == 1

    def test_parent_directory_created(self, pool: ConnectionPool):
        assert pool.db_path.parent.is_dir()
        assert pool.db_path.name == "repo_index.db"

    def test_connection_reused_within_thread(self, pool: ConnectionPool):
        assert pool.get() is pool.get()

    def test_thread_local_isolation(self, pool: ConnectionPool):
        main_conn = pool.get()
        seen: list[sqlite3.Connection] = []

        worker = threading.Thread(target=lambda: seen.append(pool.get()))
        worker.start()
        worker.join()

        assert seen and seen[0] is not main_conn
        assert len(pool._connections) == 2

    def test_close_clears_connections(self, pool: ConnectionPool):
        pool.get()
        pool.close()
        assert pool._connections == []

    def test_foreign_key_enforcement(self, pool: ConnectionPool):
        conn = pool.get()
        conn.execute("CREATE TABLE projects (id INTEGER PRIMARY KEY)")
        conn.execute("CREATE TABLE assemblies (id INTEGER PRIMARY KEY, project_id INTEGER REFERENCES projects(id))")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO assemblies (project_id) VALUES (42)")


class TestOpenExistingOnly:
    """``create=False`` never creates a database file."""

    def test_missing_file_raises(self, tmp_path: Path):
        db_path = tmp_path / "missing" / "test.db"
        pool = ConnectionPool(db_path, create=False)
        with pytest.raises(sqlite3.OperationalError):
            pool.get()
        assert not db_path.parent.exists()
        pool.close()

    def test_opens_existing_file(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        creator = ConnectionPool(db_path)
        creator.get()
        creator.close()
        pool = ConnectionPool(db_path, create=False)
        assert pool.get().execute("SELECT 1").fetchone()[0] == 1
        pool.close()


class TestTransactions:
    def test_transaction_commits(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        pool.get().execute("CREATE TABLE t (v INTEGER)")
        with pool.transaction() as conn:
            conn.execute("INSERT INTO t VALUES (1)")
        assert pool.get().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1
        pool.close()

    def test_transaction_rolls_back(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        pool.get().execute("CREATE TABLE t (v INTEGER)")
        with pytest.raises(RuntimeError):
            with pool.transaction() as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                raise RuntimeError("abort")
        assert pool.get().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
        pool.close()

    def test_read_snapshot_isolated_from_writer(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        writer = ConnectionPool(db_path)
        writer.get().execute("CREATE TABLE t (v INTEGER)")
        writer.get().commit()
        reader = ConnectionPool(db_path, create=False)

        with reader.read_snapshot() as conn:
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
            with writer.transaction() as wconn:
                wconn.execute("INSERT INTO t VALUES (1)")
            assert conn.execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0

        assert reader.get().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1
        reader.close()
        writer.close()
