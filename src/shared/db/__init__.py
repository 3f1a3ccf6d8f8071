"""Database connection pool and schema initialization."""

from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import INDEX_TABLES, init_index_db

__all__ = [
    "ConnectionPool",
    "INDEX_TABLES",
    "init_index_db",
]
