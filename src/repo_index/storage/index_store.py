"""SQLite-backed write side of the repository index.

The store owns the lifecycle of the index file and every mutation of it.
Each public mutator runs in its own transaction; :meth:`IndexStore.replace_project`
runs a whole delete-then-insert of one project subtree as a single
transaction, so readers on other connections see either the old subtree or
the new one and never the gap in between.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from src.shared.db.connection import ConnectionPool
from src.shared.db.schema import init_index_db
from src.shared.errors import IndexUnavailableError, StoreCorruptedError
from src.shared.models.index import (
    AssemblyRecord,
    ConfigEntry,
    ProjectRecord,
    ProjectSnapshot,
    TypeRecord,
)
from src.shared.utils import now_iso

logger = logging.getLogger(__name__)

# Child-to-parent delete sequence for one project, keyed by ``:name``.
_PROJECT_TYPES = """
    SELECT t.id FROM types t
    JOIN namespaces n ON t.namespace_id = n.id
    JOIN assemblies a ON n.assembly_id = a.id
    JOIN projects p ON a.project_id = p.id WHERE p.name = :name
"""
_PROJECT_ASSEMBLIES = """
    SELECT a.id FROM assemblies a
    JOIN projects p ON a.project_id = p.id WHERE p.name = :name
"""
_CASCADE_DELETES: tuple[str, ...] = (
    f"DELETE FROM endpoints WHERE type_id IN ({_PROJECT_TYPES})",
    f"DELETE FROM method_parameters WHERE method_id IN ("
    f"SELECT m.id FROM methods m WHERE m.type_id IN ({_PROJECT_TYPES}))",
    f"DELETE FROM methods WHERE type_id IN ({_PROJECT_TYPES})",
    f"DELETE FROM type_injected_deps WHERE type_id IN ({_PROJECT_TYPES})",
    f"DELETE FROM type_interfaces WHERE type_id IN ({_PROJECT_TYPES})",
    f"DELETE FROM types WHERE namespace_id IN ("
    f"SELECT n.id FROM namespaces n WHERE n.assembly_id IN ({_PROJECT_ASSEMBLIES}))",
    f"DELETE FROM namespaces WHERE assembly_id IN ({_PROJECT_ASSEMBLIES})",
    f"DELETE FROM package_references WHERE assembly_id IN ({_PROJECT_ASSEMBLIES})",
    f"DELETE FROM project_references WHERE assembly_id IN ({_PROJECT_ASSEMBLIES})",
    "DELETE FROM assemblies WHERE project_id IN (SELECT id FROM projects WHERE name = :name)",
    "DELETE FROM config_keys WHERE project_name = :name",
    "DELETE FROM projects WHERE name = :name",
)


class IndexStore:
    """Transactional writer for the repository index.

    Use :meth:`create` on a first scan and :meth:`open_existing` afterwards.
    ``create`` is the only path that ever removes a file; ``open_existing``
    never falls back to a fresh store.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, db_path: str | Path) -> IndexStore:
        """Create a fresh, empty index at *db_path*.

        Any stale file at that location (and its ``-wal``/``-shm``
        companions) is removed first.
        """
        path = Path(db_path)
        for stale in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
            if stale.exists():
                logger.info("Removing stale index file: %s", stale)
                stale.unlink()
        pool = ConnectionPool(path)
        init_index_db(pool)
        logger.info("Created index database: %s", path)
        return cls(pool)

    @classmethod
    def open_existing(cls, db_path: str | Path) -> IndexStore:
        """Open an index written by an earlier scan.

        Raises:
            IndexUnavailableError: *db_path* does not exist.
            StoreCorruptedError: the file exists but is not a readable index.
        """
        path = Path(db_path)
        if not path.exists():
            raise IndexUnavailableError()
        pool = ConnectionPool(path, create=False)
        try:
            pool.get().execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
            # Brings indexes written by older releases up to date.
            init_index_db(pool)
        except sqlite3.DatabaseError as exc:
            pool.close()
            raise StoreCorruptedError(
                f"Index database at {path} is unreadable: {exc}"
            ) from exc
        return cls(pool)

    @classmethod
    def open_or_create(cls, db_path: str | Path) -> IndexStore:
        """Open *db_path* if it exists, otherwise create it."""
        if Path(db_path).exists():
            return cls.open_existing(db_path)
        return cls.create(db_path)

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def db_path(self) -> Path:
        return self._pool.db_path

    def close(self) -> None:
        self._pool.close()

    # ------------------------------------------------------------------
    # Projects and assemblies
    # ------------------------------------------------------------------

    def upsert_project(self, project: ProjectRecord) -> int:
        """Insert or update a project row and return its id."""
        with self._pool.transaction() as conn:
            return self._upsert_project(conn, project)

    def upsert_assembly(self, project_id: int, assembly: AssemblyRecord) -> int:
        """Insert an assembly with its package and project references."""
        with self._pool.transaction() as conn:
            return self._insert_assembly(conn, project_id, assembly)

    def insert_entities(self, assembly_id: int, types: list[TypeRecord]) -> int:
        """Insert types with their methods, endpoints and name-keyed edges.

        Returns the number of type rows written.
        """
        with self._pool.transaction() as conn:
            return self._insert_types(conn, assembly_id, types)

    def insert_config_entries(self, project_name: str, entries: list[ConfigEntry]) -> None:
        with self._pool.transaction() as conn:
            self._insert_config_entries(conn, project_name, entries)

    def delete_project(self, name: str) -> bool:
        """Remove a project and its whole subtree atomically.

        Returns ``True`` when a project row existed.
        """
        with self._pool.transaction() as conn:
            existed = self._delete_project(conn, name)
        if existed:
            logger.debug("Deleted project %s", name)
        return existed

    def replace_project(self, snapshot: ProjectSnapshot) -> int:
        """Swap in a freshly scanned project in one transaction.

        The previous subtree (if any) is deleted, the new subtree and its
        config keys are inserted and the fingerprint is upserted.  Types are
        assigned to the assembly whose descriptor directory is the longest
        prefix of the type's file path; types outside every assembly are
        not persisted.

        Returns:
            Number of type rows written.
        """
        written = 0
        with self._pool.transaction() as conn:
            self._delete_project(conn, snapshot.name)
            project_id = self._upsert_project(conn, snapshot.project)
            grouped = assign_types_to_assemblies(snapshot.assemblies, snapshot.types)
            for index, assembly in enumerate(snapshot.assemblies):
                assembly_id = self._insert_assembly(conn, project_id, assembly)
                written += self._insert_types(conn, assembly_id, grouped.get(index, []))
            self._insert_config_entries(conn, snapshot.name, snapshot.config_entries)
            self._upsert_fingerprint(conn, snapshot.name, snapshot.fingerprint)
        logger.debug(
            "Replaced project %s: %d assemblies, %d types",
            snapshot.name, len(snapshot.assemblies), written,
        )
        return written

    def project_names(self) -> list[str]:
        conn = self._pool.get()
        rows = conn.execute("SELECT name FROM projects ORDER BY name").fetchall()
        return [row["name"] for row in rows]

    def assembly_names(self, exclude_projects: set[str] | None = None) -> set[str]:
        """Return every persisted assembly name, optionally skipping projects."""
        exclude = exclude_projects or set()
        conn = self._pool.get()
        rows = conn.execute(
            """
            SELECT p.name AS project_name, a.assembly_name
            FROM assemblies a JOIN projects p ON a.project_id = p.id
            """
        ).fetchall()
        return {
            row["assembly_name"] for row in rows
            if row["project_name"] not in exclude
        }

    # ------------------------------------------------------------------
    # Internal package resolution
    # ------------------------------------------------------------------

    def resolve_internal_packages(self) -> int:
        """Flag package references that name a known assembly.

        Matching is case-insensitive and corpus-wide.  References whose
        name no longer matches any assembly are reset to external, so the
        result does not depend on the order projects were scanned in.

        Returns:
            Number of references flagged internal after the pass.
        """
        with self._pool.transaction() as conn:
            conn.execute(
                """
                UPDATE package_references
                SET is_internal = CASE
                    WHEN lower(package_name) IN (
                        SELECT lower(assembly_name) FROM assemblies
                    ) THEN 1 ELSE 0 END
                """
            )
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM package_references WHERE is_internal = 1"
            ).fetchone()
        count = int(row["n"])
        logger.debug("Resolved %d internal package references", count)
        return count

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    def read_fingerprints(self) -> dict[str, str]:
        """Return ``{project_name: file_hash}`` from the last scans."""
        conn = self._pool.get()
        rows = conn.execute(
            "SELECT project_name, file_hash FROM scan_metadata"
        ).fetchall()
        return {row["project_name"]: row["file_hash"] for row in rows}

    def upsert_fingerprint(self, project_name: str, file_hash: str) -> None:
        with self._pool.transaction() as conn:
            self._upsert_fingerprint(conn, project_name, file_hash)

    def clear_fingerprint(self, project_name: str) -> bool:
        """Forget a project's fingerprint so the next incremental scan rescans it."""
        with self._pool.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM scan_metadata WHERE project_name = ?", (project_name,)
            )
        return cursor.rowcount > 0

    def delete_fingerprint_rows(self, project_names: list[str]) -> None:
        with self._pool.transaction() as conn:
            conn.executemany(
                "DELETE FROM scan_metadata WHERE project_name = ?",
                [(name,) for name in project_names],
            )

    # ------------------------------------------------------------------
    # Row writers (caller owns the transaction)
    # ------------------------------------------------------------------

    @staticmethod
    def _upsert_project(conn: sqlite3.Connection, project: ProjectRecord) -> int:
        conn.execute(
            """
            INSERT INTO projects
                (name, directory_path, solution_file, git_remote_url, default_branch)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                directory_path = excluded.directory_path,
                solution_file = excluded.solution_file,
                git_remote_url = excluded.git_remote_url,
                default_branch = excluded.default_branch
            """,
            (
                project.name,
                project.directory_path,
                project.solution_file,
                project.remote_url,
                project.default_branch,
            ),
        )
        row = conn.execute(
            "SELECT id FROM projects WHERE name = ?", (project.name,)
        ).fetchone()
        return int(row["id"])

    @staticmethod
    def _insert_assembly(
        conn: sqlite3.Connection, project_id: int, assembly: AssemblyRecord
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO assemblies
                (project_id, csproj_path, assembly_name, target_framework,
                 output_type, is_test)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                project_id,
                assembly.csproj_path,
                assembly.assembly_name,
                assembly.target_framework,
                assembly.output_type,
                int(assembly.is_test),
            ),
        )
        assembly_id = int(cursor.lastrowid)
        conn.executemany(
            """
            INSERT INTO package_references
                (assembly_id, package_name, version, is_internal)
            VALUES (?, ?, ?, ?)
            """,
            [
                (assembly_id, ref.name, ref.version, int(ref.is_internal))
                for ref in assembly.package_references
            ],
        )
        conn.executemany(
            "INSERT INTO project_references (assembly_id, referenced_path) VALUES (?, ?)",
            [(assembly_id, path) for path in assembly.project_references],
        )
        return assembly_id

    @staticmethod
    def _namespace_id(conn: sqlite3.Connection, assembly_id: int, name: str) -> int:
        # Re-inserting an existing (assembly, namespace) pair is a no-op.
        conn.execute(
            "INSERT OR IGNORE INTO namespaces (assembly_id, namespace_name) VALUES (?, ?)",
            (assembly_id, name),
        )
        row = conn.execute(
            "SELECT id FROM namespaces WHERE assembly_id = ? AND namespace_name = ?",
            (assembly_id, name),
        ).fetchone()
        return int(row["id"])

    @classmethod
    def _insert_types(
        cls, conn: sqlite3.Connection, assembly_id: int, types: list[TypeRecord]
    ) -> int:
        namespace_ids: dict[str, int] = {}
        for record in types:
            ns_id = namespace_ids.get(record.namespace)
            if ns_id is None:
                ns_id = cls._namespace_id(conn, assembly_id, record.namespace)
                namespace_ids[record.namespace] = ns_id

            cursor = conn.execute(
                """
                INSERT INTO types
                    (namespace_id, type_name, kind, is_public, file_path,
                     base_type, summary_comment)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ns_id,
                    record.name,
                    record.kind.value,
                    int(record.is_public),
                    record.file_path,
                    record.base_type,
                    record.summary,
                ),
            )
            type_id = int(cursor.lastrowid)

            conn.executemany(
                "INSERT OR IGNORE INTO type_interfaces (type_id, interface_name) VALUES (?, ?)",
                [(type_id, name) for name in record.interfaces],
            )
            conn.executemany(
                "INSERT OR IGNORE INTO type_injected_deps (type_id, dependency_type) VALUES (?, ?)",
                [(type_id, name) for name in record.injected_dependencies],
            )

            for method in record.methods:
                method_cursor = conn.execute(
                    """
                    INSERT INTO methods
                        (type_id, method_name, return_type, is_public, is_static)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        type_id,
                        method.name,
                        method.return_type,
                        int(method.is_public),
                        int(method.is_static),
                    ),
                )
                method_id = int(method_cursor.lastrowid)
                conn.executemany(
                    """
                    INSERT INTO method_parameters
                        (method_id, param_name, param_type, position)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (method_id, p.name, p.type_name, p.position)
                        for p in method.parameters
                    ],
                )
                conn.executemany(
                    """
                    INSERT INTO endpoints
                        (type_id, method_id, http_method, route_template, endpoint_kind)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (type_id, method_id, e.verb, e.route, e.kind.value)
                        for e in method.endpoints
                    ],
                )
        return len(types)

    @staticmethod
    def _insert_config_entries(
        conn: sqlite3.Connection, project_name: str, entries: list[ConfigEntry]
    ) -> None:
        conn.executemany(
            """
            INSERT INTO config_keys
                (project_name, source, key_name, default_value, file_path)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                (project_name, e.source.value, e.key_name, e.default_value, e.file_path)
                for e in entries
            ],
        )

    @staticmethod
    def _delete_project(conn: sqlite3.Connection, name: str) -> bool:
        existed = conn.execute(
            "SELECT 1 FROM projects WHERE name = ?", (name,)
        ).fetchone() is not None
        for statement in _CASCADE_DELETES:
            conn.execute(statement, {"name": name})
        return existed

    @staticmethod
    def _upsert_fingerprint(conn: sqlite3.Connection, project_name: str, file_hash: str) -> None:
        conn.execute(
            """
            INSERT INTO scan_metadata (project_name, file_hash, last_scan_utc)
            VALUES (?, ?, ?)
            ON CONFLICT(project_name) DO UPDATE SET
                file_hash = excluded.file_hash,
                last_scan_utc = excluded.last_scan_utc
            """,
            (project_name, file_hash, now_iso()),
        )


def assign_types_to_assemblies(
    assemblies: list[AssemblyRecord], types: list[TypeRecord]
) -> dict[int, list[TypeRecord]]:
    """Group types by the index of their owning assembly.

    The owner is the assembly whose descriptor directory is the longest
    case-insensitive prefix of the type's file path.
    """
    directories = [
        (index, assembly.directory.casefold())
        for index, assembly in enumerate(assemblies)
    ]
    grouped: dict[int, list[TypeRecord]] = {}
    for record in types:
        path = (record.file_path or "").replace("\\", "/").casefold()
        best: tuple[int, int] | None = None
        for index, directory in directories:
            if directory and not (path == directory or path.startswith(directory + "/")):
                continue
            if best is None or len(directory) > best[1]:
                best = (index, len(directory))
        if best is not None:
            grouped.setdefault(best[0], []).append(record)
    return grouped
