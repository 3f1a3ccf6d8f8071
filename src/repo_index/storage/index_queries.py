"""Read side of the repository index.

Every query goes through :meth:`IndexQueries.fetch_all`, which enforces the
two read-path failure modes uniformly: a missing index file raises
:class:`IndexUnavailableError` and an unreadable one raises
:class:`StoreCorruptedError`.  The connection is opened lazily so the
object can be constructed before the first scan has run.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from src.shared.db.connection import ConnectionPool
from src.shared.errors import IndexUnavailableError, StoreCorruptedError
from src.shared.models.analysis import TypeLocation

logger = logging.getLogger(__name__)

# Tables reported by get_index_info, in display order.
INFO_TABLES: tuple[str, ...] = (
    "projects",
    "assemblies",
    "types",
    "methods",
    "endpoints",
    "config_keys",
)


class IndexQueries:
    """Parametrised read queries over the ``type_with_project`` view.

    Args:
        db_path: Location of the index file.  It does not need to exist
            yet; each call checks for it.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._pool: ConnectionPool | None = None
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.close()
                self._pool = None

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _connection(self) -> sqlite3.Connection:
        if not self._db_path.exists():
            logger.warning("Index database not found at %s", self._db_path)
            raise IndexUnavailableError()
        with self._lock:
            if self._pool is None:
                self._pool = ConnectionPool(self._db_path, create=False)
            pool = self._pool
        try:
            return pool.get()
        except sqlite3.DatabaseError as exc:
            raise StoreCorruptedError(
                f"Index database at {self._db_path} is unreadable: {exc}"
            ) from exc

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        """Group several reads so they observe one committed state.

        Nested use is allowed; only the outermost block opens the read
        transaction.
        """
        if getattr(self._local, "depth", 0):
            self._local.depth += 1
            try:
                yield
            finally:
                self._local.depth -= 1
            return

        conn = self._connection()
        try:
            conn.execute("BEGIN")
        except sqlite3.DatabaseError as exc:
            raise StoreCorruptedError(
                f"Index database at {self._db_path} is unreadable: {exc}"
            ) from exc
        self._local.depth = 1
        try:
            yield
        finally:
            self._local.depth = 0
            conn.rollback()

    def fetch_all(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> list[sqlite3.Row]:
        """Execute a read query and return all rows."""
        conn = self._connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.DatabaseError as exc:
            raise StoreCorruptedError(
                f"Index query failed on {self._db_path}: {exc}"
            ) from exc

    def fetch_value(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> Any:
        """Execute a read query and return the first column of the first row."""
        rows = self.fetch_all(sql, params)
        return rows[0][0] if rows else None

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def resolve_project_name(self, name: str) -> str | None:
        """Resolve *name* by exact match, then by contains-match.

        The first contains-match in name order wins, so ``caching``
        resolves to ``acme.caching``.
        """
        exact = self.fetch_value("SELECT name FROM projects WHERE name = ?", (name,))
        if exact is not None:
            return exact
        return self.fetch_value(
            "SELECT name FROM projects WHERE name LIKE ? ORDER BY name LIMIT 1",
            (f"%{name}%",),
        )

    def list_projects(self) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT p.name, p.git_remote_url,
                   COUNT(DISTINCT a.id) AS assembly_count,
                   COUNT(DISTINCT t.id) AS type_count
            FROM projects p
            LEFT JOIN assemblies a ON a.project_id = p.id AND a.is_test = 0
            LEFT JOIN namespaces n ON n.assembly_id = a.id
            LEFT JOIN types t ON t.namespace_id = n.id
            GROUP BY p.id
            ORDER BY p.name
            """
        )

    def project_row(self, name: str) -> sqlite3.Row | None:
        rows = self.fetch_all(
            "SELECT directory_path, solution_file, git_remote_url FROM projects WHERE name = ?",
            (name,),
        )
        return rows[0] if rows else None

    def project_assemblies(self, name: str) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT a.assembly_name, a.target_framework, a.is_test
            FROM assemblies a JOIN projects p ON a.project_id = p.id
            WHERE p.name = ? ORDER BY a.is_test, a.assembly_name
            """,
            (name,),
        )

    def project_packages(
        self, name: str, internal: bool, limit: int | None = None
    ) -> list[sqlite3.Row]:
        sql = """
            SELECT DISTINCT pr.package_name, pr.version
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            WHERE p.name = ? AND pr.is_internal = ?
            ORDER BY pr.package_name
        """
        params: list[Any] = [name, int(internal)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return self.fetch_all(sql, params)

    def project_namespaces(self, name: str) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT n.namespace_name, COUNT(t.id) AS type_count
            FROM namespaces n
            JOIN assemblies a ON n.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            LEFT JOIN types t ON t.namespace_id = n.id
            WHERE p.name = ?
            GROUP BY n.id
            ORDER BY n.namespace_name
            """,
            (name,),
        )

    def project_key_types(self, name: str, limit: int) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT type_name, kind, namespace_name
            FROM type_with_project
            WHERE project_name = ? AND is_public = 1
            ORDER BY kind, type_name
            LIMIT ?
            """,
            (name, limit),
        )

    def downstream_projects(self, name: str) -> list[str]:
        """Projects holding an internal package named after one of *name*'s assemblies."""
        rows = self.fetch_all(
            """
            SELECT DISTINCT p2.name
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            JOIN projects p2 ON a.project_id = p2.id
            WHERE pr.is_internal = 1
              AND lower(pr.package_name) IN (
                  SELECT lower(a2.assembly_name) FROM assemblies a2
                  JOIN projects p3 ON a2.project_id = p3.id
                  WHERE p3.name = :name
              )
              AND p2.name != :name
            ORDER BY p2.name
            """,
            {"name": name},
        )
        return [row["name"] for row in rows]

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def search_types(
        self,
        pattern: str,
        namespace: str | None,
        kind: str | None,
        project: str | None,
        limit: int,
    ) -> list[sqlite3.Row]:
        where = ["type_name LIKE ?"]
        params: list[Any] = [pattern]
        if namespace:
            where.append("namespace_name LIKE ?")
            params.append(namespace)
        if kind:
            where.append("kind = ?")
            params.append(kind.lower())
        if project:
            where.append("project_name LIKE ?")
            params.append(f"%{project}%")
        params.append(limit)
        return self.fetch_all(
            f"""
            SELECT type_name, kind, namespace_name, project_name, file_path
            FROM type_with_project
            WHERE {" AND ".join(where)}
            ORDER BY project_name, namespace_name, type_name
            LIMIT ?
            """,
            params,
        )

    def find_implementors(self, pattern: str, limit: int) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT v.type_name, v.kind, v.namespace_name, v.project_name,
                   v.file_path, ti.interface_name
            FROM type_with_project v
            JOIN type_interfaces ti ON ti.type_id = v.id
            WHERE ti.interface_name LIKE ?
            ORDER BY v.project_name, v.type_name
            LIMIT ?
            """,
            (pattern, limit),
        )

    def type_details(self, name: str, limit: int) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT id, type_name, kind, is_public, file_path, base_type,
                   summary_comment, namespace_name, project_name
            FROM type_with_project
            WHERE type_name = ?
            LIMIT ?
            """,
            (name, limit),
        )

    def type_interfaces(self, type_id: int) -> list[str]:
        rows = self.fetch_all(
            "SELECT interface_name FROM type_interfaces WHERE type_id = ?", (type_id,)
        )
        return [row["interface_name"] for row in rows]

    def type_injected_dependencies(self, type_id: int) -> list[str]:
        rows = self.fetch_all(
            "SELECT dependency_type FROM type_injected_deps WHERE type_id = ?", (type_id,)
        )
        return [row["dependency_type"] for row in rows]

    def search_injections(self, pattern: str, limit: int) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT v.type_name, v.namespace_name, v.project_name, v.file_path,
                   tid.dependency_type
            FROM type_injected_deps tid
            JOIN type_with_project v ON tid.type_id = v.id
            WHERE tid.dependency_type LIKE ?
            ORDER BY v.project_name, v.type_name
            LIMIT ?
            """,
            (pattern, limit),
        )

    def untested_types(self, project: str | None, limit: int) -> list[sqlite3.Row]:
        """Public production classes/records with no ``Tests``/``Test``/``Spec`` twin."""
        where = ["t.is_public = 1", "t.kind IN ('class', 'record')", "a.is_test = 0"]
        params: list[Any] = []
        if project:
            where.append("p.name LIKE ?")
            params.append(f"%{project}%")
        params.append(limit)
        return self.fetch_all(
            f"""
            SELECT t.type_name, n.namespace_name, p.name AS project_name, t.file_path
            FROM types t
            JOIN namespaces n ON t.namespace_id = n.id
            JOIN assemblies a ON n.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            WHERE {" AND ".join(where)}
            AND NOT EXISTS (
                SELECT 1 FROM types tt
                JOIN namespaces tn ON tt.namespace_id = tn.id
                JOIN assemblies ta ON tn.assembly_id = ta.id
                WHERE ta.is_test = 1
                AND (tt.type_name = t.type_name || 'Tests'
                  OR tt.type_name = t.type_name || 'Test'
                  OR tt.type_name = t.type_name || 'Spec')
            )
            AND t.type_name NOT LIKE '%Exception'
            AND t.type_name NOT LIKE '%Attribute'
            AND t.type_name NOT LIKE '%Extensions'
            AND t.type_name NOT LIKE '%Options'
            AND t.type_name NOT LIKE '%Constants'
            AND t.type_name NOT LIKE '%Dto'
            ORDER BY p.name, t.type_name
            LIMIT ?
            """,
            params,
        )

    # ------------------------------------------------------------------
    # Graph neighbourhoods (exact, name-keyed)
    # ------------------------------------------------------------------

    def _locations(self, sql: str, name: str) -> list[TypeLocation]:
        return [
            TypeLocation(type_name=row[0], project_name=row[1])
            for row in self.fetch_all(sql, (name,))
        ]

    def implementors_of(self, name: str) -> list[TypeLocation]:
        """Types that list *name* among their implemented interfaces."""
        return self._locations(
            """
            SELECT DISTINCT v.type_name, v.project_name FROM type_with_project v
            JOIN type_interfaces ti ON ti.type_id = v.id
            WHERE ti.interface_name = ?
            """,
            name,
        )

    def injectors_of(self, name: str) -> list[TypeLocation]:
        """Types that take *name* as a constructor dependency."""
        return self._locations(
            """
            SELECT DISTINCT v.type_name, v.project_name FROM type_with_project v
            JOIN type_injected_deps tid ON tid.type_id = v.id
            WHERE tid.dependency_type = ?
            """,
            name,
        )

    def inheritors_of(self, name: str) -> list[TypeLocation]:
        """Types whose base type is exactly *name*."""
        return self._locations(
            """
            SELECT DISTINCT type_name, project_name FROM type_with_project
            WHERE base_type = ?
            """,
            name,
        )

    def public_type_homes(self, name: str) -> list[str]:
        """Projects declaring a public type named exactly *name*."""
        rows = self.fetch_all(
            """
            SELECT project_name FROM type_with_project
            WHERE type_name = ? AND is_public = 1
            """,
            (name,),
        )
        return [row["project_name"] for row in rows]

    def internal_dependency_edges(self) -> list[tuple[str, str]]:
        """Return ``(provider, dependent)`` project pairs.

        ``dependent`` holds an internal package named (case-insensitively)
        after one of ``provider``'s non-test assemblies.
        """
        rows = self.fetch_all(
            """
            SELECT DISTINCT p.name AS provider, p2.name AS dependent
            FROM package_references pr
            JOIN assemblies a2 ON pr.assembly_id = a2.id
            JOIN projects p2 ON a2.project_id = p2.id
            JOIN assemblies a
                ON lower(a.assembly_name) = lower(pr.package_name) AND a.is_test = 0
            JOIN projects p ON a.project_id = p.id
            WHERE pr.is_internal = 1 AND p2.id != p.id
            ORDER BY p.name, p2.name
            """
        )
        return [(row["provider"], row["dependent"]) for row in rows]

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def package_versions(self, pattern: str) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT p.name AS project_name, pr.package_name, pr.version
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            WHERE pr.package_name LIKE ?
            ORDER BY pr.package_name, p.name
            """,
            (pattern,),
        )

    def external_production_packages(self) -> list[sqlite3.Row]:
        """Versioned external packages referenced from production assemblies."""
        return self.fetch_all(
            """
            SELECT pr.package_name, pr.version, p.name AS project_name
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            WHERE pr.is_internal = 0 AND a.is_test = 0 AND pr.version IS NOT NULL
            ORDER BY pr.package_name, pr.version, p.name
            """
        )

    # ------------------------------------------------------------------
    # Methods, endpoints and configuration
    # ------------------------------------------------------------------

    def search_endpoints(self, pattern: str, limit: int) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT e.http_method, e.route_template, e.endpoint_kind,
                   m.method_name, v.type_name, v.namespace_name, v.project_name,
                   v.file_path
            FROM endpoints e
            JOIN methods m ON e.method_id = m.id
            JOIN type_with_project v ON e.type_id = v.id
            WHERE e.route_template LIKE :pattern
               OR m.method_name LIKE :pattern
            ORDER BY e.endpoint_kind, e.http_method, e.route_template
            LIMIT :limit
            """,
            {"pattern": pattern, "limit": limit},
        )

    def search_methods(
        self,
        pattern: str,
        return_type: str | None,
        project: str | None,
        limit: int,
    ) -> list[sqlite3.Row]:
        where = ["m.method_name LIKE ?"]
        params: list[Any] = [pattern]
        if return_type:
            where.append("m.return_type LIKE ?")
            params.append(f"%{return_type}%")
        if project:
            where.append("v.project_name LIKE ?")
            params.append(f"%{project}%")
        params.append(limit)
        return self.fetch_all(
            f"""
            SELECT m.method_name, m.return_type, v.type_name, v.namespace_name,
                   v.project_name, v.file_path
            FROM methods m
            JOIN type_with_project v ON m.type_id = v.id
            WHERE {" AND ".join(where)}
            ORDER BY v.project_name, v.type_name, m.method_name
            LIMIT ?
            """,
            params,
        )

    def search_config(
        self,
        pattern: str,
        source: str | None,
        project: str | None,
        limit: int,
    ) -> list[sqlite3.Row]:
        where = ["key_name LIKE ?"]
        params: list[Any] = [pattern]
        if source:
            where.append("source = ?")
            params.append(source)
        if project:
            where.append("project_name LIKE ?")
            params.append(f"%{project}%")
        params.append(limit)
        return self.fetch_all(
            f"""
            SELECT project_name, source, key_name, default_value, file_path
            FROM config_keys
            WHERE {" AND ".join(where)}
            ORDER BY key_name, project_name
            LIMIT ?
            """,
            params,
        )

    # ------------------------------------------------------------------
    # Codebase overview
    # ------------------------------------------------------------------

    def overview_counts(self) -> dict[str, int]:
        """Projects, production assemblies, public types and endpoints."""
        row = self.fetch_all(
            """
            SELECT (SELECT COUNT(*) FROM projects) AS projects,
                   (SELECT COUNT(*) FROM assemblies WHERE is_test = 0) AS assemblies,
                   (SELECT COUNT(*) FROM types WHERE is_public = 1) AS public_types,
                   (SELECT COUNT(*) FROM endpoints) AS endpoints
            """
        )[0]
        return {key: int(row[key]) for key in row.keys()}

    def project_overview(self) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT p.name,
                   (SELECT COUNT(*) FROM assemblies a
                    WHERE a.project_id = p.id AND a.is_test = 0) AS assembly_count,
                   (SELECT COUNT(*) FROM type_with_project v
                    WHERE v.project_name = p.name AND v.is_public = 1) AS public_type_count
            FROM projects p
            ORDER BY p.name
            """
        )

    def internal_package_consumers(self) -> list[sqlite3.Row]:
        """``(consumer, dependency)`` rows for every internal package reference."""
        return self.fetch_all(
            """
            SELECT DISTINCT p.name AS consumer, pr.package_name AS dependency
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            JOIN projects p ON a.project_id = p.id
            WHERE pr.is_internal = 1
            ORDER BY p.name, pr.package_name
            """
        )

    def target_framework_counts(self) -> list[sqlite3.Row]:
        return self.fetch_all(
            """
            SELECT target_framework, COUNT(*) AS assembly_count
            FROM assemblies
            WHERE is_test = 0 AND target_framework IS NOT NULL
            GROUP BY target_framework
            ORDER BY assembly_count DESC, target_framework
            """
        )

    def common_external_packages(self, min_projects: int, limit: int) -> list[sqlite3.Row]:
        """External packages used by at least *min_projects* production projects."""
        return self.fetch_all(
            """
            SELECT pr.package_name, COUNT(DISTINCT a.project_id) AS project_count
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            WHERE pr.is_internal = 0 AND a.is_test = 0
            GROUP BY pr.package_name
            HAVING project_count >= ?
            ORDER BY project_count DESC, pr.package_name
            LIMIT ?
            """,
            (min_projects, limit),
        )

    def test_packages_matching(self, fragments: Sequence[str]) -> list[str]:
        """Packages referenced by test assemblies whose name contains a fragment."""
        if not fragments:
            return []
        clauses = " OR ".join("pr.package_name LIKE ?" for _ in fragments)
        rows = self.fetch_all(
            f"""
            SELECT pr.package_name, COUNT(*) AS usage_count
            FROM package_references pr
            JOIN assemblies a ON pr.assembly_id = a.id
            WHERE a.is_test = 1 AND ({clauses})
            GROUP BY pr.package_name
            ORDER BY usage_count DESC, pr.package_name
            """,
            [f"%{fragment}%" for fragment in fragments],
        )
        return [row["package_name"] for row in rows]

    def key_interfaces(self, limit: int) -> list[sqlite3.Row]:
        """Public interfaces ordered by how many types implement them."""
        return self.fetch_all(
            """
            SELECT v.type_name, v.namespace_name, v.project_name,
                   (SELECT COUNT(*) FROM type_interfaces ti
                    WHERE ti.interface_name = v.type_name) AS implementor_count
            FROM type_with_project v
            WHERE v.kind = 'interface' AND v.is_public = 1
            ORDER BY implementor_count DESC, v.type_name
            LIMIT ?
            """,
            (limit,),
        )

    # ------------------------------------------------------------------
    # Index metadata
    # ------------------------------------------------------------------

    def last_scan_utc(self) -> str | None:
        return self.fetch_value("SELECT MAX(last_scan_utc) FROM scan_metadata")

    def table_counts(self) -> dict[str, int]:
        return {
            table: int(self.fetch_value(f"SELECT COUNT(*) FROM {table}"))
            for table in INFO_TABLES
        }
