"""Database schema initialization for the repository index."""
from __future__ import annotations

from src.shared.db.connection import ConnectionPool

# Tables in cascade order, children first.  ``IndexStore.delete_project``
# walks the same order.
INDEX_TABLES: tuple[str, ...] = (
    "endpoints",
    "method_parameters",
    "methods",
    "type_injected_deps",
    "type_interfaces",
    "types",
    "namespaces",
    "package_references",
    "project_references",
    "assemblies",
    "config_keys",
    "projects",
)


def init_index_db(pool: ConnectionPool) -> None:
    """Initialize the repository index schema.

    Every statement is idempotent so the function also upgrades an
    index written by an older release in place.
    """
    conn = pool.get()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            directory_path TEXT NOT NULL,
            solution_file TEXT,
            git_remote_url TEXT,
            default_branch TEXT
        );

        CREATE TABLE IF NOT EXISTS assemblies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL REFERENCES projects(id),
            csproj_path TEXT NOT NULL,
            assembly_name TEXT NOT NULL,
            target_framework TEXT,
            output_type TEXT,
            is_test INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_assemblies_project ON assemblies(project_id);
        CREATE INDEX IF NOT EXISTS idx_assemblies_name ON assemblies(assembly_name);

        CREATE TABLE IF NOT EXISTS package_references (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            assembly_id INTEGER NOT NULL REFERENCES assemblies(id),
            package_name TEXT NOT NULL,
            version TEXT,
            is_internal INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_pkg_refs_assembly ON package_references(assembly_id);
        CREATE INDEX IF NOT EXISTS idx_pkg_refs_name ON package_references(package_name);

        CREATE TABLE IF NOT EXISTS project_references (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            assembly_id INTEGER NOT NULL REFERENCES assemblies(id),
            referenced_path TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS namespaces (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            assembly_id INTEGER NOT NULL REFERENCES assemblies(id),
            namespace_name TEXT NOT NULL,
            UNIQUE(assembly_id, namespace_name)
        );

        CREATE TABLE IF NOT EXISTS types (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            namespace_id INTEGER NOT NULL REFERENCES namespaces(id),
            type_name TEXT NOT NULL,
            kind TEXT NOT NULL
                CHECK(kind IN ('class','interface','struct','enum','record','record struct')),
            is_public INTEGER NOT NULL DEFAULT 0,
            file_path TEXT,
            base_type TEXT,
            summary_comment TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_types_namespace ON types(namespace_id);
        CREATE INDEX IF NOT EXISTS idx_types_name ON types(type_name);
        CREATE INDEX IF NOT EXISTS idx_types_base ON types(base_type);

        CREATE TABLE IF NOT EXISTS type_interfaces (
            type_id INTEGER NOT NULL REFERENCES types(id),
            interface_name TEXT NOT NULL,
            PRIMARY KEY (type_id, interface_name)
        );
        CREATE INDEX IF NOT EXISTS idx_type_interfaces_name ON type_interfaces(interface_name);

        CREATE TABLE IF NOT EXISTS type_injected_deps (
            type_id INTEGER NOT NULL REFERENCES types(id),
            dependency_type TEXT NOT NULL,
            PRIMARY KEY (type_id, dependency_type)
        );
        CREATE INDEX IF NOT EXISTS idx_injected_deps_name ON type_injected_deps(dependency_type);

        CREATE TABLE IF NOT EXISTS methods (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            type_id INTEGER NOT NULL REFERENCES types(id),
            method_name TEXT NOT NULL,
            return_type TEXT NOT NULL,
            is_public INTEGER NOT NULL DEFAULT 1,
            is_static INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_methods_type ON methods(type_id);
        CREATE INDEX IF NOT EXISTS idx_methods_name ON methods(method_name);

        CREATE TABLE IF NOT EXISTS method_parameters (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            method_id INTEGER NOT NULL REFERENCES methods(id),
            param_name TEXT NOT NULL,
            param_type TEXT NOT NULL,
            position INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_method_params_method ON method_parameters(method_id);

        CREATE TABLE IF NOT EXISTS endpoints (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            type_id INTEGER NOT NULL REFERENCES types(id),
            method_id INTEGER NOT NULL REFERENCES methods(id),
            http_method TEXT NOT NULL,
            route_template TEXT,
            endpoint_kind TEXT NOT NULL
                CHECK(endpoint_kind IN ('REST','GraphQL'))
        );
        CREATE INDEX IF NOT EXISTS idx_endpoints_method ON endpoints(method_id);
        CREATE INDEX IF NOT EXISTS idx_endpoints_route ON endpoints(route_template);

        CREATE TABLE IF NOT EXISTS config_keys (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_name TEXT NOT NULL,
            source TEXT NOT NULL,
            key_name TEXT NOT NULL,
            default_value TEXT,
            file_path TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_config_keys_project ON config_keys(project_name);
        CREATE INDEX IF NOT EXISTS idx_config_keys_name ON config_keys(key_name);

        CREATE TABLE IF NOT EXISTS scan_metadata (
            project_name TEXT PRIMARY KEY,
            file_hash TEXT NOT NULL,
            last_scan_utc TEXT NOT NULL
        );

        CREATE VIEW IF NOT EXISTS type_with_project AS
        SELECT t.*, n.namespace_name, a.assembly_name, a.target_framework,
               a.is_test, p.name AS project_name, p.git_remote_url
        FROM types t
        JOIN namespaces n ON t.namespace_id = n.id
        JOIN assemblies a ON n.assembly_id = a.id
        JOIN projects p ON a.project_id = p.id;
    """)
    conn.commit()
