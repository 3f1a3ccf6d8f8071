"""Shared constants used across the indexer, query layer and entry points."""
from __future__ import annotations

# Application version
VERSION: str = "1.0.0"

# Port numbers
REPO_INDEX_PORT: int = 8003
INTERNAL_PORT: int = 8000

# Service names
REPO_INDEX_SERVICE_NAME: str = "repo-index"

# Database settings
DB_BUSY_TIMEOUT_MS: int = 30000
MEMORY_DIR_NAME: str = "memory"
DATABASE_FILE_NAME: str = "repo_index.db"

# Flat view written beside the index
PROJECTS_FILE_NAME: str = "projects.json"
DEPENDENCY_GRAPH_FILE_NAME: str = "dependency-graph.json"
TYPES_INDEX_FILE_NAME: str = "types-index.json"
PROJECT_SUMMARIES_DIR_NAME: str = "projects"

# Query cache
CACHE_TTL_SECONDS: float = 30.0
CACHE_MAX_ENTRIES: int = 1024

# Row caps applied by the query layer
SEARCH_TYPES_LIMIT: int = 50
SEARCH_RESULTS_LIMIT: int = 100
TYPE_DETAILS_LIMIT: int = 5
UNTESTED_TYPES_LIMIT: int = 200
PROJECT_KEY_TYPES_LIMIT: int = 30
PROJECT_EXTERNAL_DEPS_LIMIT: int = 15

# Codebase overview (generate_agents_md)
DEFAULT_PRODUCT_NAME: str = "This Codebase"
COMMON_PACKAGE_MIN_PROJECTS: int = 3
COMMON_PACKAGES_LIMIT: int = 15
OVERVIEW_ENDPOINTS_LIMIT: int = 50
KEY_INTERFACES_LIMIT: int = 20
TEST_PACKAGE_FRAGMENTS: tuple[str, ...] = (
    "xunit", "nunit", "mstest", "Moq", "NSubstitute", "FluentAssertions",
)

# Graph analysis
DEFAULT_TRACE_DEPTH: int = 3
HIGH_COUPLING_THRESHOLD: int = 5

# Fetch orchestration
DEFAULT_MAX_PARALLELISM: int = 4
DEFAULT_ALLOWED_BRANCHES: list[str] = ["master", "main"]
DEFAULT_BRANCH: str = "master"

# Scanning
GIT_MARKER_DIR: str = ".git"
BUILD_OUTPUT_DIRS: frozenset[str] = frozenset({"bin", "obj"})
FINGERPRINT_PATTERNS: tuple[str, ...] = ("*.cs", "*.csproj")
GLOBAL_NAMESPACE: str = "<global>"
