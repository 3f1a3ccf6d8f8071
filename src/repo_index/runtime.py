"""Wiring of the index components shared by every entry point."""
from __future__ import annotations

import logging

from src.repo_index.parsers.source_extractor import CSharpSourceExtractor, SourceExtractor
from src.repo_index.services.fetch_orchestrator import FetchOrchestrator
from src.repo_index.services.git_client import GitClient
from src.repo_index.services.query_cache import QueryCache
from src.repo_index.services.query_service import QueryService
from src.repo_index.services.scan_orchestrator import ScanOrchestrator
from src.repo_index.storage.index_queries import IndexQueries
from src.shared.config import RepoIndexConfig
from src.shared.constants import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class RepoIndexRuntime:
    """Builds the query, scan and fetch services around one index file.

    The scanner and the query service share one :class:`QueryCache`, so a
    completed scan invalidates every cached query result.
    """

    def __init__(
        self,
        config: RepoIndexConfig | None = None,
        cache: QueryCache | None = None,
        extractor: SourceExtractor | None = None,
        git_client: GitClient | None = None,
    ) -> None:
        self.config = config or RepoIndexConfig()
        self.cache = cache if cache is not None else QueryCache(ttl_seconds=CACHE_TTL_SECONDS)
        self.git = git_client or GitClient()
        self.queries = IndexQueries(self.config.resolved_database_path)
        self.query_service = QueryService(self.queries, self.cache)
        self.scanner = ScanOrchestrator(
            self.config,
            extractor=extractor or CSharpSourceExtractor(),
            cache=self.cache,
            git_client=self.git,
        )
        self.fetcher = FetchOrchestrator(self.config, git_client=self.git, scanner=self.scanner)
        logger.debug(
            "Runtime ready: root=%s db=%s",
            self.config.root_path, self.config.resolved_database_path,
        )

    def close(self) -> None:
        self.queries.close()
