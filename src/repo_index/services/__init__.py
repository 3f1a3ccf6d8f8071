"""Business logic services for the repository index."""

from src.repo_index.services.change_detector import ChangeDetector, compute_fingerprint
from src.repo_index.services.fetch_orchestrator import FetchOrchestrator
from src.repo_index.services.git_client import GitClient
from src.repo_index.services.graph_engine import GraphQueryEngine
from src.repo_index.services.pattern_detector import PATTERN_RULES, PatternDetector
from src.repo_index.services.query_cache import NullQueryCache, QueryCache
from src.repo_index.services.query_service import QueryService
from src.repo_index.services.scan_orchestrator import ScanOrchestrator

__all__ = [
    "ChangeDetector",
    "compute_fingerprint",
    "FetchOrchestrator",
    "GitClient",
    "GraphQueryEngine",
    "PATTERN_RULES",
    "PatternDetector",
    "NullQueryCache",
    "QueryCache",
    "QueryService",
    "ScanOrchestrator",
]
