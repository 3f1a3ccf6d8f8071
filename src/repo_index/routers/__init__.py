"""Repository index routers."""
from src.repo_index.routers.health import router as health_router
from src.repo_index.routers.queries import router as queries_router
from src.repo_index.routers.analysis import router as analysis_router
from src.repo_index.routers.scan import router as scan_router
from src.repo_index.routers.repos import router as repos_router

__all__ = [
    "health_router",
    "queries_router",
    "analysis_router",
    "scan_router",
    "repos_router",
]
