"""Storage layer for the repository index."""

from src.repo_index.storage.index_queries import IndexQueries
from src.repo_index.storage.index_store import IndexStore, assign_types_to_assemblies

__all__ = [
    "IndexQueries",
    "IndexStore",
    "assign_types_to_assemblies",
]
