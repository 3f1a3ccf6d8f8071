"""Shared configuration management using pydantic-settings."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from src.shared.constants import (
    DATABASE_FILE_NAME,
    DEFAULT_ALLOWED_BRANCHES,
    DEFAULT_MAX_PARALLELISM,
    MEMORY_DIR_NAME,
)


class SharedConfig(BaseSettings):
    """Base configuration shared across all entry points."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    database_path: str | None = Field(
        default=None, validation_alias="DATABASE_PATH"
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class RepoIndexConfig(SharedConfig):
    """Configuration for the repository index.

    ``root_path`` is the directory whose immediate children are the
    repositories to index.  When ``database_path`` is not set the index
    lives at ``<root>/memory/repo_index.db``.
    """
    root_path: str = Field(
        default_factory=os.getcwd, validation_alias="REPO_INDEX_ROOT"
    )
    max_parallelism: int = Field(
        default=DEFAULT_MAX_PARALLELISM,
        ge=1,
        validation_alias="MAX_PARALLELISM",
    )
    allowed_branches: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_BRANCHES),
        validation_alias="ALLOWED_BRANCHES",
    )
    flat_view_enabled: bool = Field(default=True, validation_alias="FLAT_VIEW_ENABLED")

    @field_validator("allowed_branches", mode="before")
    @classmethod
    def split_branches(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def resolved_database_path(self) -> Path:
        """Return the index file location, applying the ``memory/`` convention."""
        if self.database_path:
            return Path(self.database_path)
        return Path(self.root_path) / MEMORY_DIR_NAME / DATABASE_FILE_NAME

    @property
    def flat_view_dir(self) -> Path:
        """Directory holding the JSON and markdown flat view, beside the index."""
        return self.resolved_database_path.parent
