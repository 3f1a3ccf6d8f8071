"""Repository index FastAPI application."""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.shared.config import RepoIndexConfig
from src.shared.constants import REPO_INDEX_PORT, REPO_INDEX_SERVICE_NAME, VERSION
from src.shared.errors import register_exception_handlers
from src.shared.logging import TraceIDMiddleware, setup_logging

from src.repo_index.runtime import RepoIndexRuntime

# Routers
from src.repo_index.routers.health import router as health_router
from src.repo_index.routers.queries import router as queries_router
from src.repo_index.routers.analysis import router as analysis_router
from src.repo_index.routers.scan import router as scan_router
from src.repo_index.routers.repos import router as repos_router

config = RepoIndexConfig()
logger = setup_logging(REPO_INDEX_SERVICE_NAME, config.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the runtime and release it on shutdown."""
    app.state.start_time = time.time()

    runtime = getattr(app.state, "runtime", None) or RepoIndexRuntime(config)
    app.state.runtime = runtime

    logger.info(
        "Service started: name=%s version=%s port=%d root=%s db=%s",
        REPO_INDEX_SERVICE_NAME, VERSION, REPO_INDEX_PORT,
        runtime.config.root_path, runtime.config.resolved_database_path,
    )
    yield

    runtime.close()
    logger.info("Service stopped: name=%s", REPO_INDEX_SERVICE_NAME)


app = FastAPI(
    title="Repository Index",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(TraceIDMiddleware)
register_exception_handlers(app)

app.include_router(health_router)
app.include_router(queries_router)
app.include_router(analysis_router)
app.include_router(scan_router)
app.include_router(repos_router)
