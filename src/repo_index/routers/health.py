"""Health check router."""
from __future__ import annotations

import asyncio
import time

from fastapi import APIRouter, Request

from src.shared.constants import REPO_INDEX_SERVICE_NAME, VERSION
from src.shared.errors import IndexUnavailableError, StoreCorruptedError
from src.shared.models.common import HealthStatus

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health(request: Request) -> HealthStatus:
    """Health check with index availability."""
    runtime = request.app.state.runtime

    def _check() -> HealthStatus:
        details: dict = {"root_path": runtime.config.root_path}
        try:
            runtime.queries.fetch_value("SELECT 1")
            db_status, status = "connected", "healthy"
            details["last_scan_utc"] = runtime.queries.last_scan_utc()
        except IndexUnavailableError:
            db_status, status = "missing", "degraded"
        except StoreCorruptedError as exc:
            db_status, status = "corrupted", "unhealthy"
            details["error"] = exc.detail

        start_time = getattr(request.app.state, "start_time", time.time())
        return HealthStatus(
            status=status,
            service_name=REPO_INDEX_SERVICE_NAME,
            version=VERSION,
            database=db_status,
            uptime_seconds=time.time() - start_time,
            details=details,
        )

    return await asyncio.to_thread(_check)
