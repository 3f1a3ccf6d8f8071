"""Scan router: full, incremental and single-project rescans."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request

from src.shared.models.scan import ScanSummary

router = APIRouter(prefix="/api/scan", tags=["scan"])


@router.post("")
async def run_scan(
    request: Request,
    incremental: bool = Query(True, description="Only rescan projects whose files changed"),
) -> ScanSummary:
    """Run a scan; a concurrent request waits for the running scan to finish."""
    scanner = request.app.state.runtime.scanner
    return await asyncio.to_thread(scanner.run, incremental)


@router.post("/{project_name}")
async def rescan_project(request: Request, project_name: str) -> ScanSummary:
    scanner = request.app.state.runtime.scanner
    return await asyncio.to_thread(scanner.rescan_project, project_name)
