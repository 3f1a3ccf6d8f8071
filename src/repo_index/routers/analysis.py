"""Graph analysis router: flow tracing, impact, version alignment, patterns."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request

from src.repo_index.services.tool_result import timed_tool_result
from src.shared.constants import DEFAULT_TRACE_DEPTH
from src.shared.models.scan import ToolResult

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


@router.get("/flow/{type_name}")
async def trace_flow(
    request: Request,
    type_name: str,
    max_depth: int = Query(DEFAULT_TRACE_DEPTH, ge=0, description="Maximum hops to follow"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.trace_flow(type_name, max_depth))


@router.get("/impact/{type_name}")
async def analyze_impact(request: Request, type_name: str) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.analyze_impact(type_name))


@router.get("/version-alignment")
async def check_version_alignment(request: Request) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, service.check_version_alignment)


@router.get("/patterns")
async def detect_patterns(
    request: Request,
    project: str | None = Query(None, description="Restrict to one project"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.detect_patterns(project))
