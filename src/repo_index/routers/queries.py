"""Read-only query router: projects, types, packages, endpoints, config."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Query, Request

from src.repo_index.services.tool_result import timed_tool_result
from src.shared.constants import (
    SEARCH_RESULTS_LIMIT,
    SEARCH_TYPES_LIMIT,
    TYPE_DETAILS_LIMIT,
    UNTESTED_TYPES_LIMIT,
)
from src.shared.models.scan import ToolResult

router = APIRouter(prefix="/api", tags=["queries"])


@router.get("/projects")
async def list_projects(request: Request) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, service.list_projects)


@router.get("/projects/{project}")
async def get_project_info(request: Request, project: str) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.get_project_info(project))


@router.get("/projects/{project}/dependencies")
async def get_dependency_graph(request: Request, project: str) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.get_dependency_graph(project))


@router.get("/types")
async def search_types(
    request: Request,
    pattern: str = Query(..., description="Type name pattern; * is a wildcard"),
    namespace: str | None = Query(None, description="Namespace pattern"),
    kind: str | None = Query(None, description="class, interface, struct, enum or record"),
    project: str | None = Query(None, description="Project name"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result,
        lambda: service.search_types(pattern, namespace, kind, project),
        SEARCH_TYPES_LIMIT,
    )


@router.get("/types/untested")
async def find_untested_types(
    request: Request,
    project: str | None = Query(None, description="Project name"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result, lambda: service.find_untested_types(project), UNTESTED_TYPES_LIMIT
    )


@router.get("/types/{type_name}")
async def get_type_details(request: Request, type_name: str) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result, lambda: service.get_type_details(type_name), TYPE_DETAILS_LIMIT
    )


@router.get("/implementors")
async def find_implementors(
    request: Request,
    interface: str = Query(..., description="Interface name pattern"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result, lambda: service.find_implementors(interface), SEARCH_RESULTS_LIMIT
    )


@router.get("/injections")
async def search_injections(
    request: Request,
    dependency: str = Query(..., description="Dependency type pattern"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result, lambda: service.search_injections(dependency), SEARCH_RESULTS_LIMIT
    )


@router.get("/packages")
async def get_package_versions(
    request: Request,
    pattern: str = Query(..., description="Package name pattern"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.get_package_versions(pattern))


@router.get("/endpoints")
async def search_endpoints(
    request: Request,
    route: str = Query(..., description="Route or handler name pattern"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result, lambda: service.search_endpoints(route), SEARCH_RESULTS_LIMIT
    )


@router.get("/methods")
async def search_methods(
    request: Request,
    pattern: str = Query(..., description="Method name pattern"),
    return_type: str | None = Query(None, description="Return type pattern"),
    project: str | None = Query(None, description="Project name"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result,
        lambda: service.search_methods(pattern, return_type, project),
        SEARCH_RESULTS_LIMIT,
    )


@router.get("/config")
async def search_config(
    request: Request,
    key: str = Query(..., description="Configuration key pattern"),
    source: str | None = Query(None, description="appsettings, env_var or IConfiguration"),
    project: str | None = Query(None, description="Project name"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(
        timed_tool_result,
        lambda: service.search_config(key, source, project),
        SEARCH_RESULTS_LIMIT,
    )


@router.get("/index")
async def get_index_info(request: Request) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, service.get_index_info)


@router.get("/agents-md")
async def generate_agents_md(
    request: Request,
    product_name: str | None = Query(None, description="Name used in the document header"),
) -> ToolResult:
    service = request.app.state.runtime.query_service
    return await asyncio.to_thread(timed_tool_result, lambda: service.generate_agents_md(product_name))
