"""Repository router: git status and fetch/pull of every repository."""
from __future__ import annotations

from fastapi import APIRouter, Query, Request

from src.shared.models.scan import RepoStatus, UpdateReport

router = APIRouter(prefix="/api/repos", tags=["repos"])


@router.get("/status")
async def get_repo_status(request: Request) -> list[RepoStatus]:
    return await request.app.state.runtime.fetcher.status_all()


@router.post("/update")
async def update_repos(
    request: Request,
    auto_rescan: bool = Query(False, description="Rescan when any repository changed"),
) -> UpdateReport:
    return await request.app.state.runtime.fetcher.update_repos(auto_rescan)
