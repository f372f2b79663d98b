import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, field_validator

from api.dependencies import get_project_store, get_synchronizer
from api.rate_limit import rate_limit
from intake_ai.cancellation import CancelToken
from intake_ai.models import PROJECT_TYPES
from storage.project_store import ProjectNotFound, ProjectRepository
from sync.project_sync import ProjectSynchronizer

router = APIRouter()
logger = logging.getLogger(__name__)

DISCONNECT_POLL_INTERVAL_S = 0.5


class ProjectTypeIn(BaseModel):
    project_type: str

    @field_validator("project_type")
    @classmethod
    def known_type(cls, v: str) -> str:
        v = v.strip()
        if v not in PROJECT_TYPES:
            raise ValueError(f"unknown project type: {v}")
        return v


@asynccontextmanager
async def cancel_on_disconnect(request: Request):
    """Yield a CancelToken that fires when the HTTP client goes away."""
    token = CancelToken()

    async def _watch() -> None:
        while not token.cancelled:
            if await request.is_disconnected():
                token.cancel("client disconnected")
                return
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL_S)

    watcher = asyncio.create_task(_watch())
    try:
        yield token
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)


@router.get("/api/projects", dependencies=[Depends(rate_limit("general"))])
async def list_projects(
    request: Request,
    synchronizer: ProjectSynchronizer = Depends(get_synchronizer),
) -> dict:
    """Merged project list, served from cache while fresh."""
    logger.info("Loading projects")
    async with cancel_on_disconnect(request) as token:
        projects = await synchronizer.get_projects(cancel=token)
    logger.info(f"Loaded {len(projects)} projects")
    return {
        "data": [p.model_dump(mode="json") for p in projects],
        "count": len(projects),
    }


@router.post("/api/projects/refresh", dependencies=[Depends(rate_limit("general"))])
async def refresh_projects(
    synchronizer: ProjectSynchronizer = Depends(get_synchronizer),
) -> dict:
    synchronizer.clear_cache()
    return {
        "message": "Cache cleared successfully",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/api/projects/{project_id}/type", dependencies=[Depends(rate_limit("general"))])
async def override_project_type(
    project_id: str,
    payload: ProjectTypeIn,
    store: ProjectRepository = Depends(get_project_store),
    synchronizer: ProjectSynchronizer = Depends(get_synchronizer),
) -> dict:
    """Set a project's type by hand. Recorded as a full-confidence analysis."""
    try:
        record = await store.mark_classified(
            project_id,
            payload.project_type,
            task_count=0,
            confidence=1.0,
        )
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Proje bulunamadı")

    logger.info(f"Project {project_id} manually set to {payload.project_type}")
    synchronizer.patch_cached_project(project_id, payload.project_type, record.analysis_date)
    project = await store.get_by_id(project_id)
    return {
        "data": project.model_dump(mode="json") if project else None,
        "analysis": record.model_dump(mode="json"),
    }
