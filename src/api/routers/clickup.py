import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, model_validator

from api.dependencies import get_clickup_client
from api.rate_limit import rate_limit
from intake_ai.models import AnalysisResult, TaskFilters, TaskRecord
from integration.clickup_client import ClickUpAPIError, ClickUpClient
from integration.task_payload import build_task_payload

router = APIRouter(prefix="/api/clickup", dependencies=[Depends(rate_limit("clickup"))])
logger = logging.getLogger(__name__)


class TargetProjectIn(BaseModel):
    id: str
    name: Optional[str] = None
    clickup_list_id: Optional[str] = None

    @model_validator(mode="after")
    def default_list_id(self) -> "TargetProjectIn":
        if not self.clickup_list_id:
            self.clickup_list_id = self.id
        return self


class CreateTaskIn(BaseModel):
    analysis: AnalysisResult
    project: TargetProjectIn


@router.get("/lists")
async def list_clickup_lists(clickup: ClickUpClient = Depends(get_clickup_client)) -> dict:
    """Raw ClickUp lists of the team, before merging with the project store."""
    lists = await clickup.fetch_lists()
    return {
        "data": [record.model_dump() for record in lists],
        "count": len(lists),
        "team_id": clickup.team_id,
    }


@router.get("/tasks")
async def list_clickup_tasks(
    list_id: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    clickup: ClickUpClient = Depends(get_clickup_client),
) -> dict:
    tasks = await clickup.fetch_tasks(list_id, TaskFilters(limit=limit))
    return {
        "data": [task.model_dump() for task in tasks],
        "count": len(tasks),
        "list_id": list_id,
    }


# status names that count as "being worked on" in the workspace overview
ACTIVE_STATUS_WORDS = ("progress", "doing", "development", "active")


def _is_active(task: TaskRecord) -> bool:
    status = (task.status or "").lower()
    return any(word in status for word in ACTIVE_STATUS_WORDS)


@router.get("/workspaces")
async def list_clickup_workspaces(clickup: ClickUpClient = Depends(get_clickup_client)) -> dict:
    """Spaces of the configured team."""
    spaces = await clickup.fetch_spaces()
    return {
        "data": [space.model_dump() for space in spaces],
        "count": len(spaces),
        "team_id": clickup.team_id,
    }


@router.get("/workspace-tasks")
async def list_workspace_tasks(
    active_only: bool = Query(True),
    limit: int = Query(50, ge=1, le=50),
    clickup: ClickUpClient = Depends(get_clickup_client),
) -> dict:
    """
    Open tasks of every list, grouped per list.

    With active_only (default) only tasks whose status reads as in progress
    are kept, and lists left empty are dropped. A list whose tasks cannot be
    read is logged and skipped.
    """
    filters = TaskFilters(limit=limit, include_closed=False)
    groups = []
    for record in await clickup.fetch_lists():
        try:
            tasks = await clickup.fetch_tasks(record.id, filters)
        except ClickUpAPIError as e:
            logger.warning(f"Skipping tasks of list {record.id} ({record.display_name}): {e.message}")
            continue
        if active_only:
            tasks = [task for task in tasks if _is_active(task)]
            if not tasks:
                continue
        groups.append({
            "list_id": record.id,
            "list_name": record.name,
            "display_name": record.display_name,
            "space_name": record.space_name,
            "folder_name": record.folder_name,
            "tasks": [task.model_dump() for task in tasks],
        })
    return {
        "data": groups,
        "count": len(groups),
        "task_count": sum(len(group["tasks"]) for group in groups),
    }


@router.post("/create-task")
async def create_clickup_task(
    payload: CreateTaskIn,
    clickup: ClickUpClient = Depends(get_clickup_client),
) -> dict:
    """Create a ClickUp task from an approved analysis."""
    body = build_task_payload(payload.analysis)
    logger.info(f"Creating task '{body['name']}' in list {payload.project.clickup_list_id}")
    created = await clickup.create_task(payload.project.clickup_list_id, body)
    return {"data": created.model_dump()}
