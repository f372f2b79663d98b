"""
ClickUp API v2 client.

Walks the team hierarchy (space -> folder -> list) to discover the lists the
service treats as projects, reads sample tasks from a list and creates tasks.
All calls are async (httpx) with explicit per-call timeouts and accept an
optional CancelToken.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from intake_ai.cancellation import CancelToken
from intake_ai.models import CreatedTask, ListRecord, TaskFilters, TaskRecord, build_display_name
from integration.clickup_schemas import (
    CreatedTaskOut,
    ErrorOut,
    FoldersResponse,
    ListOut,
    ListsResponse,
    SpaceOut,
    SpacesResponse,
    TaskOut,
    TasksResponse,
)
from integration.task_payload import PRIORITY_MAP

logger = logging.getLogger(__name__)

CLICKUP_API_URL = os.getenv("CLICKUP_API_URL", "https://api.clickup.com/api/v2").strip()
CLICKUP_TIMEOUT_S = float(os.getenv("CLICKUP_TIMEOUT_S", "10"))
MAX_TASKS_PER_REQUEST = 50

M = TypeVar("M", bound=BaseModel)


class ClickUpError(Exception):
    """Base class for ClickUp failures."""


class ClickUpConfigError(ClickUpError):
    """Missing credentials. Fatal; retrying will not help."""


class ClickUpAPIError(ClickUpError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _describe_failure(status_code: Optional[int], payload: Any, subject: str) -> str:
    if status_code == 401:
        return "ClickUp API anahtarı geçersiz."
    if status_code == 403:
        return "Bu workspace'e erişim izniniz yok."
    if status_code == 404:
        return f"{subject} bulunamadı."
    if isinstance(payload, dict):
        try:
            err = ErrorOut.model_validate(payload).err
        except ValidationError:
            err = None
        if err:
            return f"ClickUp API hatası: {err}"
    return f"ClickUp isteği başarısız oldu (HTTP {status_code})."


class ClickUpClient:
    def __init__(
        self,
        api_token: Optional[str] = None,
        team_id: Optional[str] = None,
        base_url: str = CLICKUP_API_URL,
        timeout_s: float = CLICKUP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = (api_token if api_token is not None else os.getenv("CLICKUP_API_TOKEN", "")).strip()
        self.team_id = (team_id if team_id is not None else os.getenv("CLICKUP_TEAM_ID", "")).strip()
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    # -- configuration -------------------------------------------------

    def _require_token(self) -> None:
        if not self.api_token:
            raise ClickUpConfigError(
                "ClickUp API yapılandırması eksik. CLICKUP_API_TOKEN tanımlı değil."
            )

    def _require_team(self) -> None:
        self._require_token()
        if not self.team_id:
            raise ClickUpConfigError(
                "ClickUp Team ID yapılandırması eksik. CLICKUP_TEAM_ID tanımlı değil."
            )

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": self.api_token,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.timeout_s),
            transport=self._transport,
        )

    # -- transport -----------------------------------------------------

    async def _request(
        self,
        http: httpx.AsyncClient,
        method: str,
        path: str,
        schema: Type[M],
        subject: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> M:
        if cancel is not None:
            cancel.raise_if_cancelled()

        call = http.request(method, path, params=params, json=json)
        try:
            if cancel is not None:
                response = await cancel.run(call)
            else:
                response = await call
        except httpx.TimeoutException as e:
            raise ClickUpAPIError("İstek zaman aşımına uğradı. Lütfen tekrar deneyin.") from e
        except httpx.HTTPError as e:
            raise ClickUpAPIError(f"ClickUp'a bağlanılamadı: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            raise ClickUpAPIError(
                _describe_failure(response.status_code, payload, subject),
                status_code=response.status_code,
            )

        try:
            return schema.model_validate(payload)
        except ValidationError as e:
            raise ClickUpAPIError(
                f"ClickUp yanıtı beklenmeyen formatta ({path}).",
                status_code=response.status_code,
            ) from e

    # -- hierarchy -----------------------------------------------------

    async def fetch_spaces(self, cancel: Optional[CancelToken] = None) -> List[SpaceOut]:
        self._require_team()
        async with self._http() as http:
            return await self._fetch_spaces(http, cancel)

    async def _fetch_spaces(self, http: httpx.AsyncClient, cancel: Optional[CancelToken]) -> List[SpaceOut]:
        response = await self._request(
            http,
            "GET",
            f"/team/{self.team_id}/space",
            SpacesResponse,
            subject="Workspace veya team",
            params={"archived": "false"},
            cancel=cancel,
        )
        return [space for space in response.spaces if not space.archived]

    async def _fetch_space_lists(
        self,
        http: httpx.AsyncClient,
        space: SpaceOut,
        cancel: Optional[CancelToken],
    ) -> List[ListRecord]:
        records: List[ListRecord] = []

        folderless = await self._request(
            http,
            "GET",
            f"/space/{space.id}/list",
            ListsResponse,
            subject="Space",
            params={"archived": "false"},
            cancel=cancel,
        )
        records.extend(self._to_record(item, space) for item in folderless.lists if not item.archived)

        folders = await self._request(
            http,
            "GET",
            f"/space/{space.id}/folder",
            FoldersResponse,
            subject="Space",
            params={"archived": "false"},
            cancel=cancel,
        )
        for folder in folders.folders:
            if folder.archived:
                continue
            folder_lists = await self._request(
                http,
                "GET",
                f"/folder/{folder.id}/list",
                ListsResponse,
                subject="Folder",
                params={"archived": "false"},
                cancel=cancel,
            )
            records.extend(
                self._to_record(item, space, folder_id=folder.id, folder_name=folder.name)
                for item in folder_lists.lists
                if not item.archived
            )

        return records

    @staticmethod
    def _to_record(
        item: ListOut,
        space: SpaceOut,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
    ) -> ListRecord:
        return ListRecord(
            id=item.id,
            name=item.name,
            description=item.content or "",
            space_id=space.id,
            space_name=space.name,
            folder_id=folder_id,
            folder_name=folder_name,
            display_name=build_display_name(space.name, item.name, folder_name),
        )

    async def fetch_lists(self, cancel: Optional[CancelToken] = None) -> List[ListRecord]:
        """
        Flatten every non-archived list of the configured team.

        A failure inside one space is logged and that space skipped; a failure
        listing the spaces themselves propagates. OperationAborted always
        propagates.
        """
        self._require_team()
        if cancel is not None:
            cancel.raise_if_cancelled()

        async with self._http() as http:
            spaces = await self._fetch_spaces(http, cancel)
            logger.info(f"Fetched {len(spaces)} ClickUp spaces for team {self.team_id}")

            all_lists: List[ListRecord] = []
            for space in spaces:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                try:
                    all_lists.extend(await self._fetch_space_lists(http, space, cancel))
                except ClickUpAPIError as e:
                    logger.warning(f"Skipping space {space.id} ({space.name}): {e.message}")
                    continue

        logger.info(f"Fetched {len(all_lists)} ClickUp lists")
        return all_lists

    # -- tasks ---------------------------------------------------------

    async def fetch_tasks(
        self,
        list_id: str,
        filters: Optional[TaskFilters] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[TaskRecord]:
        """Read up to `filters.limit` tasks of a list, following pages as needed."""
        self._require_token()
        filters = filters or TaskFilters()
        limit = min(filters.limit, MAX_TASKS_PER_REQUEST)

        tasks: List[TaskRecord] = []
        page = filters.page
        async with self._http() as http:
            while len(tasks) < limit:
                response = await self._request(
                    http,
                    "GET",
                    f"/list/{list_id}/task",
                    TasksResponse,
                    subject="Liste",
                    params={
                        "page": page,
                        "order_by": filters.order_by,
                        "reverse": str(filters.reverse).lower(),
                        "subtasks": str(filters.subtasks).lower(),
                        "include_closed": str(filters.include_closed).lower(),
                        "limit": limit,
                    },
                    cancel=cancel,
                )
                tasks.extend(self._to_task(item) for item in response.tasks)
                if response.last_page or not response.tasks:
                    break
                page += 1

        return tasks[:limit]

    @staticmethod
    def _to_task(item: TaskOut) -> TaskRecord:
        return TaskRecord(
            id=item.id,
            name=item.name,
            description=item.description or item.text_content or "",
            tags=[tag.name for tag in item.tags],
            status=item.status.status if item.status else None,
            url=item.url,
            custom_fields=[
                {"name": field.name, "value": "" if field.value is None else str(field.value)}
                for field in item.custom_fields
            ],
        )

    async def create_task(self, list_id: str, payload: Dict[str, Any]) -> CreatedTask:
        self._require_token()
        async with self._http() as http:
            created = await self._request(
                http,
                "POST",
                f"/list/{list_id}/task",
                CreatedTaskOut,
                subject="ClickUp List",
                json=payload,
            )

        priority = None
        if created.priority and created.priority.priority:
            priority = PRIORITY_MAP.get(created.priority.priority.lower())

        logger.info(f"Created ClickUp task {created.id} in list {list_id}")
        return CreatedTask(
            id=created.id,
            name=created.name,
            description=created.description,
            priority=priority,
            status=created.status.status if created.status and created.status.status else "to do",
            url=created.url,
        )
