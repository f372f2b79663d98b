import asyncio
from typing import Dict, List, Optional

import httpx
import pytest

from intake_ai.models import CreatedTask, ListRecord, TaskRecord, build_display_name
from integration.clickup_client import ClickUpAPIError, ClickUpClient
from integration.clickup_schemas import SpaceOut


class FakeProvider:
    def __init__(self, response_text: str = "", error: Optional[Exception] = None):
        self._response_text = response_text
        self._error = error
        self.calls: List[dict] = []

    def generate(self, *, system: str, user: str, **kwargs) -> str:
        self.calls.append({"system": system, "user": user, **kwargs})
        if self._error is not None:
            raise self._error
        return self._response_text


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str = "", error: Optional[Exception] = None):
        return FakeProvider(response_text, error=error)
    return _make


def make_list(list_id: str, name: str, space: str = "Client A", folder: Optional[str] = None) -> ListRecord:
    return ListRecord(
        id=list_id,
        name=name,
        space_id=f"space-{space}",
        space_name=space,
        folder_id=f"folder-{folder}" if folder else None,
        folder_name=folder,
        display_name=build_display_name(space, name, folder),
    )


class FakeClickUp:
    """Stands in for ClickUpClient inside the synchronizer."""

    def __init__(self, lists: Optional[List[ListRecord]] = None, tasks: Optional[Dict[str, List[TaskRecord]]] = None):
        self.lists = list(lists or [])
        self.tasks = dict(tasks or {})
        self.fetch_lists_calls = 0
        self.fetch_tasks_calls: List[str] = []
        self.fail_lists: Optional[Exception] = None
        self.failing_task_lists: set = set()
        self.list_delay_s = 0.0
        self.created: List[tuple] = []
        self.api_token = "pk_test"
        self.team_id = "team-1"

    async def fetch_spaces(self, cancel=None) -> List[SpaceOut]:
        spaces: Dict[str, SpaceOut] = {}
        for record in self.lists:
            spaces.setdefault(record.space_id, SpaceOut(id=record.space_id, name=record.space_name))
        return list(spaces.values())

    async def fetch_lists(self, cancel=None) -> List[ListRecord]:
        self.fetch_lists_calls += 1
        if cancel is not None:
            cancel.raise_if_cancelled()
        if self.list_delay_s:
            if cancel is not None:
                await cancel.run(asyncio.sleep(self.list_delay_s))
            else:
                await asyncio.sleep(self.list_delay_s)
        if self.fail_lists is not None:
            raise self.fail_lists
        return list(self.lists)

    async def fetch_tasks(self, list_id: str, filters=None, cancel=None) -> List[TaskRecord]:
        self.fetch_tasks_calls.append(list_id)
        if list_id in self.failing_task_lists:
            raise ClickUpAPIError("Liste bulunamadı.", status_code=404)
        limit = filters.limit if filters is not None else 10
        return list(self.tasks.get(list_id, []))[:limit]

    async def create_task(self, list_id: str, payload: dict) -> CreatedTask:
        self.created.append((list_id, payload))
        return CreatedTask(
            id=f"task-{len(self.created)}",
            name=payload["name"],
            description=payload.get("description"),
            priority=payload.get("priority"),
            url=f"https://app.clickup.com/t/task-{len(self.created)}",
        )


@pytest.fixture
def fake_clickup():
    return FakeClickUp()


@pytest.fixture
def clickup_transport():
    """Build a ClickUpClient answering from a {path: payload | (status, payload)} table."""

    def _make(routes: Dict[str, object], seen: Optional[List[httpx.Request]] = None) -> ClickUpClient:
        def handler(request: httpx.Request) -> httpx.Response:
            if seen is not None:
                seen.append(request)
            path = request.url.path.removeprefix("/api/v2")
            key = f"{request.method} {path}"
            route = routes.get(key, routes.get(path))
            if route is None:
                return httpx.Response(404, json={"err": "Route not found", "ECODE": "TEST_404"})
            if isinstance(route, tuple):
                status, payload = route
                return httpx.Response(status, json=payload)
            return httpx.Response(200, json=route)

        return ClickUpClient(
            api_token="pk_test",
            team_id="team-1",
            base_url="https://api.clickup.com/api/v2",
            transport=httpx.MockTransport(handler),
        )

    return _make
