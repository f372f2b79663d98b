import asyncio

import httpx
import pytest

from intake_ai.cancellation import CancelToken, OperationAborted
from intake_ai.models import TaskFilters
from integration.clickup_client import ClickUpAPIError, ClickUpClient, ClickUpConfigError

TWO_SPACES = {
    "GET /team/team-1/space": {"spaces": [{"id": 1, "name": "Client A"}, {"id": 2, "name": "Client B"}]},
    "GET /space/1/list": {"lists": [{"id": "L1", "name": "Website", "folder": {"id": "h1", "name": "hidden"}}]},
    "GET /space/1/folder": {"folders": [{"id": "F1", "name": "Phase 2"}]},
    "GET /folder/F1/list": {"lists": [{"id": "L2", "name": "Mobile App", "content": "iOS + Android"}]},
    "GET /space/2/list": {"lists": [{"id": "L3", "name": "Shop", "archived": True}, {"id": "L4", "name": "Store"}]},
    "GET /space/2/folder": {"folders": []},
}


def test_fetch_lists_flattens_hierarchy(clickup_transport):
    client = clickup_transport(TWO_SPACES)

    lists = asyncio.run(client.fetch_lists())

    by_id = {record.id: record for record in lists}
    assert set(by_id) == {"L1", "L2", "L4"}
    assert by_id["L1"].folder_name is None
    assert by_id["L1"].display_name == "Client A / Website"
    assert by_id["L2"].folder_name == "Phase 2"
    assert by_id["L2"].display_name == "Client A / Phase 2 / Mobile App"
    assert by_id["L2"].description == "iOS + Android"
    assert by_id["L4"].space_name == "Client B"


def test_fetch_lists_sends_token(clickup_transport):
    seen = []
    client = clickup_transport(TWO_SPACES, seen=seen)

    asyncio.run(client.fetch_lists())

    assert seen
    assert all(request.headers["Authorization"] == "pk_test" for request in seen)
    assert all(request.url.params.get("archived") == "false" for request in seen)


def test_failing_space_is_skipped(clickup_transport):
    routes = dict(TWO_SPACES)
    routes["GET /space/2/list"] = (500, {"err": "Internal error"})

    lists = asyncio.run(clickup_transport(routes).fetch_lists())

    assert [record.id for record in lists] == ["L1", "L2"]


def test_failing_space_listing_propagates(clickup_transport):
    routes = dict(TWO_SPACES)
    routes["GET /team/team-1/space"] = (401, {"err": "Token invalid", "ECODE": "OAUTH_025"})

    with pytest.raises(ClickUpAPIError) as exc:
        asyncio.run(clickup_transport(routes).fetch_lists())

    assert exc.value.status_code == 401
    assert "geçersiz" in exc.value.message


def test_missing_credentials_is_config_error():
    with pytest.raises(ClickUpConfigError):
        asyncio.run(ClickUpClient(api_token="", team_id="team-1").fetch_lists())
    with pytest.raises(ClickUpConfigError):
        asyncio.run(ClickUpClient(api_token="pk_test", team_id="").fetch_lists())


def test_pre_cancelled_token_makes_no_request(clickup_transport):
    seen = []
    client = clickup_transport(TWO_SPACES, seen=seen)

    async def scenario():
        token = CancelToken()
        token.cancel("client disconnected")
        await client.fetch_lists(cancel=token)

    with pytest.raises(OperationAborted):
        asyncio.run(scenario())
    assert seen == []


def test_fetch_tasks_follows_pages_up_to_limit():
    pages = []

    def tasks_page(page):
        start = page * 3
        return {
            "tasks": [
                {"id": f"t{i}", "name": f"Task {i}", "tags": [{"name": "ui"}], "status": {"status": "open"}}
                for i in range(start, start + 3)
            ],
            "last_page": page >= 2,
        }

    def handler(request):
        page = int(request.url.params["page"])
        pages.append(page)
        return httpx.Response(200, json=tasks_page(page))

    client = ClickUpClient(api_token="pk_test", team_id="team-1", transport=httpx.MockTransport(handler))

    tasks = asyncio.run(client.fetch_tasks("L1", TaskFilters(limit=5)))

    assert [t.id for t in tasks] == ["t0", "t1", "t2", "t3", "t4"]
    assert pages == [0, 1]
    assert tasks[0].tags == ["ui"]
    assert tasks[0].status == "open"


def test_fetch_tasks_unknown_list(clickup_transport):
    with pytest.raises(ClickUpAPIError) as exc:
        asyncio.run(clickup_transport({}).fetch_tasks("missing"))
    assert exc.value.status_code == 404


def test_create_task(clickup_transport):
    seen = []
    client = clickup_transport(
        {
            "POST /list/L1/task": {
                "id": "abc123",
                "name": "Login hatası",
                "status": {"status": "to do"},
                "priority": {"id": "2", "priority": "high"},
                "url": "https://app.clickup.com/t/abc123",
            }
        },
        seen=seen,
    )

    created = asyncio.run(client.create_task("L1", {"name": "Login hatası", "priority": 2}))

    assert created.id == "abc123"
    assert created.priority == 2
    assert created.url.endswith("abc123")
    assert seen[0].method == "POST"
