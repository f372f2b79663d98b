import json

import pytest
from fastapi.testclient import TestClient

from api import main, rate_limit, state
from api.rate_limit import FixedWindowLimiter
from classification.project_classifier import ProjectClassifier
from conftest import FakeClickUp, FakeProvider, make_list
from extraction.request_analyzer import RequestAnalyzer
from intake_ai.cancellation import OperationAborted
from intake_ai.models import TaskRecord
from integration.clickup_client import ClickUpAPIError, ClickUpConfigError
from llm.llm_client import LLMClient
from storage.project_store import InMemoryProjectStore
from sync.project_sync import ProjectSynchronizer

ANALYSIS = {
    "title": "Mobil sepete ekleme hatası",
    "description": "Mobil tarayıcılarda buton tepki vermiyor.",
    "category": "Frontend",
    "priority": "high",
    "estimatedTime": "1-2 gün",
    "technicalRequirements": ["Touch event düzelt"],
    "acceptanceCriteria": ["Mobilde ürün sepete eklenebilmeli"],
    "tags": ["bug"],
}

PROJECT = {"id": "L1", "name": "Shop", "clickup_list_id": "L1", "display_name": "Client A / Shop"}


class Api:
    def __init__(self, client, clickup, store, synchronizer):
        self.client = client
        self.clickup = clickup
        self.store = store
        self.synchronizer = synchronizer


@pytest.fixture
def api(monkeypatch):
    clickup = FakeClickUp(
        lists=[make_list("L1", "Shop"), make_list("L2", "Mobile App", space="Client B")],
        tasks={"L1": [TaskRecord(id="t1", name="Sepet sayfası")]},
    )
    store = InMemoryProjectStore()
    classifier = ProjectClassifier(llm_client=LLMClient(provider=FakeProvider("E-ticaret")))
    analyzer = RequestAnalyzer(llm_client=LLMClient(provider=FakeProvider(json.dumps(ANALYSIS, ensure_ascii=False))))
    synchronizer = ProjectSynchronizer(clickup, store, classifier, classify_in_background=False)

    monkeypatch.setattr(state, "clickup", clickup)
    monkeypatch.setattr(state, "store", store)
    monkeypatch.setattr(state, "classifier", classifier)
    monkeypatch.setattr(state, "analyzer", analyzer)
    monkeypatch.setattr(state, "synchronizer", synchronizer)
    monkeypatch.setattr(state, "store_type", "in-memory")
    for limiter in rate_limit.limiters.values():
        limiter.reset()

    return Api(TestClient(main.app), clickup, store, synchronizer)


def test_list_projects_envelope(api):
    r = api.client.get("/api/projects")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert {p["id"] for p in body["data"]} == {"L1", "L2"}
    assert r.headers["X-RateLimit-Limit"] == str(rate_limit.RATE_LIMIT_GENERAL)


def test_projects_are_cached_until_refresh(api):
    api.client.get("/api/projects")
    api.client.get("/api/projects")
    assert api.clickup.fetch_lists_calls == 1

    r = api.client.post("/api/projects/refresh")
    assert r.status_code == 200
    assert r.json()["message"] == "Cache cleared successfully"

    api.client.get("/api/projects")
    assert api.clickup.fetch_lists_calls == 2


def test_wrong_method_is_405(api):
    r = api.client.post("/api/projects")
    assert r.status_code == 405
    assert r.json() == {"error": "Method not allowed"}

    assert api.client.get("/api/projects/refresh").status_code == 405


def test_projects_unavailable_is_503(api):
    api.clickup.fail_lists = ClickUpAPIError("ClickUp'a ulaşılamıyor.", status_code=502)

    r = api.client.get("/api/projects")

    assert r.status_code == 503
    assert "error" in r.json()


def test_missing_credentials_is_500(api):
    api.clickup.fail_lists = ClickUpConfigError("ClickUp API token veya Team ID eksik.")

    r = api.client.get("/api/projects")

    assert r.status_code == 500
    assert r.json()["error"] == "ClickUp API token veya Team ID eksik."


def test_aborted_request_is_409(api, monkeypatch):
    class AbortingSynchronizer:
        async def get_projects(self, cancel=None):
            raise OperationAborted("client disconnected")

    monkeypatch.setattr(state, "synchronizer", AbortingSynchronizer())

    r = api.client.get("/api/projects")

    assert r.status_code == 409
    assert r.json() == {"error": "İstek iptal edildi."}


def test_not_ready_is_503(api, monkeypatch):
    monkeypatch.setattr(state, "synchronizer", None)

    r = api.client.get("/api/projects")

    assert r.status_code == 503
    assert r.json()["error"].startswith("Servis henüz hazır değil")


def test_analyze_requires_fields(api):
    r = api.client.post("/api/analyze", json={"project": PROJECT})

    assert r.status_code == 400
    assert r.json()["error"].startswith("Eksik veya geçersiz alan")


def test_analyze_returns_analysis(api):
    r = api.client.post(
        "/api/analyze",
        json={"request": {"text": "Sepete ekle çalışmıyor", "project_id": "L1", "type": "bug"}, "project": PROJECT},
    )

    assert r.status_code == 200
    data = r.json()["data"]
    assert data["title"] == "Mobil sepete ekleme hatası"
    assert data["estimated_time"] == "1-2 gün"


def test_refine_rejects_blank_feedback(api):
    r = api.client.post("/api/refine", json={"analysis": ANALYSIS, "feedback": "   ", "project": PROJECT})
    assert r.status_code == 400


def test_refine_returns_analysis(api):
    r = api.client.post("/api/refine", json={"analysis": ANALYSIS, "feedback": "Daha kısa yaz", "project": PROJECT})

    assert r.status_code == 200
    assert r.json()["data"]["priority"] == "high"


def test_analyze_project_type_uses_model(api):
    r = api.client.post(
        "/api/analyze-project-type",
        json={"project_name": "Hektas", "tasks": [{"name": "Ödeme entegrasyonu"}, {"name": "Sepet"}]},
    )

    assert r.status_code == 200
    assert r.json() == {
        "project_type": "E-ticaret",
        "project_name": "Hektas",
        "tasks_analyzed": 2,
        "confidence": 0.8,
        "source": "model",
    }


def test_analyze_project_type_without_tasks_uses_keywords(api):
    r = api.client.post("/api/analyze-project-type", json={"project_name": "Mobile App", "tasks": []})

    body = r.json()
    assert body["project_type"] == "Mobil Uygulama"
    assert body["confidence"] == 0.5
    assert body["source"] == "keywords"


def test_ai_bucket_is_rate_limited(api, monkeypatch):
    monkeypatch.setitem(rate_limit.limiters, "ai", FixedWindowLimiter(limit=1))
    payload = {"project_name": "Shop", "tasks": []}

    assert api.client.post("/api/analyze-project-type", json=payload).status_code == 200
    r = api.client.post("/api/analyze-project-type", json=payload)

    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
    assert r.json()["retry_after"] >= 1
    assert r.headers["X-RateLimit-Remaining"] == "0"


def test_type_override(api):
    api.client.get("/api/projects")

    r = api.client.post("/api/projects/L2/type", json={"project_type": "Oyun"})

    assert r.status_code == 200
    body = r.json()
    assert body["data"]["project_type"] == "Oyun"
    assert body["analysis"]["ai_confidence"] == 1.0

    listed = {p["id"]: p for p in api.client.get("/api/projects").json()["data"]}
    assert listed["L2"]["project_type"] == "Oyun"
    assert api.clickup.fetch_lists_calls == 1


def test_type_override_rejects_unknown_type(api):
    r = api.client.post("/api/projects/L1/type", json={"project_type": "Uzay Gemisi"})
    assert r.status_code == 400


def test_type_override_unknown_project_is_404(api):
    r = api.client.post("/api/projects/nope/type", json={"project_type": "Oyun"})

    assert r.status_code == 404
    assert r.json() == {"error": "Proje bulunamadı"}


def test_clickup_lists(api):
    r = api.client.get("/api/clickup/lists")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert body["team_id"] == "team-1"
    assert body["data"][1]["display_name"] == "Client B / Mobile App"


def test_clickup_tasks(api):
    assert api.client.get("/api/clickup/tasks").status_code == 400

    r = api.client.get("/api/clickup/tasks", params={"list_id": "L1", "limit": 5})

    assert r.status_code == 200
    assert r.json()["data"][0]["name"] == "Sepet sayfası"
    assert r.json()["list_id"] == "L1"


def test_clickup_upstream_error_is_500(api):
    api.clickup.failing_task_lists.add("L9")

    r = api.client.get("/api/clickup/tasks", params={"list_id": "L9"})

    assert r.status_code == 500
    assert r.json()["error"] == "Liste bulunamadı."


def test_clickup_workspaces(api):
    r = api.client.get("/api/clickup/workspaces")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert [space["name"] for space in body["data"]] == ["Client A", "Client B"]
    assert body["team_id"] == "team-1"


def test_workspace_tasks_groups_active_tasks_per_list(api):
    api.clickup.tasks = {
        "L1": [
            TaskRecord(id="t1", name="Sepet sayfası", status="in progress"),
            TaskRecord(id="t2", name="Kupon", status="to do"),
        ],
        "L2": [TaskRecord(id="t3", name="Push bildirimi", status="Open")],
    }

    r = api.client.get("/api/clickup/workspace-tasks")

    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["task_count"] == 1
    group = body["data"][0]
    assert group["display_name"] == "Client A / Shop"
    assert [task["id"] for task in group["tasks"]] == ["t1"]

    everything = api.client.get("/api/clickup/workspace-tasks", params={"active_only": "false"}).json()
    assert everything["count"] == 2
    assert everything["task_count"] == 3


def test_workspace_tasks_skips_failing_list(api):
    api.clickup.tasks = {"L2": [TaskRecord(id="t3", name="Push bildirimi", status="doing")]}
    api.clickup.failing_task_lists.add("L1")

    r = api.client.get("/api/clickup/workspace-tasks")

    assert r.status_code == 200
    assert [group["list_id"] for group in r.json()["data"]] == ["L2"]
    assert sorted(api.clickup.fetch_tasks_calls) == ["L1", "L2"]


def test_create_task(api):
    r = api.client.post(
        "/api/clickup/create-task",
        json={"analysis": ANALYSIS, "project": {"id": "L1", "name": "Shop"}},
    )

    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Mobil sepete ekleme hatası"
    list_id, payload = api.clickup.created[0]
    assert list_id == "L1"
    assert payload["priority"] == 2


def test_debug_project_types(api):
    api.client.get("/api/projects")

    body = api.client.get("/api/debug/project-types").json()

    assert len(body["projects"]) == 2
    assert set(body["needing_classification"]) == {"L1", "L2"}
    assert body["inferences"]["App"] == "Mobil Uygulama"
    assert body["inferences"]["Hektas"] == "Web Uygulaması"


def test_db_init(api):
    r = api.client.post("/api/db/init")
    assert r.json() == {"success": True, "message": "Database tables created successfully"}


def test_health(api):
    api.client.get("/api/projects")

    body = api.client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["store_type"] == "in-memory"
    assert body["clickup_configured"] is True
    assert body["projects_cache"]["state"] == "ready"
