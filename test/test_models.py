from intake_ai.models import (
    DEFAULT_PROJECT_TYPE,
    DEFAULT_TECH_STACK,
    AnalysisResult,
    Project,
    TaskRecord,
    TaskSample,
    build_display_name,
)
from conftest import make_list

def test_display_name_with_and_without_folder():
    assert build_display_name("Client A", "Website") == "Client A / Website"
    assert build_display_name("Client A", "Mobile App", "Phase 2") == "Client A / Phase 2 / Mobile App"

def test_project_defaults():
    p = Project(id="L1", name="Website", clickup_list_id="L1")
    assert p.project_type == DEFAULT_PROJECT_TYPE
    assert p.tech_stack == list(DEFAULT_TECH_STACK)
    assert p.last_analyzed is None

def test_project_from_list():
    p = Project.from_list(make_list("L2", "Mobile App", folder="Phase 2"))
    assert p.id == "L2"
    assert p.clickup_list_id == "L2"
    assert p.display_name == "Client A / Phase 2 / Mobile App"
    assert p.folder_name == "Phase 2"

def test_project_coerces_unknown_type_and_empty_stack():
    p = Project(id="L1", name="X", clickup_list_id="L1", project_type="Spaceship", tech_stack=[])
    assert p.project_type == DEFAULT_PROJECT_TYPE
    assert p.tech_stack

def test_task_sample_truncates():
    task = TaskRecord(id="t1", name="Ödeme", description="x" * 500, tags=[str(i) for i in range(8)])
    sample = TaskSample.from_task(task)
    assert len(sample.description) == 200
    assert len(sample.tags) == 5

def test_analysis_result_accepts_camel_case():
    a = AnalysisResult.model_validate({
        "title": "Login",
        "estimatedTime": "3 saat",
        "technicalRequirements": ["JWT"],
        "acceptanceCriteria": ["Giriş yapılabilmeli"],
        "dueDate": "2025-03-01",
    })
    assert a.estimated_time == "3 saat"
    assert a.technical_requirements == ["JWT"]
    assert a.acceptance_criteria == ["Giriş yapılabilmeli"]
    assert a.due_date == "2025-03-01"
    assert a.priority == "medium"
