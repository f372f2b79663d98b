import pytest
from intake_ai.models import AnalysisRecord, AnalysisResult, Project, RequestData, TaskFilters

def test_request_blank_text():
    with pytest.raises(Exception):
        RequestData(text="   ", project_id="L1")

def test_request_unknown_priority():
    with pytest.raises(Exception):
        RequestData(text="Sepet bozuk", project_id="L1", priority="asap")

def test_project_empty_id():
    with pytest.raises(Exception):
        Project(id="", name="X", clickup_list_id="L1")

def test_task_filters_limit_bounds():
    with pytest.raises(Exception):
        TaskFilters(limit=0)
    with pytest.raises(Exception):
        TaskFilters(limit=51)

def test_analysis_record_confidence_bounds():
    with pytest.raises(Exception):
        AnalysisRecord(
            project_id="L1",
            analysis_date="2025-01-01T00:00:00+00:00",
            ai_confidence=1.5,
            project_type_detected="Oyun",
        )

def test_analysis_result_empty_title():
    with pytest.raises(Exception):
        AnalysisResult(title="")
