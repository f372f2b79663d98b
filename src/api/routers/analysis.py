import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from api.dependencies import get_analyzer, get_classifier
from api.rate_limit import rate_limit
from classification.project_classifier import ProjectClassifier
from extraction.request_analyzer import RequestAnalyzer
from intake_ai.models import AnalysisResult, Project, RequestData, TaskRecord

router = APIRouter(prefix="/api", dependencies=[Depends(rate_limit("ai"))])
logger = logging.getLogger(__name__)


class AnalyzeIn(BaseModel):
    request: RequestData
    project: Project


class RefineIn(BaseModel):
    analysis: AnalysisResult
    feedback: str = Field(..., min_length=1)
    project: Project

    @field_validator("feedback")
    @classmethod
    def feedback_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("feedback must not be blank")
        return v2


class ProjectTaskIn(BaseModel):
    id: str = ""
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)


class ProjectTypeQueryIn(BaseModel):
    project_name: str = Field(..., min_length=1)
    tasks: List[ProjectTaskIn]


@router.post("/analyze")
async def analyze_request(
    payload: AnalyzeIn,
    analyzer: RequestAnalyzer = Depends(get_analyzer),
) -> dict:
    logger.info(f"Analyzing {payload.request.type} request for project {payload.project.id}")
    # providers use blocking HTTP
    result = await asyncio.to_thread(analyzer.analyze, payload.request, payload.project)
    return {"data": result.model_dump()}


@router.post("/refine")
async def refine_analysis(
    payload: RefineIn,
    analyzer: RequestAnalyzer = Depends(get_analyzer),
) -> dict:
    logger.info(f"Refining analysis '{payload.analysis.title}' for project {payload.project.id}")
    result = await asyncio.to_thread(analyzer.refine, payload.analysis, payload.feedback, payload.project)
    return {"data": result.model_dump()}


@router.post("/analyze-project-type")
async def analyze_project_type(
    payload: ProjectTypeQueryIn,
    classifier: ProjectClassifier = Depends(get_classifier),
) -> dict:
    """Classify an arbitrary project from its name and sample tasks. Nothing is stored."""
    tasks = [TaskRecord(**task.model_dump()) for task in payload.tasks]
    result = await classifier.classify(payload.project_name, tasks)
    return {
        "project_type": result.category,
        "project_name": payload.project_name,
        "tasks_analyzed": len(result.samples),
        "confidence": result.confidence,
        "source": result.source,
    }
