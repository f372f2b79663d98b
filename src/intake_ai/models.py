from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Closed vocabulary the classifier may assign to a project.
PROJECT_TYPES: tuple[str, ...] = (
    "E-ticaret",
    "Mobil Uygulama",
    "Web Uygulaması",
    "Kurumsal Website",
    "CRM/ERP",
    "Oyun",
    "API/Backend",
    "Mobil Oyun",
    "E-öğrenme",
    "Fintech",
    "Sağlık",
    "Emlak",
    "Sosyal Medya",
    "İçerik Yönetimi",
    "Lojistik",
)

DEFAULT_PROJECT_TYPE = "Web Uygulaması"
DEFAULT_TECH_STACK: tuple[str, ...] = ("Next.js", "React", "TypeScript")


def build_display_name(space_name: str, list_name: str, folder_name: Optional[str] = None) -> str:
    if folder_name:
        return f"{space_name} / {folder_name} / {list_name}"
    return f"{space_name} / {list_name}"


class Project(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    clickup_list_id: str
    display_name: str = ""
    description: str = ""
    space_name: str = ""
    folder_name: Optional[str] = None

    project_type: str = DEFAULT_PROJECT_TYPE
    tech_stack: List[str] = Field(default_factory=lambda: list(DEFAULT_TECH_STACK))

    last_analyzed: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("project_type", mode="before")
    @classmethod
    def known_project_type(cls, v: Optional[str]) -> str:
        # rows written by older revisions may carry labels outside the vocabulary
        if v not in PROJECT_TYPES:
            return DEFAULT_PROJECT_TYPE
        return v

    @field_validator("tech_stack", mode="before")
    @classmethod
    def tech_stack_not_empty(cls, v: Optional[List[str]]) -> List[str]:
        if not v:
            return list(DEFAULT_TECH_STACK)
        return [str(item) for item in v]

    @classmethod
    def from_list(cls, record: "ListRecord") -> "Project":
        return cls(
            id=record.id,
            name=record.name,
            clickup_list_id=record.id,
            display_name=record.display_name,
            description=record.description,
            space_name=record.space_name,
            folder_name=record.folder_name,
        )


class AnalysisRecord(BaseModel):
    """One completed classification attempt. Never mutated after insert."""

    id: Optional[int] = None
    project_id: str
    analysis_date: datetime
    task_count: int = Field(0, ge=0)
    ai_confidence: float = Field(0.0, ge=0.0, le=1.0)
    project_type_detected: str
    tasks_analyzed: List[Dict[str, Any]] = Field(default_factory=list)


class ListRecord(BaseModel):
    """A ClickUp list flattened out of the space/folder hierarchy."""

    id: str
    name: str
    description: str = ""
    space_id: str
    space_name: str
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None
    display_name: str


class TaskRecord(BaseModel):
    id: str
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    status: Optional[str] = None
    url: Optional[str] = None
    custom_fields: List[Dict[str, str]] = Field(default_factory=list)


class TaskFilters(BaseModel):
    page: int = Field(0, ge=0)
    order_by: str = "created"
    reverse: bool = True
    include_closed: bool = True
    subtasks: bool = False
    limit: int = Field(10, ge=1, le=50)


class TaskSample(BaseModel):
    """Task summary handed to the classifier and kept in the analysis history."""

    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)

    @classmethod
    def from_task(cls, task: TaskRecord, max_description: int = 200, max_tags: int = 5) -> "TaskSample":
        return cls(
            name=task.name,
            description=(task.description or "")[:max_description],
            tags=task.tags[:max_tags],
        )


Priority = Literal["low", "medium", "high", "urgent"]
RequestType = Literal["bug", "feature", "improvement", "question"]


class RequestData(BaseModel):
    text: str = Field(..., min_length=1)
    project_id: str
    clickup_list_id: Optional[str] = None
    priority: Priority = "medium"
    type: RequestType = "feature"

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("text must not be blank")
        return v2


class AnalysisResult(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = ""
    priority: Priority = "medium"
    estimated_time: str = Field("", validation_alias=AliasChoices("estimated_time", "estimatedTime"))
    technical_requirements: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("technical_requirements", "technicalRequirements"),
    )
    acceptance_criteria: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("acceptance_criteria", "acceptanceCriteria"),
    )
    tags: List[str] = Field(default_factory=list)
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(None, validation_alias=AliasChoices("due_date", "dueDate"))


class CreatedTask(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    priority: Optional[int] = None
    status: str = "to do"
    url: Optional[str] = None
