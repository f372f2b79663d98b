"""
Response schemas for the ClickUp API v2 endpoints consumed by ClickUpClient.

Only the fields the service reads are declared; everything else in the
payloads is ignored.
"""

from __future__ import annotations

from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field

# ClickUp is inconsistent about numeric vs string identifiers.
ClickUpId = Annotated[str, BeforeValidator(lambda v: str(v) if v is not None else v)]


class Ref(BaseModel):
    id: ClickUpId
    name: str = ""


class SpaceOut(BaseModel):
    id: ClickUpId
    name: str
    private: bool = False
    archived: bool = False


class SpacesResponse(BaseModel):
    spaces: List[SpaceOut] = Field(default_factory=list)


class FolderOut(BaseModel):
    id: ClickUpId
    name: str
    hidden: bool = False
    archived: bool = False


class FoldersResponse(BaseModel):
    folders: List[FolderOut] = Field(default_factory=list)


class ListOut(BaseModel):
    id: ClickUpId
    name: str
    content: Optional[str] = None
    archived: bool = False
    space: Optional[Ref] = None
    folder: Optional[Ref] = None


class ListsResponse(BaseModel):
    lists: List[ListOut] = Field(default_factory=list)


class StatusOut(BaseModel):
    status: str = ""


class TagOut(BaseModel):
    name: str


class CustomFieldOut(BaseModel):
    id: Optional[ClickUpId] = None
    name: str = ""
    value: Any = None


class TaskOut(BaseModel):
    id: ClickUpId
    name: str
    description: Optional[str] = None
    text_content: Optional[str] = None
    status: Optional[StatusOut] = None
    tags: List[TagOut] = Field(default_factory=list)
    url: Optional[str] = None
    custom_fields: List[CustomFieldOut] = Field(default_factory=list)


class TasksResponse(BaseModel):
    tasks: List[TaskOut] = Field(default_factory=list)
    last_page: bool = True


class PriorityOut(BaseModel):
    id: Optional[ClickUpId] = None
    priority: Optional[str] = None


class CreatedTaskOut(BaseModel):
    id: ClickUpId
    name: str
    description: Optional[str] = None
    status: Optional[StatusOut] = None
    priority: Optional[PriorityOut] = None
    url: Optional[str] = None


class ErrorOut(BaseModel):
    err: Optional[str] = None
    ECODE: Optional[str] = None
