"""
Durable project registry.

Keeps one row per known ClickUp list (the service's "project") plus an
append-only history of classification attempts. Two implementations share the
ProjectRepository contract:

- ProjectStore: PostgreSQL via the asyncpg pool in storage.db
- InMemoryProjectStore: process-local, used when the durable store is disabled
  or the database is unreachable at startup
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from intake_ai.models import (
    DEFAULT_PROJECT_TYPE,
    DEFAULT_TECH_STACK,
    AnalysisRecord,
    Project,
    TaskSample,
)
from storage import db
from storage.db import StoreError

logger = logging.getLogger(__name__)

ANALYSIS_MAX_AGE = timedelta(days=float(os.getenv("ANALYSIS_MAX_AGE_DAYS", "7")))
ANALYSIS_HISTORY_KEEP = int(os.getenv("ANALYSIS_HISTORY_KEEP", "10"))


class ProjectNotFound(StoreError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(
    last_analyzed: Optional[datetime],
    now: Optional[datetime] = None,
    max_age: timedelta = ANALYSIS_MAX_AGE,
) -> bool:
    """True when a project was never classified or its classification is older than max_age."""
    if last_analyzed is None:
        return True
    now = now or utcnow()
    return _aware(last_analyzed) < now - max_age


def _samples_to_json(samples: Sequence[Any]) -> List[Dict[str, Any]]:
    out = []
    for sample in samples:
        if isinstance(sample, TaskSample):
            out.append(sample.model_dump())
        elif isinstance(sample, dict):
            out.append(dict(sample))
        else:
            out.append({"name": str(sample)})
    return out


class ProjectRepository(Protocol):
    async def ensure_schema(self) -> None: ...

    async def upsert(self, project: Project) -> None: ...

    async def get_all(self) -> List[Project]: ...

    async def get_by_id(self, project_id: str) -> Optional[Project]: ...

    async def mark_classified(
        self,
        project_id: str,
        category: str,
        task_count: int = 0,
        confidence: float = 0.8,
        samples: Sequence[Any] = (),
        analyzed_at: Optional[datetime] = None,
    ) -> AnalysisRecord: ...

    async def needs_classification(self, project_id: str) -> bool: ...

    async def get_projects_needing_classification(self) -> List[str]: ...

    async def prune_analysis_history(self, keep: int = ANALYSIS_HISTORY_KEEP) -> int: ...

    async def get_recent_analyses(self, limit: int = 10, project_id: Optional[str] = None) -> List[AnalysisRecord]: ...


def _project_from_record(record) -> Project:
    try:
        tech_stack = json.loads(record["tech_stack"]) if record["tech_stack"] else None
    except (TypeError, ValueError):
        tech_stack = None

    return Project(
        id=record["id"],
        name=record["name"],
        clickup_list_id=record["clickup_list_id"],
        display_name=record["display_name"],
        description=record["description"] or "",
        space_name=record["space_name"],
        folder_name=record["folder_name"],
        project_type=record["project_type"] or DEFAULT_PROJECT_TYPE,
        tech_stack=tech_stack or list(DEFAULT_TECH_STACK),
        last_analyzed=_aware(record["last_analyzed"]),
        created_at=_aware(record["created_at"]),
        updated_at=_aware(record["updated_at"]),
    )


def _analysis_from_record(record) -> AnalysisRecord:
    try:
        tasks = json.loads(record["tasks_analyzed"]) if record["tasks_analyzed"] else []
    except (TypeError, ValueError):
        tasks = []

    return AnalysisRecord(
        id=record["id"],
        project_id=record["project_id"],
        analysis_date=_aware(record["analysis_date"]),
        task_count=record["task_count"] or 0,
        ai_confidence=float(record["ai_confidence"] or 0.0),
        project_type_detected=record["project_type_detected"],
        tasks_analyzed=tasks if isinstance(tasks, list) else [],
    )


class ProjectStore:
    """PostgreSQL-backed project registry (requires storage.db.init_db_pool())."""

    async def ensure_schema(self) -> None:
        await db.apply_schema()

    async def upsert(self, project: Project) -> None:
        """
        Insert a project or refresh its descriptive fields.

        project_type, tech_stack and last_analyzed are only written on insert;
        classification owns them afterwards.
        """
        query = """
            INSERT INTO projects (
                id, name, clickup_list_id, project_type, tech_stack,
                space_name, folder_name, display_name, description, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, CURRENT_TIMESTAMP)
            ON CONFLICT (id)
            DO UPDATE SET
                name = EXCLUDED.name,
                clickup_list_id = EXCLUDED.clickup_list_id,
                space_name = EXCLUDED.space_name,
                folder_name = EXCLUDED.folder_name,
                display_name = EXCLUDED.display_name,
                description = EXCLUDED.description,
                updated_at = CURRENT_TIMESTAMP
        """
        await db.execute(
            query,
            project.id,
            project.name,
            project.clickup_list_id,
            project.project_type,
            json.dumps(project.tech_stack, ensure_ascii=False),
            project.space_name,
            project.folder_name,
            project.display_name or project.name,
            project.description,
            action=f"upsert project {project.id}",
        )

    async def get_all(self) -> List[Project]:
        records = await db.fetch("SELECT * FROM projects ORDER BY updated_at DESC", action="list projects")
        return [_project_from_record(r) for r in records]

    async def get_by_id(self, project_id: str) -> Optional[Project]:
        record = await db.fetchrow(
            "SELECT * FROM projects WHERE id = $1 LIMIT 1",
            project_id,
            action=f"get project {project_id}",
        )
        return _project_from_record(record) if record is not None else None

    async def mark_classified(
        self,
        project_id: str,
        category: str,
        task_count: int = 0,
        confidence: float = 0.8,
        samples: Sequence[Any] = (),
        analyzed_at: Optional[datetime] = None,
    ) -> AnalysisRecord:
        """Set the project type and append one analysis record, atomically."""
        analyzed_at = analyzed_at or utcnow()
        tasks_json = json.dumps(_samples_to_json(samples), ensure_ascii=False)

        async with db.transaction(f"mark project {project_id} classified") as conn:
            updated = await conn.fetchval(
                """
                UPDATE projects
                SET project_type = $2,
                    last_analyzed = $3,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING id
                """,
                project_id,
                category,
                analyzed_at,
            )
            if updated is None:
                raise ProjectNotFound(f"project {project_id} not found")

            record = await conn.fetchrow(
                """
                INSERT INTO project_analyses (
                    project_id, analysis_date, task_count, ai_confidence,
                    project_type_detected, tasks_analyzed
                )
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                project_id,
                analyzed_at,
                task_count,
                confidence,
                category,
                tasks_json,
            )

        logger.info(f"Project {project_id} classified as {category} (confidence {confidence:.2f})")
        return _analysis_from_record(record)

    async def needs_classification(self, project_id: str) -> bool:
        try:
            last_analyzed = await db.fetchval(
                "SELECT last_analyzed FROM projects WHERE id = $1 LIMIT 1",
                project_id,
                action=f"read last_analyzed of {project_id}",
            )
        except StoreError as e:
            logger.warning(f"{e}; assuming stale")
            return True
        return is_stale(last_analyzed)

    async def get_projects_needing_classification(self) -> List[str]:
        records = await db.fetch(
            "SELECT id FROM projects WHERE last_analyzed IS NULL OR last_analyzed < $1",
            utcnow() - ANALYSIS_MAX_AGE,
            action="list stale projects",
        )
        return [r["id"] for r in records]

    async def prune_analysis_history(self, keep: int = ANALYSIS_HISTORY_KEEP) -> int:
        """Keep only the `keep` most recent analysis records per project."""
        query = """
            DELETE FROM project_analyses
            WHERE id IN (
                SELECT id FROM (
                    SELECT id, ROW_NUMBER() OVER (
                        PARTITION BY project_id ORDER BY analysis_date DESC, id DESC
                    ) AS rn
                    FROM project_analyses
                ) ranked
                WHERE rn > $1
            )
        """
        status = await db.execute(query, keep, action="prune analysis history")

        count = db.affected_rows(status)
        if count > 0:
            logger.info(f"Pruned {count} old analysis records")
        return count

    async def get_recent_analyses(self, limit: int = 10, project_id: Optional[str] = None) -> List[AnalysisRecord]:
        if project_id:
            records = await db.fetch(
                """
                SELECT * FROM project_analyses
                WHERE project_id = $1
                ORDER BY analysis_date DESC
                LIMIT $2
                """,
                project_id,
                limit,
                action="list analyses",
            )
        else:
            records = await db.fetch(
                "SELECT * FROM project_analyses ORDER BY analysis_date DESC LIMIT $1",
                limit,
                action="list analyses",
            )
        return [_analysis_from_record(r) for r in records]


class InMemoryProjectStore:
    """Process-local registry with the same contract as ProjectStore."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._projects: Dict[str, Project] = {}
        self._touched: Dict[str, int] = {}
        self._analyses: List[AnalysisRecord] = []
        self._seq = 0
        self._analysis_seq = 0

    def _touch(self, project_id: str) -> None:
        self._seq += 1
        self._touched[project_id] = self._seq

    async def ensure_schema(self) -> None:
        return None

    async def upsert(self, project: Project) -> None:
        now = self._clock()
        existing = self._projects.get(project.id)
        if existing is None:
            stored = project.model_copy(update={"created_at": now, "updated_at": now})
        else:
            stored = existing.model_copy(
                update={
                    "name": project.name,
                    "clickup_list_id": project.clickup_list_id,
                    "space_name": project.space_name,
                    "folder_name": project.folder_name,
                    "display_name": project.display_name or project.name,
                    "description": project.description,
                    "updated_at": now,
                }
            )
        self._projects[project.id] = stored
        self._touch(project.id)

    async def get_all(self) -> List[Project]:
        ordered = sorted(
            self._projects.values(),
            key=lambda p: self._touched.get(p.id, 0),
            reverse=True,
        )
        return [p.model_copy(deep=True) for p in ordered]

    async def get_by_id(self, project_id: str) -> Optional[Project]:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project is not None else None

    async def mark_classified(
        self,
        project_id: str,
        category: str,
        task_count: int = 0,
        confidence: float = 0.8,
        samples: Sequence[Any] = (),
        analyzed_at: Optional[datetime] = None,
    ) -> AnalysisRecord:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFound(f"project {project_id} not found")

        analyzed_at = analyzed_at or self._clock()
        self._projects[project_id] = project.model_copy(
            update={"project_type": category, "last_analyzed": analyzed_at, "updated_at": self._clock()}
        )
        self._touch(project_id)

        self._analysis_seq += 1
        record = AnalysisRecord(
            id=self._analysis_seq,
            project_id=project_id,
            analysis_date=analyzed_at,
            task_count=task_count,
            ai_confidence=confidence,
            project_type_detected=category,
            tasks_analyzed=_samples_to_json(samples),
        )
        self._analyses.append(record)
        return record

    async def needs_classification(self, project_id: str) -> bool:
        project = self._projects.get(project_id)
        if project is None:
            return True
        return is_stale(project.last_analyzed, now=self._clock())

    async def get_projects_needing_classification(self) -> List[str]:
        now = self._clock()
        return [p.id for p in self._projects.values() if is_stale(p.last_analyzed, now=now)]

    async def prune_analysis_history(self, keep: int = ANALYSIS_HISTORY_KEEP) -> int:
        by_project: Dict[str, List[AnalysisRecord]] = {}
        for record in self._analyses:
            by_project.setdefault(record.project_id, []).append(record)

        kept: List[AnalysisRecord] = []
        for records in by_project.values():
            records.sort(key=lambda r: (r.analysis_date, r.id or 0), reverse=True)
            kept.extend(records[:keep])

        removed = len(self._analyses) - len(kept)
        kept.sort(key=lambda r: r.id or 0)
        self._analyses = kept
        return removed

    async def get_recent_analyses(self, limit: int = 10, project_id: Optional[str] = None) -> List[AnalysisRecord]:
        records = [r for r in self._analyses if project_id is None or r.project_id == project_id]
        records.sort(key=lambda r: (r.analysis_date, r.id or 0), reverse=True)
        return records[:limit]
