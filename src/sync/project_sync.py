"""
Project list synchronization.

ProjectSynchronizer reconciles the durable project store with the lists of the
ClickUp workspace and serves the merged result from a short-lived in-memory
cache. Each fresh sync schedules a detached background pass that classifies
projects whose type is missing or older than the analysis max age.

State: EMPTY (no cache) -> SYNCING (one sync in flight) -> READY (cache
written). A READY cache older than the TTL is served no more; the next call
syncs again.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from api.metrics import (
    CACHED_PROJECTS,
    CLASSIFICATIONS_TOTAL,
    PROJECT_CACHE_TOTAL,
    PROJECT_SYNCS_TOTAL,
)
from classification.project_classifier import ProjectClassifier
from intake_ai.cancellation import CancelToken, OperationAborted
from intake_ai.models import ListRecord, Project, TaskFilters
from integration.clickup_client import ClickUpClient, ClickUpConfigError
from storage.project_store import ProjectRepository

logger = logging.getLogger(__name__)

PROJECTS_CACHE_TTL_S = float(os.getenv("PROJECTS_CACHE_TTL_S", "300"))
CLASSIFY_BATCH_SIZE = int(os.getenv("CLASSIFY_BATCH_SIZE", "3"))
CLASSIFY_BATCH_DELAY_S = float(os.getenv("CLASSIFY_BATCH_DELAY_S", "2"))
CLASSIFY_SAMPLE_TASKS = 10


class SyncState(str, Enum):
    EMPTY = "empty"
    SYNCING = "syncing"
    READY = "ready"


class BackingSystemUnavailable(Exception):
    """Neither ClickUp, the cache nor the store could provide a project list."""


@dataclass
class CacheEntry:
    projects: List[Project]
    written_at: float


def _copy(projects: Sequence[Project]) -> List[Project]:
    return [p.model_copy(deep=True) for p in projects]


class ProjectSynchronizer:
    def __init__(
        self,
        clickup: ClickUpClient,
        store: ProjectRepository,
        classifier: Optional[ProjectClassifier] = None,
        cache_ttl_s: float = PROJECTS_CACHE_TTL_S,
        batch_size: int = CLASSIFY_BATCH_SIZE,
        batch_delay_s: float = CLASSIFY_BATCH_DELAY_S,
        sample_tasks: int = CLASSIFY_SAMPLE_TASKS,
        classify_in_background: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.clickup = clickup
        self.store = store
        self.classifier = classifier or ProjectClassifier()
        self.cache_ttl_s = cache_ttl_s
        self.batch_size = max(1, batch_size)
        self.batch_delay_s = batch_delay_s
        self.sample_tasks = sample_tasks
        self.classify_in_background = classify_in_background
        self._clock = clock

        self._cache: Optional[CacheEntry] = None
        self._inflight: Optional[asyncio.Task] = None
        self._inflight_generation = 0
        self._generation = 0
        self._classification_task: Optional[asyncio.Task] = None
        self._classification_rerun: Optional[List[Project]] = None
        self._schema_ready = False

    # -- state ---------------------------------------------------------

    @property
    def state(self) -> SyncState:
        if self._inflight is not None and not self._inflight.done():
            return SyncState.SYNCING
        if self._cache is None:
            return SyncState.EMPTY
        return SyncState.READY

    @property
    def cache_age_s(self) -> Optional[float]:
        if self._cache is None:
            return None
        return self._clock() - self._cache.written_at

    def _fresh_cache(self) -> Optional[List[Project]]:
        age = self.cache_age_s
        if age is None or age >= self.cache_ttl_s:
            return None
        return _copy(self._cache.projects)

    def clear_cache(self) -> None:
        """Drop the cached snapshot; the next get_projects() resynchronizes."""
        self._cache = None
        self._generation += 1
        CACHED_PROJECTS.set(0)
        logger.info("Projects cache cleared")

    # -- public --------------------------------------------------------

    async def get_projects(self, cancel: Optional[CancelToken] = None) -> List[Project]:
        """
        Return the merged project list.

        Served from cache while fresh. Otherwise joins the running sync or
        starts one; only one traversal of ClickUp is in flight at a time.
        Raises OperationAborted when `cancel` fires, ClickUpConfigError when
        credentials are missing and BackingSystemUnavailable when nothing at
        all can be served.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        cached = self._fresh_cache()
        if cached is not None:
            PROJECT_CACHE_TOTAL.labels(result="hit").inc()
            return cached

        PROJECT_CACHE_TOTAL.labels(result="miss").inc()

        while True:
            generation = self._generation
            running = self._inflight is not None and not self._inflight.done()
            if running and self._inflight_generation != generation:
                # started before the last clear_cache(); let it finish, then traverse again
                stale = asyncio.wait({self._inflight})
                if cancel is not None:
                    await cancel.run(stale)
                else:
                    await stale
                continue

            started_here = not running
            if started_here:
                self._inflight = asyncio.create_task(self._synchronize(cancel, generation))
                self._inflight_generation = generation

            shared = asyncio.shield(self._inflight)
            try:
                if cancel is not None and not started_here:
                    projects = await cancel.run(shared)
                else:
                    projects = await shared
            except OperationAborted:
                # another caller's token aborted the shared sync; ours is still live
                if not started_here and (cancel is None or not cancel.cancelled):
                    continue
                raise

            return _copy(projects)

    async def wait_for_background(self) -> None:
        """Wait for the running classification pass, if any."""
        task = self._classification_task
        while task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)
            task = self._classification_task

    async def close(self) -> None:
        for task in (self._inflight, self._classification_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    # -- synchronization -----------------------------------------------

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        try:
            await self.store.ensure_schema()
            self._schema_ready = True
        except Exception as e:
            logger.warning(f"Could not ensure project schema, continuing: {e}")

    async def _read_store(self, label: str) -> Optional[List[Project]]:
        try:
            return await self.store.get_all()
        except Exception as e:
            logger.warning(f"Could not read {label} from project store: {e}")
            return None

    async def _merge(self, lists: Sequence[ListRecord]) -> int:
        failures = 0
        for record in lists:
            try:
                await self.store.upsert(Project.from_list(record))
            except Exception as e:
                failures += 1
                logger.warning(f"Could not upsert project {record.id} ({record.display_name}): {e}")
        return failures

    @staticmethod
    def _merge_in_memory(lists: Sequence[ListRecord], prior: Optional[Sequence[Project]]) -> List[Project]:
        """Best-available result when the store cannot be read back after the merge."""
        known: Dict[str, Project] = {p.id: p for p in prior or ()}
        merged: Dict[str, Project] = {}
        for record in lists:
            fresh = Project.from_list(record)
            previous = known.get(record.id)
            if previous is not None:
                fresh = fresh.model_copy(
                    update={
                        "project_type": previous.project_type,
                        "tech_stack": previous.tech_stack,
                        "last_analyzed": previous.last_analyzed,
                        "created_at": previous.created_at,
                    }
                )
            merged[record.id] = fresh
        for project_id, project in known.items():
            merged.setdefault(project_id, project)
        return list(merged.values())

    def _fallback(self, prior: Optional[List[Project]], error: Exception) -> List[Project]:
        if self._cache is not None:
            logger.warning(f"Serving last cached projects after sync failure: {error}")
            PROJECT_SYNCS_TOTAL.labels(outcome="fallback_cache").inc()
            return _copy(self._cache.projects)
        if prior:
            logger.warning(f"Serving stored projects after sync failure: {error}")
            PROJECT_SYNCS_TOTAL.labels(outcome="fallback_store").inc()
            return prior
        PROJECT_SYNCS_TOTAL.labels(outcome="failed").inc()
        raise BackingSystemUnavailable(
            "Projeler yüklenemedi: ClickUp'a ve proje veritabanına ulaşılamıyor."
        ) from error

    async def _synchronize(self, cancel: Optional[CancelToken], generation: int = 0) -> List[Project]:
        started = time.monotonic()
        logger.info("Synchronizing projects with ClickUp")

        await self._ensure_schema()
        prior = await self._read_store("pre-sync snapshot")

        try:
            lists = await self.clickup.fetch_lists(cancel=cancel)
            if cancel is not None:
                cancel.raise_if_cancelled()
        except OperationAborted:
            logger.info("Project sync aborted by caller")
            PROJECT_SYNCS_TOTAL.labels(outcome="aborted").inc()
            raise
        except ClickUpConfigError as e:
            logger.error(f"Project sync impossible: {e}")
            PROJECT_SYNCS_TOTAL.labels(outcome="config_error").inc()
            raise
        except Exception as e:
            logger.error(f"Fetching ClickUp lists failed: {e}")
            return self._fallback(prior, e)

        failures = await self._merge(lists)

        merged = await self._read_store("merged snapshot")
        if merged is None:
            merged = self._merge_in_memory(lists, prior)

        if generation == self._generation:
            self._cache = CacheEntry(projects=_copy(merged), written_at=self._clock())
            CACHED_PROJECTS.set(len(merged))
        else:
            logger.info("Projects cache cleared during sync, not caching its result")
        PROJECT_SYNCS_TOTAL.labels(outcome="ok").inc()
        logger.info(
            f"Synchronized {len(lists)} ClickUp lists into {len(merged)} projects "
            f"({failures} upsert failures) in {time.monotonic() - started:.2f}s"
        )

        self._schedule_classification(merged)
        return merged

    # -- background classification -------------------------------------

    def _schedule_classification(self, projects: Sequence[Project]) -> None:
        if not self.classify_in_background or not projects:
            return
        if self._classification_task is not None and not self._classification_task.done():
            logger.info("Classification pass already running, queueing one more")
            self._classification_rerun = _copy(projects)
            return

        self._classification_rerun = None
        task = asyncio.create_task(self._classification_pass(_copy(projects)))
        task.add_done_callback(self._on_classification_done)
        self._classification_task = task

    def _on_classification_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Classification pass crashed: {error!r}")

        rerun, self._classification_rerun = self._classification_rerun, None
        if rerun:
            self._schedule_classification(rerun)

    async def _classification_pass(self, projects: List[Project]) -> None:
        pending: List[Project] = []
        for project in projects:
            try:
                if await self.store.needs_classification(project.id):
                    pending.append(project)
            except Exception as e:
                logger.warning(f"Could not check classification state of {project.id}: {e}")

        if not pending:
            logger.debug("No projects need classification")
            return

        batches = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        logger.info(f"Classifying {len(pending)} projects in {len(batches)} batches")

        for index, batch in enumerate(batches):
            if index > 0:
                await asyncio.sleep(self.batch_delay_s)
            await asyncio.gather(*(self._classify_one(project) for project in batch))

        logger.info(f"Classification pass finished for {len(pending)} projects")

    async def _classify_one(self, project: Project) -> None:
        try:
            tasks = await self.clickup.fetch_tasks(
                project.clickup_list_id,
                TaskFilters(limit=self.sample_tasks),
            )
            result = await self.classifier.classify(project.name, tasks)
            record = await self.store.mark_classified(
                project.id,
                result.category,
                task_count=len(result.samples),
                confidence=result.confidence,
                samples=result.samples,
            )
        except Exception as e:
            logger.warning(f"Background classification failed for {project.id} ({project.name}): {e}")
            return

        CLASSIFICATIONS_TOTAL.labels(source=result.source).inc()
        self.patch_cached_project(project.id, result.category, record.analysis_date)

    def patch_cached_project(self, project_id: str, category: str, analyzed_at) -> None:
        """Reflect a new classification in the cached snapshot without resyncing."""
        if self._cache is None:
            return
        self._cache.projects = [
            p.model_copy(update={"project_type": category, "last_analyzed": analyzed_at})
            if p.id == project_id
            else p
            for p in self._cache.projects
        ]
