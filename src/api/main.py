import asyncio
import logging
import os
import time

from fastapi import FastAPI, Request
from starlette.routing import Match

from api import state
from api.errors import register_exception_handlers
from api.metrics import REQUESTS_TOTAL, REQUEST_LATENCY_SECONDS
from api.routers import analysis, clickup, ops, projects
from api.workers import _maintenance_worker
from classification.project_classifier import ProjectClassifier
from extraction.request_analyzer import RequestAnalyzer
from integration.clickup_client import ClickUpClient
from llm.llm_client import LLMClient
from storage import db
from storage.project_store import InMemoryProjectStore, ProjectStore
from sync.project_sync import ProjectSynchronizer

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Config
USE_DURABLE_STORE = os.getenv("USE_DURABLE_STORE", "true").lower() in {
    "1",
    "true",
    "yes",
}

app = FastAPI(title="Intake AI")

app.include_router(projects.router)
app.include_router(clickup.router)
app.include_router(analysis.router)
app.include_router(ops.router)

register_exception_handlers(app)


def _endpoint_label(request: Request) -> str:
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match != Match.NONE:
            return route.path
    return "unmatched"


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = _endpoint_label(request)
    REQUESTS_TOTAL.labels(endpoint=endpoint, status=str(response.status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(endpoint=endpoint).observe(time.time() - start)
    return response


async def _init_store():
    if not USE_DURABLE_STORE:
        logger.info("Durable store disabled, using in-memory project store")
        return InMemoryProjectStore(), "in-memory"

    try:
        await db.init_db_pool()
        store = ProjectStore()
        await store.ensure_schema()
        logger.info("Durable project store initialized")
        return store, "durable"
    except Exception as e:
        logger.error(f"Failed to initialize durable store, falling back to in-memory: {e}")
        await db.close_db_pool()
        return InMemoryProjectStore(), "in-memory"


@app.on_event("startup")
async def startup() -> None:
    state.store, state.store_type = await _init_store()

    llm = LLMClient()
    state.clickup = ClickUpClient()
    state.classifier = ProjectClassifier(llm_client=llm)
    state.analyzer = RequestAnalyzer(llm_client=llm)
    state.synchronizer = ProjectSynchronizer(state.clickup, state.store, state.classifier)

    if not state.clickup.api_token or not state.clickup.team_id:
        logger.warning("CLICKUP_API_TOKEN / CLICKUP_TEAM_ID not set; project sync will fail")

    state.workers.append(asyncio.create_task(_maintenance_worker()))
    logger.info(f"Intake API started (store: {state.store_type})")


@app.on_event("shutdown")
async def shutdown() -> None:
    for task in state.workers:
        task.cancel()
    await asyncio.gather(*state.workers, return_exceptions=True)
    state.workers.clear()

    if state.synchronizer is not None:
        await state.synchronizer.close()

    await db.close_db_pool()
    logger.info("Intake API stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
