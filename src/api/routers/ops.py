import os
import logging
from fastapi import APIRouter, Depends, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from api import state
from api.dependencies import get_project_store, get_synchronizer
from api.errors import error_response
from classification.project_classifier import infer_project_type_from_name
from storage import db
from storage.project_store import ProjectRepository, StoreError
from sync.project_sync import ProjectSynchronizer

router = APIRouter()
logger = logging.getLogger(__name__)

INFERENCE_SAMPLES = ("App", "Hektas", "Craftolia", "Efor Takip", "Mobile App", "Shop System")


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "environment": os.getenv("APP_ENV", "production"),
        "store_type": state.store_type,
        "clickup_configured": bool(state.clickup and state.clickup.api_token and state.clickup.team_id),
    }

    if state.synchronizer is not None:
        health["projects_cache"] = {
            "state": state.synchronizer.state.value,
            "age_s": state.synchronizer.cache_age_s,
        }

    if state.store_type == "durable":
        try:
            db_health = await db.health_check()
            health["database"] = db_health
            if db_health["status"] != "healthy":
                health["status"] = "degraded"
        except Exception as e:
            health["status"] = "degraded"
            health["database"] = {"status": "error", "error": str(e)}

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@router.post("/api/db/init")
async def init_database(store: ProjectRepository = Depends(get_project_store)):
    """Create the project tables if they are missing."""
    try:
        await store.ensure_schema()
    except StoreError as e:
        logger.error(f"Database initialization failed: {e}")
        return error_response(500, "Veritabanı başlatılamadı", debug=str(e))
    return {"success": True, "message": "Database tables created successfully"}


@router.get("/api/debug/project-types")
async def debug_project_types(
    store: ProjectRepository = Depends(get_project_store),
    synchronizer: ProjectSynchronizer = Depends(get_synchronizer),
) -> dict:
    """Stored projects, recent analyses and keyword inference samples."""
    debug = {"store_type": state.store_type, "cache_state": synchronizer.state.value}

    try:
        projects = await store.get_all()
        debug["projects"] = [p.model_dump(mode="json") for p in projects]
        debug["needing_classification"] = await store.get_projects_needing_classification()
    except StoreError as e:
        debug["projects"] = [f"Error: {e}"]
        debug["needing_classification"] = []

    try:
        analyses = await store.get_recent_analyses(limit=10)
        debug["analyses"] = [a.model_dump(mode="json") for a in analyses]
    except StoreError as e:
        debug["analyses"] = [f"Error: {e}"]

    debug["inferences"] = {name: infer_project_type_from_name(name) for name in INFERENCE_SAMPLES}
    return debug
