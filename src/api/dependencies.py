from fastapi import HTTPException

from api import state
from classification.project_classifier import ProjectClassifier
from extraction.request_analyzer import RequestAnalyzer
from integration.clickup_client import ClickUpClient
from storage.project_store import ProjectRepository
from sync.project_sync import ProjectSynchronizer

NOT_READY = "Servis henüz hazır değil. Lütfen birazdan tekrar deneyin."


def _require(component):
    if component is None:
        raise HTTPException(status_code=503, detail=NOT_READY)
    return component


def get_clickup_client() -> ClickUpClient:
    return _require(state.clickup)


def get_project_store() -> ProjectRepository:
    return _require(state.store)


def get_classifier() -> ProjectClassifier:
    return _require(state.classifier)


def get_analyzer() -> RequestAnalyzer:
    return _require(state.analyzer)


def get_synchronizer() -> ProjectSynchronizer:
    return _require(state.synchronizer)
