from typing import List, Optional
import asyncio

from classification.project_classifier import ProjectClassifier
from extraction.request_analyzer import RequestAnalyzer
from integration.clickup_client import ClickUpClient
from storage.project_store import ProjectRepository
from sync.project_sync import ProjectSynchronizer

# Global instances initialized at startup
clickup: Optional[ClickUpClient] = None
store: Optional[ProjectRepository] = None
classifier: Optional[ProjectClassifier] = None
analyzer: Optional[RequestAnalyzer] = None
synchronizer: Optional[ProjectSynchronizer] = None

# "durable" when the asyncpg store is in use, "in-memory" otherwise
store_type: str = "in-memory"

# Long-running maintenance workers, cancelled on shutdown
workers: List[asyncio.Task] = []
