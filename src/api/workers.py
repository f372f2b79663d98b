import asyncio
import logging
import os

from api import state
from api import rate_limit
from storage.project_store import ANALYSIS_HISTORY_KEEP

logger = logging.getLogger(__name__)

# Config
ANALYSIS_PRUNE_INTERVAL_S = float(os.getenv("ANALYSIS_PRUNE_INTERVAL_S", "3600"))


async def run_maintenance() -> int:
    """One maintenance round: prune analysis history and expired rate-limit windows."""
    pruned = 0
    if state.store is not None:
        pruned = await state.store.prune_analysis_history(keep=ANALYSIS_HISTORY_KEEP)
        if pruned > 0:
            logger.info(f"Pruned {pruned} analysis records")

    dropped = rate_limit.cleanup_all()
    if dropped > 0:
        logger.debug(f"Dropped {dropped} expired rate limit windows")
    return pruned


async def _maintenance_worker() -> None:
    """Periodically trim the analysis history to the most recent records per project."""
    logger.info("Maintenance worker started")

    while True:
        await asyncio.sleep(ANALYSIS_PRUNE_INTERVAL_S)

        try:
            await run_maintenance()
        except Exception as e:
            logger.error(f"Error in maintenance worker: {e}")
