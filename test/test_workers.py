import asyncio
from datetime import datetime, timedelta, timezone

from api import rate_limit, state, workers
from api.rate_limit import FixedWindowLimiter
from conftest import make_list
from intake_ai.models import Project
from storage.project_store import InMemoryProjectStore


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_maintenance_prunes_history_and_expired_windows(monkeypatch):
    store = InMemoryProjectStore()
    monkeypatch.setattr(state, "store", store)
    monkeypatch.setattr(workers, "ANALYSIS_HISTORY_KEEP", 2)

    limiter_clock = Clock(1_700_000_000.0)
    limiter = FixedWindowLimiter(limit=5, window_s=60, clock=limiter_clock)
    monkeypatch.setattr(rate_limit, "limiters", {"general": limiter})

    async def _run():
        await store.upsert(Project.from_list(make_list("L1", "Shop")))
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for day in range(5):
            await store.mark_classified("L1", "E-ticaret", analyzed_at=start + timedelta(days=day))

        limiter.check("general:1.1.1.1")
        limiter_clock.now += 61

        pruned = await workers.run_maintenance()
        return pruned, await store.get_recent_analyses(limit=10)

    pruned, remaining = asyncio.run(_run())

    assert pruned == 3
    assert len(remaining) == 2
    assert len(limiter) == 0


def test_maintenance_without_store_only_cleans_limiters(monkeypatch):
    monkeypatch.setattr(state, "store", None)
    monkeypatch.setattr(rate_limit, "limiters", {})

    assert asyncio.run(workers.run_maintenance()) == 0
