from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from intake_ai.models import AnalysisResult

# ClickUp priorities: 1 = urgent ... 4 = low
PRIORITY_MAP: Dict[str, int] = {
    "low": 4,
    "medium": 3,
    "high": 2,
    "urgent": 1,
}

HOUR_MS = 60 * 60 * 1000
WORKDAY_HOURS = 8
WORKWEEK_DAYS = 5

_UNIT_MS = {
    "saat": HOUR_MS,
    "hour": HOUR_MS,
    "gün": WORKDAY_HOURS * HOUR_MS,
    "day": WORKDAY_HOURS * HOUR_MS,
    "hafta": WORKWEEK_DAYS * WORKDAY_HOURS * HOUR_MS,
    "week": WORKWEEK_DAYS * WORKDAY_HOURS * HOUR_MS,
}

_DURATION_RE = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(?:-\s*(\d+(?:[.,]\d+)?))?\s*(gün|saat|hafta|hours?|days?|weeks?)",
    re.IGNORECASE,
)

MIN_DUE_YEAR = 2020
DEFAULT_STATUS = "to do"


def parse_duration_ms(text: Optional[str]) -> int:
    """
    Convert a free-text estimate such as "1-2 gün" or "3 saat" to milliseconds.

    Ranges are averaged. A day counts as 8 working hours and a week as
    5 working days. Anything unparseable is 0.
    """
    if not text:
        return 0

    match = _DURATION_RE.search(text)
    if match is None:
        return 0

    low, high, unit = match.groups()
    low = float(low.replace(",", "."))
    amount = (low + float(high.replace(",", "."))) / 2 if high else low

    unit = unit.lower()
    if unit not in _UNIT_MS:
        unit = unit.rstrip("s")

    return int(amount * _UNIT_MS[unit])


def parse_due_date_ms(value: Optional[str]) -> Optional[int]:
    """Epoch milliseconds for a plausible due date, None otherwise."""
    if not value:
        return None

    value = value.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None

    if parsed.year <= MIN_DUE_YEAR:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return int(parsed.timestamp() * 1000)


def compose_description(analysis: AnalysisResult) -> str:
    requirements = "\n".join(f"- {req}" for req in analysis.technical_requirements)
    criteria = "\n".join(f"- {item}" for item in analysis.acceptance_criteria)
    return (
        f"{analysis.description}\n\n"
        f"**Teknik Gereksinimler:**\n{requirements}\n\n"
        f"**Kabul Kriterleri:**\n{criteria}"
    )


def build_task_payload(analysis: AnalysisResult, status: str = DEFAULT_STATUS) -> Dict[str, Any]:
    """Request body for POST /list/{list_id}/task."""
    payload: Dict[str, Any] = {
        "name": analysis.title,
        "description": compose_description(analysis),
        "priority": PRIORITY_MAP.get(analysis.priority, PRIORITY_MAP["medium"]),
        "status": status,
        "tags": list(analysis.tags),
        "time_estimate": parse_duration_ms(analysis.estimated_time),
    }

    due_date = parse_due_date_ms(analysis.due_date)
    if due_date is not None:
        payload["due_date"] = due_date

    return payload
