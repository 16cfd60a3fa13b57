"""
skincase.engine.missions — Mission Requirement Evaluation
==========================================================

Pure functions.  A mission's ``requirements`` map a metric name to a
threshold (``{"casesOpened": 5}``); progress is the weakest metric's
completion ratio, as a 0–100 percent.  Completion is tracked per period:
daily missions reset at UTC midnight, weekly ones on ISO week boundaries,
seasonal ones never.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from skincase.database.models import MissionType

SEASON_PERIOD = "season"

# Metric filled from the user's battlepass level rather than reported by callers
LEVEL_METRIC = "battlepassLevel"


def period_key(mission_type: MissionType | str, now: datetime) -> str:
    """Bucket identifying the completion window containing *now*."""
    match MissionType(mission_type):
        case MissionType.DAILY:
            return now.strftime("%Y-%m-%d")
        case MissionType.WEEKLY:
            year, week, _ = now.isocalendar()
            return f"{year}-W{week:02d}"
        case _:
            return SEASON_PERIOD


def mission_progress(requirements: Mapping[str, int], metrics: Mapping[str, int]) -> int:
    """Percent (0–100) of the least-advanced requirement.

    Missing metrics count as 0.  A mission without requirements is complete.
    """
    if not requirements:
        return 100
    pct = 100
    for metric, threshold in requirements.items():
        threshold = int(threshold)
        if threshold <= 0:
            continue
        value = max(0, int(metrics.get(metric, 0)))
        pct = min(pct, min(100, value * 100 // threshold))
    return pct


def is_mission_active(active: bool, starts_at: datetime | None,
                      ends_at: datetime | None, now: datetime) -> bool:
    if not active:
        return False
    if starts_at is not None and starts_at > now:
        return False
    return ends_at is None or ends_at >= now
