"""Heuristic view-to-install attribution.

This is a placeholder model, not a statistical one.  Daily installs are a
deterministic baseline derived from the date plus a decaying boost for each
partnership posted in the previous week.  Uninstalls and retention are
filler values so the dashboard has something to draw until real App Store
numbers are wired in.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from ..schemas import DailyMetric, Partnership

RANGE_DAYS: Dict[str, int] = {"7d": 7, "30d": 30, "90d": 90, "all": 365}
DEFAULT_RANGE_DAYS = 30

BASELINE_INSTALLS = 45
BASELINE_SPREAD = 20
BOOST_WINDOW_DAYS = 7
VIEWS_PER_INSTALL = 200
DEFAULT_IMPACT = 50
UNINSTALL_RATE = 0.2


def stable_hash(text: str) -> int:
    """32-bit ``h * 31 + c`` string hash, made non-negative.

    Stable across processes, unlike ``hash()``.
    """
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def range_to_days(range_name: str) -> int:
    return RANGE_DAYS.get(range_name, DEFAULT_RANGE_DAYS)


def _impact(partnership: Partnership) -> int:
    if partnership.views > 0:
        return math.ceil(partnership.views / VIEWS_PER_INSTALL)
    return DEFAULT_IMPACT


def compute_daily_series(
    partnerships: Sequence[Partnership],
    range_days: int,
    today: Optional[date] = None,
) -> List[DailyMetric]:
    """One metric per day from ``range_days`` ago through ``today``, oldest first."""
    today = today or date.today()
    series: List[DailyMetric] = []
    for offset in range(range_days, -1, -1):
        day = today - timedelta(days=offset)
        installs = BASELINE_INSTALLS + stable_hash(day.isoformat()) % BASELINE_SPREAD
        views = 0
        for partnership in partnerships:
            days_since = (day - partnership.posted_date).days
            if days_since == 0:
                views += partnership.views
            if 0 <= days_since <= BOOST_WINDOW_DAYS:
                installs += _impact(partnership) // (days_since + 1)
        series.append(
            DailyMetric(
                date=day,
                installs=installs,
                uninstalls=math.floor(installs * UNINSTALL_RATE),
                retention_pct=100 - (offset % 10),
                attributed_views=views,
            )
        )
    return series
