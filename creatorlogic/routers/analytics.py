"""Install attribution endpoints.

The series is computed from the caller's partnerships with the heuristic
model in ``services.attribution``; it is cheap, so nothing is cached.
"""

from __future__ import annotations

from typing import List, Literal

from fastapi import APIRouter, Depends, Query

from .. import schemas
from ..auth import get_current_active_user
from ..container import Services, get_services
from ..models import User
from ..services.attribution import compute_daily_series, range_to_days


router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/installs", response_model=List[schemas.DailyMetric])
async def daily_installs(
    range: Literal["7d", "30d", "90d", "all"] = Query("30d", description="Reporting window"),
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    partnerships = await services.partnerships.list(current_user.id)
    return compute_daily_series(partnerships, range_to_days(range))
