"""Discovery and analytics job endpoints.

Starting a job returns its id immediately; clients then poll
``GET /jobs/{job_id}`` for progress, log lines and, once completed, the
normalised results.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from .. import schemas
from ..auth import get_current_active_user, require_role
from ..container import Services, get_services
from ..errors import ConfigurationError, InvalidSeedError, JobNotFoundError
from ..models import User
from ..schemas import RoleEnum


router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _start_error(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidSeedError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.post("/discovery", response_model=schemas.JobCreated, status_code=status.HTTP_202_ACCEPTED)
async def start_discovery(
    request: schemas.DiscoveryRequest,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Find creators similar to the seed handle."""
    try:
        job_id = await services.jobs.start_discovery(
            request.seed_username,
            request.limit,
            owner_id=current_user.id,
            owner_email=current_user.email,
        )
    except (InvalidSeedError, ConfigurationError) as exc:
        raise _start_error(exc)
    return schemas.JobCreated(job_id=job_id)


@router.post("/analytics", response_model=schemas.JobCreated, status_code=status.HTTP_202_ACCEPTED)
async def start_analytics(
    request: schemas.AnalyticsRequest,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Scrape the seed's recent reels, reusing a finished run unless forced."""
    try:
        job_id = await services.jobs.start_analytics(
            request.seed_username,
            request.force_refresh,
            owner_id=current_user.id,
            owner_email=current_user.email,
        )
    except (InvalidSeedError, ConfigurationError) as exc:
        raise _start_error(exc)
    return schemas.JobCreated(job_id=job_id)


@router.get("/history", response_model=List[schemas.HistoryRecord])
async def list_history(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    return await services.jobs.history(current_user.id)


@router.get("/history/agency", response_model=List[schemas.HistoryRecord])
async def list_agency_history(
    current_user: User = Depends(require_role(RoleEnum.admin)),
    services: Services = Depends(get_services),
):
    """Every user's jobs, newest first.  Admin only."""
    return await services.jobs.history(None)


@router.get("/{job_id}", response_model=schemas.JobStatusView)
async def get_job_status(
    job_id: str,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Progress of one job.  Other users' jobs are not found, except for admins."""
    owner_id = None if current_user.role == RoleEnum.admin else current_user.id
    try:
        return await services.jobs.get_status(job_id, owner_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
