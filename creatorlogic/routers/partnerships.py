"""Partnership tracking endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from .. import schemas
from ..auth import get_current_active_user
from ..container import Services, get_services
from ..errors import ConfigurationError, PartnershipNotFoundError
from ..models import User


router = APIRouter(prefix="/partnerships", tags=["Partnerships"])


@router.get("", response_model=List[schemas.PartnershipRead])
async def list_partnerships(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    partnerships = await services.partnerships.list(current_user.id)
    return [schemas.PartnershipRead.from_partnership(p) for p in partnerships]


@router.post("", response_model=schemas.PartnershipRead, status_code=status.HTTP_201_CREATED)
async def create_partnership(
    partnership_in: schemas.PartnershipCreate,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    partnership = await services.partnerships.create(partnership_in, current_user.id)
    return schemas.PartnershipRead.from_partnership(partnership)


@router.post("/refresh", response_model=schemas.RefreshStarted, status_code=status.HTTP_202_ACCEPTED)
async def refresh_partnerships(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Re-scrape the tracked reels in the background.

    ``started`` is false when a refresh is already running or there is
    nothing to refresh.
    """
    try:
        started = await services.refresher.refresh(owner_id=current_user.id)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return schemas.RefreshStarted(started=started)


@router.get("/{partnership_id}", response_model=schemas.PartnershipRead)
async def get_partnership(
    partnership_id: str,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    try:
        partnership = await services.partnerships.get(partnership_id, current_user.id)
    except PartnershipNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return schemas.PartnershipRead.from_partnership(partnership)


@router.put("/{partnership_id}", response_model=schemas.PartnershipRead)
async def update_partnership(
    partnership_id: str,
    changes: schemas.PartnershipUpdate,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Edit a partnership.  View and engagement counters only change on refresh."""
    try:
        partnership = await services.partnerships.update(partnership_id, changes, current_user.id)
    except PartnershipNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return schemas.PartnershipRead.from_partnership(partnership)
