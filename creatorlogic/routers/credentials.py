"""App Store Connect credential endpoints.

Credentials are verified against Apple before they are stored.  The
private key is never returned by the read endpoint.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status

from .. import schemas
from ..auth import get_current_active_user
from ..container import Services, get_services
from ..errors import CredentialVerificationError
from ..models import User
from ..services.appstore import verify_app_store_credentials


router = APIRouter(prefix="/credentials", tags=["Credentials"])


@router.get("/app-store", response_model=schemas.AppStoreCredentialsRead)
async def read_app_store_credentials(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    record = await services.store.find("app_credentials", current_user.id, current_user.id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No App Store credentials saved")
    return schemas.AppStoreCredentialsRead.model_validate(record)


@router.post("/app-store", response_model=schemas.AppVerification)
async def save_app_store_credentials(
    credentials: schemas.AppStoreCredentials,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Verify the key with App Store Connect, then store it."""
    try:
        verification = await asyncio.to_thread(
            verify_app_store_credentials,
            credentials.issuer_id,
            credentials.key_id,
            credentials.private_key,
        )
    except CredentialVerificationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    record = credentials.model_copy(update={"app_name": verification.app_name}).model_dump()
    services.store.write("app_credentials", {"id": current_user.id, **record}, current_user.id)
    return verification
