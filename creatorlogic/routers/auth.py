"""Authentication endpoints.

Provides routes for user registration, login, logout and retrieving the
current user.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from .. import schemas
from ..auth import (
    authenticate_user,
    create_access_token,
    get_current_active_user,
    get_password_hash,
    get_user_by_email,
)
from ..config import Settings
from ..container import Services, get_services
from ..database import get_session
from ..local_cache import SESSION
from ..models import User
from ..schemas import RoleEnum


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
async def register_user(user_in: schemas.UserCreate, session: AsyncSession = Depends(get_session)):
    """Create a new user account.

    Duplicate email addresses are not allowed.  The account whose email
    matches `ADMIN_EMAIL` is created with the admin role, every other
    account with the user role.
    """
    existing = await get_user_by_email(session, user_in.email)
    if existing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    admin_email = Settings.from_env().admin_email
    role = RoleEnum.admin if admin_email and user_in.email.lower() == admin_email.lower() else RoleEnum.user
    user = User(
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        full_name=user_in.full_name,
        role=role,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return schemas.UserRead.model_validate(user)


@router.post("/token", response_model=schemas.Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Authenticate a user and return a JWT token."""
    user = await authenticate_user(session, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=services.settings.access_token_expire_minutes)
    access_token = create_access_token(data={"sub": user.email}, expires_delta=access_token_expires)
    services.store.local.set(SESSION, {"user_id": user.id, "email": user.email})
    return schemas.Token(access_token=access_token, token_type="bearer")


@router.get("/me", response_model=schemas.UserRead)
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    """Return the currently authenticated user."""
    return schemas.UserRead.model_validate(current_user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
) -> None:
    """Forget the cached partnerships and the stored session for this user."""
    services.partnerships.invalidate(current_user.id)
    services.store.local.clear(SESSION)
