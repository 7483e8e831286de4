"""
Staff account administration and dashboard statistics.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from auth.dependencies import get_services, require_admin_auth
from auth.security import hash_password
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound, ValidationFailed
from database.schemas import (
    AdminStats,
    NewPasswordRequest,
    SuccessResponse,
    UserCreate,
    UserEnvelope,
    UserResponse,
)
from services.admin_stats import collect_admin_stats

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.identities.get_all_users()


@router.post("/users", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    principal: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Create another staff account. Email and username must both be unused."""
    identities = services.identities
    if await identities.get_user_by_email(payload.email):
        raise ValidationFailed("Email already registered")
    if await identities.get_user_by_username(payload.username):
        raise ValidationFailed("Username already taken")

    user = await identities.create_user(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
        display_name=payload.display_name,
        phone=payload.phone,
    )
    log.info("User %s created by %s", user.id, principal.identity_id)
    return UserEnvelope(user=UserResponse.model_validate(user.model_dump()))


@router.put("/users/{user_id}/reset-password", response_model=SuccessResponse)
async def reset_user_password(
    user_id: str,
    payload: NewPasswordRequest,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    user = await services.identities.update_user(user_id, {"password": hash_password(payload.new_password)})
    if user is None:
        raise NotFound("User not found")
    return SuccessResponse()


@router.delete("/users/{user_id}", response_model=SuccessResponse)
async def delete_user(
    user_id: str,
    principal: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Delete a staff account together with its attempts, notifications and reset tokens."""
    if user_id == principal.identity_id:
        raise ValidationFailed("You cannot delete your own account")
    if not await services.identities.delete_user(user_id):
        raise NotFound("User not found")
    await services.sessions.forget(user_id)
    return SuccessResponse()


@router.get("/stats", response_model=AdminStats)
async def admin_stats(
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await collect_admin_stats(services.store, services.quizzes)
