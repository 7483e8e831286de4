"""
Staff authentication router.
Login, logout, current identity, profile edits and the password-reset flow.
Every login rotates the account's session token, which signs out other devices.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials

from auth.dependencies import (
    SESSION_COOKIE,
    bearer_scheme,
    get_principal_for_me,
    get_services,
    require_admin_auth,
)
from auth.security import hash_password
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound, Unauthenticated, ValidationFailed
from database.schemas import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    ProfileUpdate,
    ResetPasswordRequest,
    StudentProfile,
    User,
    UserEnvelope,
    UserResponse,
    utcnow,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user.model_dump())


def set_session_cookie(response: Response, credential: str, services: PortalServices) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        credential,
        max_age=services.settings.credential_ttl_days * 24 * 3600,
        httponly=True,
        samesite="lax",
    )


# ─── Session ───────────────────────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    services: PortalServices = Depends(get_services),
):
    """
    Staff login with email + password.
    Returns the profile and a bearer credential; the same credential is set as a cookie.
    """
    user, credential = await services.sessions.login_user(payload.email, payload.password)
    set_session_cookie(response, credential, services)
    return LoginResponse(user=_user_response(user), token=credential)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: PortalServices = Depends(get_services),
):
    """Clear the caller's session if the credential is still live. Always succeeds."""
    token = request.cookies.get(SESSION_COOKIE) or (credentials.credentials if credentials else None)
    if token:
        try:
            principal = await services.sessions.authenticate(token)
        except Unauthenticated:
            principal = None
        if principal is not None:
            await services.sessions.logout(principal)
    response.delete_cookie(SESSION_COOKIE)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_principal_for_me),
    services: PortalServices = Depends(get_services),
):
    identity = await services.sessions.resolve_identity(principal)
    if identity is None:
        raise Unauthenticated("User not found")
    if isinstance(identity, User):
        return MeResponse(user=_user_response(identity))
    profile = StudentProfile.model_validate(
        {
            **identity.model_dump(),
            "username": identity.name or identity.email,
            "display_name": identity.name or None,
        }
    )
    return MeResponse(user=profile)


@router.put("/profile", response_model=UserEnvelope)
async def update_profile(
    payload: ProfileUpdate,
    principal: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    user = await services.identities.update_user(principal.identity_id, payload.to_document(exclude_unset=True))
    if user is None:
        raise NotFound("User not found")
    return UserEnvelope(user=_user_response(user))


# ─── Password reset ────────────────────────────────────────────────────────────

@router.post("/forgot-password", response_model=ForgotPasswordResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    services: PortalServices = Depends(get_services),
):
    """
    Email a single-use reset link.
    The response is the same whether or not the address belongs to an account.
    """
    user = await services.identities.get_user_by_email(payload.email)
    if user is None:
        return ForgotPasswordResponse()

    settings = services.settings
    token = secrets.token_hex(32)
    expires_at = utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes)
    await services.identities.create_password_reset_token(user.id, token, expires_at)

    reset_link = f"{settings.public_base_url}/admin/reset-password?token={token}"
    if not await services.email_sender.send_password_reset_email(user.email, reset_link):
        log.warning("Reset link for user %s was not emailed", user.id)
    return ForgotPasswordResponse()


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    services: PortalServices = Depends(get_services),
):
    reset = await services.identities.get_password_reset_token(payload.token)
    if reset is None:
        raise ValidationFailed("Invalid or expired reset link")
    if reset.used:
        raise ValidationFailed("This reset link has already been used")
    if reset.expires_at <= utcnow():
        raise ValidationFailed("This reset link has expired")

    user = await services.identities.update_user(reset.user_id, {"password": hash_password(payload.new_password)})
    if user is None:
        raise ValidationFailed("Invalid or expired reset link")
    await services.identities.mark_token_used(payload.token)
    log.info("Password reset for user %s", reset.user_id)
    return MessageResponse(message="Password has been reset successfully.")
