"""
FastAPI dependencies for authentication.
Bearer credentials come from the Authorization header; /api/auth/me also
accepts the login cookie.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.session import Principal
from core.container import PortalServices
from core.errors import Unauthenticated

SESSION_COOKIE = "portal_session"

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> PortalServices:
    return request.app.state.services


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: PortalServices = Depends(get_services),
) -> Principal:
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    return await services.sessions.authenticate(credentials.credentials)


async def require_admin_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: PortalServices = Depends(get_services),
) -> Principal:
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    return await services.sessions.require_admin(credentials.credentials)


async def get_principal_for_me(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: PortalServices = Depends(get_services),
) -> Principal:
    """Cookie first, then the bearer header."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise Unauthenticated("Not authenticated")
    return await services.sessions.authenticate(token)
