"""
Notifications router: the caller's own in-app notifications.
"""

from typing import List

from fastapi import APIRouter, Depends

from auth.dependencies import get_current_principal, get_services
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import Notification, SuccessResponse

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[Notification])
async def list_notifications(
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await services.notices.get_notifications(principal.identity_id)


@router.put("/read-all", response_model=SuccessResponse)
async def mark_all_read(
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    await services.notices.mark_all_notifications_read(principal.identity_id)
    return SuccessResponse()


@router.put("/{notification_id}/read", response_model=SuccessResponse)
async def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    notification = await services.notices.get_notification(notification_id)
    if notification is None or notification.user_id != principal.identity_id:
        raise NotFound("Notification not found")
    await services.notices.mark_notification_read(notification_id)
    return SuccessResponse()


@router.delete("/clear-all", response_model=SuccessResponse)
async def clear_all(
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    await services.notices.clear_all_notifications(principal.identity_id)
    return SuccessResponse()
