"""
Notice board router.
Staff post notices with an expiry and a priority; everyone signed in reads the
unexpired ones, most urgent first.
"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from auth.dependencies import get_current_principal, get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import Notice, NoticeCreate, NoticeUpdate, SuccessResponse

router = APIRouter(prefix="/api", tags=["notices"])


@router.get("/notices", response_model=List[Notice])
async def list_active_notices(
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await services.notices.get_active_notices()


@router.get("/admin/notices", response_model=List[Notice])
async def list_notices(
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Every notice, expired ones included, newest first."""
    return await services.notices.get_notices()


@router.post("/admin/notices", response_model=Notice, status_code=status.HTTP_201_CREATED)
async def create_notice(
    payload: NoticeCreate,
    background_tasks: BackgroundTasks,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    notice = await services.notices.create_notice(payload)
    background_tasks.add_task(
        services.announcer.announce,
        f"📢 Notice: {notice.title}",
        notice.message,
        "notice",
        {"noticeId": notice.id},
    )
    return notice


@router.put("/admin/notices/{notice_id}", response_model=Notice)
async def update_notice(
    notice_id: str,
    payload: NoticeUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    notice = await services.notices.update_notice(notice_id, payload)
    if notice is None:
        raise NotFound("Notice not found")
    return notice


@router.delete("/admin/notices/{notice_id}", response_model=SuccessResponse)
async def delete_notice(
    notice_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if not await services.notices.delete_notice(notice_id):
        raise NotFound("Notice not found")
    return SuccessResponse()
