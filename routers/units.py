"""
Units router.
A unit (chapter) belongs to one subject and owns its study materials.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from auth.dependencies import get_current_principal, get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import SuccessResponse, Unit, UnitCreate, UnitUpdate

router = APIRouter(prefix="/api", tags=["units"])


@router.get("/subjects/{subject_id}/units", response_model=List[Unit])
@router.get("/categories/{subject_id}/units", response_model=List[Unit])
async def list_units(
    subject_id: str,
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    """Units of a subject ordered by their display order."""
    return await services.content.get_units_by_subject(subject_id)


@router.post("/admin/units", response_model=Unit, status_code=status.HTTP_201_CREATED)
async def create_unit(
    payload: UnitCreate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    unit = await services.content.create_unit(payload)
    if unit is None:
        raise NotFound("Subject not found")
    return unit


@router.put("/admin/units/{unit_id}", response_model=Unit)
async def update_unit(
    unit_id: str,
    payload: UnitUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    unit = await services.content.update_unit(unit_id, payload)
    if unit is None:
        raise NotFound("Unit not found")
    return unit


@router.delete("/admin/units/{unit_id}", response_model=SuccessResponse)
async def delete_unit(
    unit_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if not await services.content.delete_unit(unit_id):
        raise NotFound("Unit not found")
    return SuccessResponse()
