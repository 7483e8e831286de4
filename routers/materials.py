"""
Study materials router.
Materials are links (pdf, video, document or plain link) attached to a unit.
Publishing a new material notifies every approved student.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from auth.dependencies import get_current_principal, get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import StudyMaterial, StudyMaterialCreate, StudyMaterialUpdate, SuccessResponse

router = APIRouter(prefix="/api", tags=["materials"])


@router.get("/units/{unit_id}/materials", response_model=List[StudyMaterial])
async def list_unit_materials(
    unit_id: str,
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await services.content.get_materials_by_unit(unit_id)


@router.get("/study-materials", response_model=List[StudyMaterial])
async def list_materials(
    unit_id: Optional[str] = Query(None, alias="unitId"),
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    """
    Materials of one unit when unitId is given.
    Without it, staff get every material and students get an empty list.
    """
    if unit_id:
        return await services.content.get_materials_by_unit(unit_id)
    if principal.is_staff:
        return await services.content.get_all_materials()
    return []


@router.get("/study-materials/{material_id}", response_model=StudyMaterial)
async def get_material(
    material_id: str,
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    material = await services.content.get_material(material_id)
    if material is None:
        raise NotFound("Study material not found")
    return material


@router.post("/admin/study-materials", response_model=StudyMaterial, status_code=status.HTTP_201_CREATED)
async def create_material(
    payload: StudyMaterialCreate,
    background_tasks: BackgroundTasks,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    material = await services.content.create_material(payload)
    if material is None:
        raise NotFound("Unit not found")
    background_tasks.add_task(
        services.announcer.announce,
        "📚 New Study Material",
        f'"{material.title}" has been added. Check it out!',
        "material",
        {"materialId": material.id},
    )
    return material


@router.put("/admin/study-materials/{material_id}", response_model=StudyMaterial)
async def update_material(
    material_id: str,
    payload: StudyMaterialUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    material = await services.content.update_material(material_id, payload)
    if material is None:
        raise NotFound("Study material not found")
    return material


@router.delete("/admin/study-materials/{material_id}", response_model=SuccessResponse)
async def delete_material(
    material_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if not await services.content.delete_material(material_id):
        raise NotFound("Study material not found")
    return SuccessResponse()
