"""
Semesters and Subjects router.
Semesters are a fixed list of four; subjects belong to one semester.
Deleting a subject removes its units and their study materials.
"""

import asyncio
from typing import List

from fastapi import APIRouter, Depends, status

from auth.dependencies import get_current_principal, get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound, ValidationFailed
from database.schemas import (
    SemesterWithStats,
    Subject,
    SubjectCreate,
    SubjectUpdate,
    SuccessResponse,
)

router = APIRouter(prefix="/api", tags=["subjects"])


# ─── Semesters ─────────────────────────────────────────────────────────────────

@router.get("/semesters", response_model=List[SemesterWithStats])
async def list_semesters(
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    """All four semesters with subject, chapter and material counts."""
    semesters = await services.content.get_semesters()
    stats = await asyncio.gather(*(services.content.get_semester_stats(s.number) for s in semesters))
    return [
        SemesterWithStats(**semester.model_dump(), **s.model_dump())
        for semester, s in zip(semesters, stats)
    ]


@router.get("/semesters/{semester_number}/subjects", response_model=List[Subject])
async def list_semester_subjects(
    semester_number: int,
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    if semester_number < 1 or semester_number > 4:
        raise ValidationFailed("Invalid semester number. Must be 1-4.")
    return await services.content.get_subjects_by_semester(semester_number)


# ─── Subjects ──────────────────────────────────────────────────────────────────

@router.get("/subjects", response_model=List[Subject])
async def list_subjects(
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await services.content.get_subjects()


@router.get("/subjects/{subject_id}", response_model=Subject)
async def get_subject(
    subject_id: str,
    _: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    subject = await services.content.get_subject(subject_id)
    if subject is None:
        raise NotFound("Subject not found")
    return subject


@router.post("/admin/subjects", response_model=Subject, status_code=status.HTTP_201_CREATED)
async def create_subject(
    payload: SubjectCreate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.content.create_subject(payload)


@router.put("/admin/subjects/{subject_id}", response_model=Subject)
async def update_subject(
    subject_id: str,
    payload: SubjectUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    subject = await services.content.update_subject(subject_id, payload)
    if subject is None:
        raise NotFound("Subject not found")
    return subject


@router.delete("/admin/subjects/{subject_id}", response_model=SuccessResponse)
async def delete_subject(
    subject_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Delete a subject with all of its units and their materials."""
    if not await services.content.delete_subject(subject_id):
        raise NotFound("Subject not found")
    return SuccessResponse()
