"""
Student roster administration.
Staff create students directly (approved), edit them, reset passwords and
block or approve them. Blocking or deleting a student ends their session.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from auth.dependencies import get_services, require_admin_auth
from auth.security import hash_password
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import (
    NewPasswordRequest,
    StudentCreate,
    StudentResponse,
    StudentStatusUpdate,
    StudentUpdate,
    StudentWithPassword,
    SuccessResponse,
)

router = APIRouter(prefix="/api/admin/students", tags=["students"])


@router.get("", response_model=List[StudentResponse])
async def list_students(
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.identities.get_students()


@router.get("/with-passwords", response_model=List[StudentWithPassword])
async def list_students_with_passwords(
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.identities.get_students_with_passwords()


@router.post("", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def create_student(
    payload: StudentCreate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.identities.create_student(
        email=payload.email,
        password_hash=hash_password(payload.password),
        name=payload.name,
        phone=payload.phone,
        plain_password=payload.password,
        status="approved",
    )


@router.put("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: str,
    payload: StudentUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    student = await services.identities.update_student(student_id, payload)
    if student is None:
        raise NotFound("Student not found")
    return student


@router.put("/{student_id}/reset-password", response_model=SuccessResponse)
async def reset_student_password(
    student_id: str,
    payload: NewPasswordRequest,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    updated = await services.identities.update_student_password(
        student_id, hash_password(payload.new_password), plain_password=payload.new_password
    )
    if not updated:
        raise NotFound("Student not found")
    return SuccessResponse()


@router.put("/{student_id}/status", response_model=SuccessResponse)
async def update_student_status(
    student_id: str,
    payload: StudentStatusUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if not await services.identities.update_student_status(student_id, payload.status):
        raise NotFound("Student not found")
    if payload.status != "approved":
        await services.sessions.revoke("student", student_id)
    return SuccessResponse()


@router.delete("/{student_id}", response_model=SuccessResponse)
async def delete_student(
    student_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if not await services.identities.delete_student(student_id):
        raise NotFound("Student not found")
    await services.sessions.forget(student_id)
    return SuccessResponse()
