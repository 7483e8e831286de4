"""
Student authentication router.
Students log in with their email or phone number; blocked and pending
accounts are refused before the password is checked.
"""

from fastapi import APIRouter, Depends, Response

from auth.dependencies import get_services
from core.container import PortalServices
from database.schemas import StudentLoginRequest, StudentLoginResponse, StudentResponse
from routers.auth import set_session_cookie

router = APIRouter(prefix="/api/student", tags=["auth-student"])


@router.post("/login", response_model=StudentLoginResponse)
async def student_login(
    payload: StudentLoginRequest,
    response: Response,
    services: PortalServices = Depends(get_services),
):
    student, credential = await services.sessions.login_student(payload.identifier, payload.password)
    set_session_cookie(response, credential, services)
    return StudentLoginResponse(
        student=StudentResponse.model_validate(student.model_dump()),
        token=credential,
    )
