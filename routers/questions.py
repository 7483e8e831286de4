"""
Question bank router.
Questions live in one shared bank and are linked to quizzes separately, so one
question can appear in many quizzes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from auth.dependencies import get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound
from database.schemas import Question, QuestionCreate, QuestionUpdate, SuccessResponse

router = APIRouter(prefix="/api/admin/questions", tags=["questions"])


@router.get("")
async def list_questions(
    quiz_id: Optional[str] = Query(None, alias="quizId"),
    with_quiz_info: bool = Query(False, alias="withQuizInfo"),
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """
    The bank, or one quiz's questions in quiz order when quizId is given.
    withQuizInfo=true adds usedInQuizzes to each question.
    """
    quizzes = services.quizzes
    if with_quiz_info:
        return await quizzes.get_all_questions_with_quiz_info(quiz_id)
    if quiz_id:
        return await quizzes.get_questions_by_quiz(quiz_id)
    return await quizzes.get_all_questions()


@router.post("", response_model=Question, status_code=status.HTTP_201_CREATED)
async def create_question(
    payload: QuestionCreate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    return await services.quizzes.create_question(payload)


@router.put("/{question_id}", response_model=Question)
async def update_question(
    question_id: str,
    payload: QuestionUpdate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    question = await services.quizzes.update_question(question_id, payload)
    if question is None:
        raise NotFound("Question not found")
    return question


@router.delete("/{question_id}", response_model=SuccessResponse)
async def delete_question(
    question_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Delete a question and unlink it from every quiz."""
    if not await services.quizzes.delete_question(question_id):
        raise NotFound("Question not found")
    return SuccessResponse()
