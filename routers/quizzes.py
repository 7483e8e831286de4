"""
Quiz taking router.
Students see published (active) quizzes only, get questions without the answer
key, and may submit each quiz exactly once.
"""

from typing import List

from fastapi import APIRouter, Depends

from auth.dependencies import get_current_principal, get_services
from auth.session import Principal
from core.container import PortalServices
from core.errors import QuizNotFound
from database.schemas import (
    AttemptCheckResponse,
    AttemptWithQuiz,
    Quiz,
    QuizSubmitRequest,
    QuizSubmitResponse,
    StudentQuestion,
)

router = APIRouter(prefix="/api", tags=["quizzes"])


async def _visible_quiz(quiz_id: str, principal: Principal, services: PortalServices) -> Quiz:
    quiz = await services.quizzes.get_quiz(quiz_id)
    if quiz is None or (not quiz.is_active and not principal.is_staff):
        raise QuizNotFound(quiz_id)
    return quiz


@router.get("/quizzes", response_model=List[Quiz])
async def list_quizzes(
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    quizzes = await services.quizzes.get_all_quizzes()
    if principal.is_staff:
        return quizzes
    return [q for q in quizzes if q.is_active]


@router.get("/quizzes/{quiz_id}", response_model=Quiz)
async def get_quiz(
    quiz_id: str,
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await _visible_quiz(quiz_id, principal, services)


@router.get("/quizzes/{quiz_id}/questions", response_model=List[StudentQuestion])
async def get_quiz_questions(
    quiz_id: str,
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    """Questions in quiz order, with correctAnswer removed."""
    await _visible_quiz(quiz_id, principal, services)
    questions = await services.quizzes.get_questions_by_quiz(quiz_id)
    return [StudentQuestion.model_validate(q.model_dump(exclude={"correct_answer"})) for q in questions]


@router.get("/quizzes/{quiz_id}/check-attempt", response_model=AttemptCheckResponse)
async def check_attempt(
    quiz_id: str,
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    attempt = await services.quizzes.get_user_attempt_for_quiz(principal.identity_id, quiz_id)
    return AttemptCheckResponse(attempted=attempt is not None, attempt=attempt)


@router.post("/quizzes/{quiz_id}/submit", response_model=QuizSubmitResponse)
async def submit_quiz(
    quiz_id: str,
    payload: QuizSubmitRequest,
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    """
    Score and store the caller's attempt.
    A second submission is rejected with 409 and the existing attempt.
    """
    await _visible_quiz(quiz_id, principal, services)
    attempt, correct_answers = await services.submissions.submit(
        principal.identity_id, quiz_id, payload.answers, payload.time_taken
    )
    return QuizSubmitResponse(attempt=attempt, correct_answers=correct_answers)


@router.get("/attempts", response_model=List[AttemptWithQuiz])
async def list_my_attempts(
    principal: Principal = Depends(get_current_principal),
    services: PortalServices = Depends(get_services),
):
    return await services.quizzes.get_attempts_by_user(principal.identity_id)
