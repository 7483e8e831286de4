"""
Quiz administration router.
Quiz CRUD, the ordered question list of each quiz, bulk linking from the
question bank, and per-quiz analytics.

New quizzes start unpublished. Switching a quiz from inactive to active
announces it to every approved student.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from auth.dependencies import get_services, require_admin_auth
from auth.session import Principal
from core.container import PortalServices
from core.errors import NotFound, QuizNotFound
from database.schemas import (
    AddQuestionRequest,
    LinkResult,
    Quiz,
    QuizAnalytics,
    QuizCreate,
    QuizUpdate,
    ReorderQuestionsRequest,
    SuccessResponse,
    SyncQuestionsRequest,
    SyncQuestionsResult,
    SyncStatus,
)

router = APIRouter(prefix="/api/admin/quizzes", tags=["quiz-admin"])


# ─── Quizzes ───────────────────────────────────────────────────────────────────

@router.get("", response_model=List[Quiz])
async def list_quizzes(
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    if subject_id is not None:
        return await services.quizzes.get_quizzes_by_subject(subject_id)
    return await services.quizzes.get_all_quizzes()


@router.post("", response_model=Quiz, status_code=status.HTTP_201_CREATED)
async def create_quiz(
    payload: QuizCreate,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Create a quiz. It is always stored inactive; publish it with an update."""
    return await services.quizzes.create_quiz(payload.model_copy(update={"is_active": False}))


@router.put("/{quiz_id}", response_model=Quiz)
async def update_quiz(
    quiz_id: str,
    payload: QuizUpdate,
    background_tasks: BackgroundTasks,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    before = await services.quizzes.get_quiz(quiz_id)
    if before is None:
        raise QuizNotFound(quiz_id)
    quiz = await services.quizzes.update_quiz(quiz_id, payload)
    if quiz is None:
        raise QuizNotFound(quiz_id)

    if not before.is_active and quiz.is_active:
        background_tasks.add_task(
            services.announcer.announce,
            "📝 New Quiz Available",
            f'"{quiz.title}" is now available. Attempt it now!',
            "quiz",
            {"quizId": quiz.id},
        )
    return quiz


@router.delete("/{quiz_id}", response_model=SuccessResponse)
async def delete_quiz(
    quiz_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Delete a quiz with its question links and every attempt at it."""
    if not await services.quizzes.delete_quiz(quiz_id):
        raise QuizNotFound(quiz_id)
    return SuccessResponse()


# ─── Quiz questions ────────────────────────────────────────────────────────────

@router.post("/{quiz_id}/questions", response_model=LinkResult)
async def add_question(
    quiz_id: str,
    payload: AddQuestionRequest,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Link a bank question to the quiz. Linking twice is a no-op (created=false)."""
    if await services.quizzes.get_quiz(quiz_id) is None:
        raise QuizNotFound(quiz_id)
    if await services.quizzes.get_question(payload.question_id) is None:
        raise NotFound("Question not found")
    created = await services.quizzes.add_question_to_quiz(quiz_id, payload.question_id, payload.order)
    return LinkResult(created=created)


@router.delete("/{quiz_id}/questions/{question_id}", response_model=SuccessResponse)
async def remove_question(
    quiz_id: str,
    question_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    await services.quizzes.remove_question_from_quiz(quiz_id, question_id)
    return SuccessResponse()


@router.put("/{quiz_id}/questions/reorder", response_model=SuccessResponse)
async def reorder_questions(
    quiz_id: str,
    payload: ReorderQuestionsRequest,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    await services.quizzes.reorder_questions_in_quiz(quiz_id, payload.ordered_question_ids)
    return SuccessResponse()


@router.post("/{quiz_id}/sync-questions", response_model=SyncQuestionsResult)
async def sync_questions(
    quiz_id: str,
    payload: Optional[SyncQuestionsRequest] = None,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Link many bank questions at once; no ids (or an empty list) links the whole bank."""
    question_ids = payload.question_ids if payload is not None else []
    result = await services.quizzes.sync_questions(quiz_id, question_ids)
    if result is None:
        raise QuizNotFound(quiz_id)
    return result


@router.get("/{quiz_id}/sync-status", response_model=SyncStatus)
async def sync_status(
    quiz_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    result = await services.quizzes.get_sync_status(quiz_id)
    if result is None:
        raise QuizNotFound(quiz_id)
    return result


# ─── Analytics ─────────────────────────────────────────────────────────────────

@router.get("/{quiz_id}/analytics", response_model=QuizAnalytics)
async def quiz_analytics(
    quiz_id: str,
    _: Principal = Depends(require_admin_auth),
    services: PortalServices = Depends(get_services),
):
    """Leaderboard and score aggregates for one quiz."""
    return await services.analytics.get_quiz_analytics(quiz_id)
