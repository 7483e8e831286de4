"""
Dashboard counters for the admin home page.
"""

import asyncio

from database import collections as col
from database.document_store import DocumentStore
from database.quiz_repository import QuizRepository
from database.schemas import AdminStats

_COUNTED = {
    "users": col.USERS,
    "subjects": col.SUBJECTS,
    "chapters": col.UNITS,
    "quizzes": col.QUIZZES,
    "questions": col.QUESTIONS,
    "materials": col.STUDY_MATERIALS,
    "attempts": col.QUIZ_ATTEMPTS,
    "students": col.STUDENTS,
    "notices": col.NOTICES,
}


async def collect_admin_stats(store: DocumentStore, quizzes: QuizRepository) -> AdminStats:
    """Collection sizes (counted concurrently) plus figures from the cached quiz list."""
    counts, all_quizzes = await asyncio.gather(
        asyncio.gather(*(store.count(name) for name in _COUNTED.values())),
        quizzes.get_all_quizzes(),
    )
    return AdminStats(
        **dict(zip(_COUNTED, counts)),
        active_quizzes=sum(1 for q in all_quizzes if q.is_active),
        total_quiz_time=sum(q.duration or 0 for q in all_quizzes),
    )
