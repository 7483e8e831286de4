"""
Per-quiz analytics and leaderboard.

Ranking: score descending, then time taken ascending with unrecorded times
last. Ranks are 1-based positions after the sort, so full ties still get
distinct consecutive ranks (input order decides). Percentages and averages
round half up.
"""

import asyncio
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from core.errors import QuizNotFound
from database.identity_repository import IdentityRepository
from database.quiz_repository import QuizRepository
from database.schemas import LeaderboardEntry, QuizAnalytics, QuizAttempt, Student


def round_half_up(value: float, places: int = 0) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def percentage(score: int, total: int) -> int:
    return int((Decimal(score) * 100 / Decimal(total)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def rank_entries(entries: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
    def sort_key(entry: LeaderboardEntry):
        time_taken = entry.time_taken if entry.time_taken is not None else math.inf
        return (-entry.score, time_taken)

    ranked = sorted(entries, key=sort_key)
    return [entry.model_copy(update={"rank": position}) for position, entry in enumerate(ranked, start=1)]


def aggregate(entries: List[LeaderboardEntry]) -> Dict[str, float]:
    if not entries:
        return {
            "average_score": 0,
            "average_percentage": 0,
            "highest_score": 0,
            "lowest_score": 0,
        }
    scores = [e.score for e in entries]
    return {
        "average_score": float(round_half_up(sum(scores) / len(scores), 1)),
        "average_percentage": int(round_half_up(sum(e.percentage for e in entries) / len(entries))),
        "highest_score": max(scores),
        "lowest_score": min(scores),
    }


def build_entry(attempt: QuizAttempt, student: Optional[Student], quiz_question_count: int) -> LeaderboardEntry:
    score = attempt.score or 0
    total = attempt.total_questions if attempt.total_questions is not None else quiz_question_count
    total = total or 1
    return LeaderboardEntry(
        student_id=attempt.user_id,
        student_name=student.name if student else "Unknown Student",
        student_email=student.email if student else "",
        score=score,
        total_questions=total,
        percentage=percentage(score, total),
        time_taken=attempt.time_taken,
        submitted_at=attempt.submitted_at,
    )


class AnalyticsEngine:
    def __init__(self, quizzes: QuizRepository, identities: IdentityRepository):
        self.quizzes = quizzes
        self.identities = identities

    async def get_quiz_analytics(self, quiz_id: str) -> QuizAnalytics:
        quiz = await self.quizzes.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFound(quiz_id)

        attempts, questions = await asyncio.gather(
            self.quizzes.get_attempts_by_quiz(quiz_id),
            self.quizzes.get_questions_by_quiz(quiz_id),
        )
        question_count = len(questions)
        if not attempts:
            return QuizAnalytics(quiz_id=quiz_id, quiz_title=quiz.title, total_questions=question_count)

        student_ids = list(dict.fromkeys(a.user_id for a in attempts))
        students = await asyncio.gather(*(self.identities.get_student(sid) for sid in student_ids))
        student_by_id = dict(zip(student_ids, students))

        leaderboard = rank_entries(
            [build_entry(a, student_by_id.get(a.user_id), question_count) for a in attempts]
        )
        return QuizAnalytics(
            quiz_id=quiz_id,
            quiz_title=quiz.title,
            total_attempts=len(attempts),
            total_questions=question_count,
            leaderboard=leaderboard,
            **aggregate(leaderboard),
        )
