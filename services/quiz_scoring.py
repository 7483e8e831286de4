"""
Quiz submission and scoring.
One point per question whose selected option index equals the answer key.
"""

from typing import Dict, List, Optional, Tuple

from core.errors import AttemptConflict, QuizNotFound, ValidationFailed
from database.quiz_repository import QuizRepository
from database.schemas import Question, QuizAttempt


def score_answers(questions: List[Question], answers: Dict[str, int]) -> int:
    return sum(1 for q in questions if answers.get(q.id) == q.correct_answer)


def answer_key(questions: List[Question]) -> Dict[str, int]:
    return {q.id: q.correct_answer for q in questions}


class QuizSubmission:
    def __init__(self, quizzes: QuizRepository):
        self.quizzes = quizzes

    async def submit(
        self,
        user_id: str,
        quiz_id: str,
        answers: Dict[str, int],
        time_taken: Optional[int] = None,
    ) -> Tuple[QuizAttempt, Dict[str, int]]:
        """Score and store a user's only attempt at a quiz; returns it with the answer key."""
        if await self.quizzes.get_quiz(quiz_id) is None:
            raise QuizNotFound(quiz_id)
        existing = await self.quizzes.get_user_attempt_for_quiz(user_id, quiz_id)
        if existing is not None:
            raise AttemptConflict(existing)

        questions = await self.quizzes.get_questions_by_quiz(quiz_id)
        if not questions:
            raise ValidationFailed("This quiz has no questions.")

        attempt = await self.quizzes.create_attempt(
            user_id=user_id,
            quiz_id=quiz_id,
            answers=answers,
            score=score_answers(questions, answers),
            total_questions=len(questions),
            time_taken=time_taken,
        )
        return attempt, answer_key(questions)
