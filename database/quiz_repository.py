"""
Quizzes, the shared question bank, the ordered quiz<->question join and attempts.

"id in set" lookups go through DocumentStore.find_in, which batches them at the
store's in_batch_size. Only quizzes are cached; questions and links are read
straight from the store.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from core.cache import CacheTTL, TTLCache
from core.errors import AttemptConflict, ValidationFailed
from database import collections as col
from database.document_store import DocumentStore, generate_id
from database.schemas import (
    AttemptWithQuiz,
    Question,
    QuestionCreate,
    QuestionUpdate,
    QuestionWithQuizInfo,
    Quiz,
    QuizAttempt,
    QuizCreate,
    QuizQuestionLink,
    QuizUpdate,
    QuizUsage,
    SyncQuestionsResult,
    SyncStatus,
    newest_first,
    utcnow,
)

log = logging.getLogger(__name__)

QUIZZES_ALL = "quizzes_all"


class QuizRepository:
    def __init__(self, store: DocumentStore, cache: TTLCache, ttl: CacheTTL):
        self.store = store
        self.cache = cache
        self.ttl = ttl

    # ==========================================
    # QUIZZES
    # ==========================================

    async def get_all_quizzes(self) -> List[Quiz]:
        cached = self.cache.get(QUIZZES_ALL)
        if cached is not None:
            return cached
        docs = await self.store.find(col.QUIZZES)
        quizzes = newest_first((Quiz.model_validate(d) for d in docs), "created_at")
        self.cache.set(QUIZZES_ALL, quizzes, self.ttl.quizzes)
        return quizzes

    async def get_quizzes_by_subject(self, subject_id: str) -> List[Quiz]:
        docs = await self.store.find(col.QUIZZES, {"subjectId": subject_id})
        return newest_first((Quiz.model_validate(d) for d in docs), "created_at")

    async def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        key = f"quiz_{quiz_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        doc = await self.store.get(col.QUIZZES, quiz_id)
        if doc is None:
            return None
        quiz = Quiz.model_validate(doc)
        self.cache.set(key, quiz, self.ttl.quizzes)
        return quiz

    async def create_quiz(self, payload: QuizCreate) -> Quiz:
        data = payload.model_dump(exclude={"is_active"})
        quiz = Quiz(
            id=generate_id(),
            is_active=bool(payload.is_active),
            created_at=utcnow(),
            **data,
        )
        await self.store.create(col.QUIZZES, quiz.to_document(), quiz.id)
        self.cache.invalidate(QUIZZES_ALL)
        return quiz

    async def update_quiz(self, quiz_id: str, payload: QuizUpdate) -> Optional[Quiz]:
        changes = payload.to_document(exclude_unset=True)
        if not await self.store.update(col.QUIZZES, quiz_id, changes):
            return None
        self.cache.invalidate(QUIZZES_ALL, f"quiz_{quiz_id}")
        doc = await self.store.get(col.QUIZZES, quiz_id)
        return Quiz.model_validate(doc) if doc else None

    async def delete_quiz(self, quiz_id: str) -> bool:
        """Delete a quiz together with its question links and attempts."""
        if not await self.store.exists(col.QUIZZES, quiz_id):
            return False
        links, attempts = await asyncio.gather(
            self.store.find(col.QUIZ_QUESTIONS, {"quizId": quiz_id}),
            self.store.find(col.QUIZ_ATTEMPTS, {"quizId": quiz_id}),
        )
        await self.store.delete_many(col.QUIZ_QUESTIONS, [d["id"] for d in links])
        await self.store.delete_many(col.QUIZ_ATTEMPTS, [d["id"] for d in attempts])
        await self.store.delete(col.QUIZZES, quiz_id)
        self.cache.invalidate(QUIZZES_ALL, f"quiz_{quiz_id}")
        log.info("Deleted quiz %s (%d links, %d attempts)", quiz_id, len(links), len(attempts))
        return True

    # ==========================================
    # QUESTION BANK
    # ==========================================

    async def get_all_questions(self) -> List[Question]:
        docs = await self.store.find(col.QUESTIONS)
        return sorted((Question.model_validate(d) for d in docs), key=lambda q: q.order)

    async def get_question(self, question_id: str) -> Optional[Question]:
        doc = await self.store.get(col.QUESTIONS, question_id)
        return Question.model_validate(doc) if doc else None

    async def create_question(self, payload: QuestionCreate) -> Question:
        question = Question(id=generate_id(), **payload.model_dump())
        await self.store.create(col.QUESTIONS, question.to_document(), question.id)
        return question

    async def update_question(self, question_id: str, payload: QuestionUpdate) -> Optional[Question]:
        current = await self.get_question(question_id)
        if current is None:
            return None
        changes = payload.to_document(exclude_unset=True)
        options = changes.get("options", current.options)
        answer = changes.get("correctAnswer", current.correct_answer)
        if answer >= len(options):
            raise ValidationFailed("correctAnswer must index one of the options")
        await self.store.update(col.QUESTIONS, question_id, changes)
        return await self.get_question(question_id)

    async def delete_question(self, question_id: str) -> bool:
        """Delete a question after removing it from every quiz."""
        if not await self.store.exists(col.QUESTIONS, question_id):
            return False
        links = await self.store.find(col.QUIZ_QUESTIONS, {"questionId": question_id})
        await self.store.delete_many(col.QUIZ_QUESTIONS, [d["id"] for d in links])
        await self.store.delete(col.QUESTIONS, question_id)
        return True

    # ==========================================
    # QUIZ <-> QUESTION JOIN
    # ==========================================

    async def get_quiz_links(self, quiz_id: str) -> List[QuizQuestionLink]:
        docs = await self.store.find(col.QUIZ_QUESTIONS, {"quizId": quiz_id})
        return sorted((QuizQuestionLink.model_validate(d) for d in docs), key=lambda link: link.order)

    async def get_questions_by_quiz(self, quiz_id: str) -> List[Question]:
        """Questions in link order; links to deleted questions are skipped."""
        links = await self.get_quiz_links(quiz_id)
        if not links:
            return []
        docs = await self.store.get_many(col.QUESTIONS, [link.question_id for link in links])
        by_id = {d["id"]: Question.model_validate(d) for d in docs}
        return [by_id[link.question_id] for link in links if link.question_id in by_id]

    async def add_question_to_quiz(self, quiz_id: str, question_id: str, order: Optional[int] = None) -> bool:
        """Link a question to a quiz. Returns False if the link already existed."""
        existing = await self.store.find_one(
            col.QUIZ_QUESTIONS, {"quizId": quiz_id, "questionId": question_id}
        )
        if existing is not None:
            return False
        if order is None:
            links = await self.get_quiz_links(quiz_id)
            order = max((link.order for link in links), default=-1) + 1
        await self.store.create(
            col.QUIZ_QUESTIONS,
            {"quizId": quiz_id, "questionId": question_id, "order": order},
        )
        return True

    async def remove_question_from_quiz(self, quiz_id: str, question_id: str) -> int:
        docs = await self.store.find(col.QUIZ_QUESTIONS, {"quizId": quiz_id, "questionId": question_id})
        return await self.store.delete_many(col.QUIZ_QUESTIONS, [d["id"] for d in docs])

    async def reorder_questions_in_quiz(self, quiz_id: str, ordered_question_ids: List[str]) -> int:
        """
        Set each linked question's order to its position in ordered_question_ids.
        Ids that are not linked to the quiz are ignored. Returns links updated.
        """
        links = await self.get_quiz_links(quiz_id)
        link_by_question = {link.question_id: link for link in links}
        updates = [
            self.store.update(col.QUIZ_QUESTIONS, link_by_question[qid].id, {"order": position})
            for position, qid in enumerate(ordered_question_ids)
            if qid in link_by_question
        ]
        results = await asyncio.gather(*updates)
        return sum(1 for ok in results if ok)

    async def get_all_questions_with_quiz_info(self, quiz_id: Optional[str] = None) -> List[QuestionWithQuizInfo]:
        """Questions (all, or one quiz's) annotated with every quiz that uses them."""
        if quiz_id:
            questions = await self.get_questions_by_quiz(quiz_id)
        else:
            questions = await self.get_all_questions()
        if not questions:
            return []

        link_docs = await self.store.find_in(col.QUIZ_QUESTIONS, "questionId", [q.id for q in questions])
        quiz_ids_by_question: Dict[str, List[str]] = defaultdict(list)
        for doc in link_docs:
            quiz_ids_by_question[doc["questionId"]].append(doc["quizId"])

        unique_quiz_ids = list(dict.fromkeys(doc["quizId"] for doc in link_docs))
        quiz_docs = await self.store.get_many(col.QUIZZES, unique_quiz_ids)
        quizzes = {d["id"]: Quiz.model_validate(d) for d in quiz_docs}

        result = []
        for question in questions:
            usage = [
                QuizUsage(quiz_id=qz_id, quiz_title=quizzes[qz_id].title, quiz_subject_id=quizzes[qz_id].subject_id)
                for qz_id in quiz_ids_by_question.get(question.id, [])
                if qz_id in quizzes
            ]
            result.append(QuestionWithQuizInfo(**question.model_dump(), used_in_quizzes=usage))
        return result

    async def sync_questions(self, quiz_id: str, question_ids: List[str]) -> Optional[SyncQuestionsResult]:
        """
        Link many questions at once, appending after the quiz's current max order.
        An empty question_ids links the whole bank. Returns None for an unknown quiz.
        """
        quiz = await self.get_quiz(quiz_id)
        if quiz is None:
            return None
        if not question_ids:
            question_ids = [q.id for q in await self.get_all_questions()]
        if not question_ids:
            return SyncQuestionsResult(linked=0, skipped=0, total=0, message="No questions found to link.")

        links = await self.get_quiz_links(quiz_id)
        already_linked = {link.question_id for link in links}
        order = max((link.order for link in links), default=-1) + 1
        linked = skipped = 0
        for question_id in question_ids:
            if question_id in already_linked:
                skipped += 1
                continue
            await self.store.create(
                col.QUIZ_QUESTIONS,
                {"quizId": quiz_id, "questionId": question_id, "order": order},
            )
            already_linked.add(question_id)
            order += 1
            linked += 1

        return SyncQuestionsResult(
            linked=linked,
            skipped=skipped,
            total=len(question_ids),
            message=f'Linked {linked} questions to quiz "{quiz.title}". {skipped} were already linked.',
        )

    async def get_sync_status(self, quiz_id: str) -> Optional[SyncStatus]:
        quiz = await self.get_quiz(quiz_id)
        if quiz is None:
            return None
        questions, links = await asyncio.gather(self.get_all_questions(), self.get_quiz_links(quiz_id))
        linked_ids = {link.question_id for link in links}
        unlinked = [q.id for q in questions if q.id not in linked_ids]
        return SyncStatus(
            quiz_id=quiz_id,
            quiz_title=quiz.title,
            total_questions_in_bank=len(questions),
            linked_to_this_quiz=len(linked_ids),
            not_linked=len(unlinked),
            unlinked_question_ids=unlinked,
        )

    # ==========================================
    # ATTEMPTS
    # ==========================================

    async def create_attempt(
        self,
        user_id: str,
        quiz_id: str,
        answers: Dict[str, int],
        score: int,
        total_questions: int,
        time_taken: Optional[int] = None,
    ) -> QuizAttempt:
        """Persist an attempt; raises AttemptConflict if the user already attempted the quiz."""
        existing = await self.get_user_attempt_for_quiz(user_id, quiz_id)
        if existing is not None:
            raise AttemptConflict(existing)
        attempt = QuizAttempt(
            id=generate_id(),
            user_id=user_id,
            quiz_id=quiz_id,
            answers=answers,
            score=score,
            total_questions=total_questions,
            time_taken=time_taken,
            submitted_at=utcnow(),
        )
        await self.store.create(col.QUIZ_ATTEMPTS, attempt.to_document(), attempt.id)
        log.info("Attempt %s: user %s scored %d/%d on quiz %s", attempt.id, user_id, score, total_questions, quiz_id)
        return attempt

    async def get_attempt(self, attempt_id: str) -> Optional[QuizAttempt]:
        doc = await self.store.get(col.QUIZ_ATTEMPTS, attempt_id)
        return QuizAttempt.model_validate(doc) if doc else None

    async def get_user_attempt_for_quiz(self, user_id: str, quiz_id: str) -> Optional[QuizAttempt]:
        doc = await self.store.find_one(col.QUIZ_ATTEMPTS, {"userId": user_id, "quizId": quiz_id})
        return QuizAttempt.model_validate(doc) if doc else None

    async def get_attempts_by_quiz(self, quiz_id: str) -> List[QuizAttempt]:
        docs = await self.store.find(col.QUIZ_ATTEMPTS, {"quizId": quiz_id})
        return [QuizAttempt.model_validate(d) for d in docs]

    async def get_attempts_by_user(self, user_id: str) -> List[AttemptWithQuiz]:
        """The user's attempts, newest first, each with its quiz (fetched concurrently)."""
        docs = await self.store.find(col.QUIZ_ATTEMPTS, {"userId": user_id})
        attempts = newest_first((QuizAttempt.model_validate(d) for d in docs), "submitted_at")
        quizzes = await asyncio.gather(*(self.get_quiz(a.quiz_id) for a in attempts))
        return [
            AttemptWithQuiz(**attempt.model_dump(), quiz=quiz)
            for attempt, quiz in zip(attempts, quizzes)
        ]
