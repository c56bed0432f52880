# lms/quizzes/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import Dict, List, Optional
import logging

from lms.courses.models import Lesson, Module
from lms.courses.prerequisites import PrerequisiteService
from lms.quizzes.models import Quiz, Question, AnswerChoice, QuizAttempt
from lms.quizzes.schemas import (
    QuizCreate, QuizUpdate, QuestionCreate, QuestionUpdate,
    AnswerChoiceCreate, AnswerChoiceUpdate, QuizAnswer, QuizResult,
    QuizForTaking, QuestionForTaking, ChoiceForTaking
)
from lms.quizzes.grading import grade_answers
from lms.exceptions import NotFoundError, AccessDeniedError, InvalidStateError

logger = logging.getLogger(__name__)

class QuizService:

    # Quiz management

    @staticmethod
    async def get_quiz(db: AsyncSession, quiz_id: int) -> Quiz:
        result = await db.execute(select(Quiz).where(Quiz.id == quiz_id))
        quiz = result.scalar_one_or_none()
        if not quiz:
            raise NotFoundError("Quiz")
        return quiz

    @staticmethod
    async def get_lesson_quiz(db: AsyncSession, lesson_id: int) -> Optional[Quiz]:
        result = await db.execute(select(Quiz).where(Quiz.lesson_id == lesson_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_quiz(db: AsyncSession, quiz_data: QuizCreate) -> Quiz:
        if quiz_data.lesson_id is not None:
            result = await db.execute(select(Lesson.id).where(Lesson.id == quiz_data.lesson_id))
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Lesson")

        quiz = Quiz(**quiz_data.model_dump())
        db.add(quiz)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError("Lesson already has a quiz")
        await db.refresh(quiz)

        logger.info(f"Quiz created: {quiz.id}")
        return quiz

    @staticmethod
    async def update_quiz(db: AsyncSession, quiz_id: int, quiz_data: QuizUpdate) -> Quiz:
        quiz = await QuizService.get_quiz(db, quiz_id)

        for field, value in quiz_data.model_dump(exclude_unset=True).items():
            setattr(quiz, field, value)

        await db.commit()
        await db.refresh(quiz)
        return quiz

    @staticmethod
    async def delete_quiz(db: AsyncSession, quiz_id: int) -> bool:
        quiz = await QuizService.get_quiz(db, quiz_id)

        question_ids = select(Question.id).where(Question.quiz_id == quiz_id)
        await db.execute(delete(AnswerChoice).where(AnswerChoice.question_id.in_(question_ids)))
        await db.execute(delete(Question).where(Question.quiz_id == quiz_id))
        await db.execute(delete(QuizAttempt).where(QuizAttempt.quiz_id == quiz_id))
        await db.delete(quiz)
        await db.commit()

        logger.info(f"Quiz deleted: {quiz_id}")
        return True

    # Questions and choices

    @staticmethod
    async def get_quiz_questions(db: AsyncSession, quiz_id: int) -> List[Question]:
        result = await db.execute(
            select(Question)
            .where(Question.quiz_id == quiz_id)
            .order_by(Question.order, Question.id)
        )
        return result.scalars().all()

    @staticmethod
    async def get_choices_by_question(db: AsyncSession, question_ids: List[int]) -> Dict[int, List[AnswerChoice]]:
        choices = {question_id: [] for question_id in question_ids}
        if not question_ids:
            return choices

        result = await db.execute(
            select(AnswerChoice)
            .where(AnswerChoice.question_id.in_(question_ids))
            .order_by(AnswerChoice.order, AnswerChoice.id)
        )
        for choice in result.scalars().all():
            choices[choice.question_id].append(choice)
        return choices

    @staticmethod
    async def get_question(db: AsyncSession, question_id: int) -> Question:
        result = await db.execute(select(Question).where(Question.id == question_id))
        question = result.scalar_one_or_none()
        if not question:
            raise NotFoundError("Question")
        return question

    @staticmethod
    async def create_question(db: AsyncSession, quiz_id: int, question_data: QuestionCreate) -> Question:
        await QuizService.get_quiz(db, quiz_id)

        if sum(1 for choice in question_data.choices if choice.is_correct) > 1:
            raise InvalidStateError("A question can have only one correct choice")

        question = Question(
            quiz_id=quiz_id,
            **question_data.model_dump(exclude={"choices"})
        )
        db.add(question)
        await db.flush()

        for choice_data in question_data.choices:
            db.add(AnswerChoice(question_id=question.id, **choice_data.model_dump()))

        await db.commit()
        await db.refresh(question)

        logger.info(f"Question created: {question.id} for quiz {quiz_id}")
        return question

    @staticmethod
    async def update_question(db: AsyncSession, question_id: int, question_data: QuestionUpdate) -> Question:
        question = await QuizService.get_question(db, question_id)

        for field, value in question_data.model_dump(exclude_unset=True).items():
            setattr(question, field, value)

        await db.commit()
        await db.refresh(question)
        return question

    @staticmethod
    async def delete_question(db: AsyncSession, question_id: int) -> bool:
        question = await QuizService.get_question(db, question_id)

        await db.execute(delete(AnswerChoice).where(AnswerChoice.question_id == question_id))
        await db.delete(question)
        await db.commit()
        return True

    @staticmethod
    async def _ensure_single_correct(db: AsyncSession, question_id: int, exclude_choice_id: Optional[int] = None):
        query = select(func.count(AnswerChoice.id)).where(
            AnswerChoice.question_id == question_id,
            AnswerChoice.is_correct == True
        )
        if exclude_choice_id is not None:
            query = query.where(AnswerChoice.id != exclude_choice_id)
        result = await db.execute(query)
        if (result.scalar() or 0) > 0:
            raise InvalidStateError("A question can have only one correct choice")

    @staticmethod
    async def create_choice(db: AsyncSession, question_id: int, choice_data: AnswerChoiceCreate) -> AnswerChoice:
        await QuizService.get_question(db, question_id)
        if choice_data.is_correct:
            await QuizService._ensure_single_correct(db, question_id)

        choice = AnswerChoice(question_id=question_id, **choice_data.model_dump())
        db.add(choice)
        await db.commit()
        await db.refresh(choice)
        return choice

    @staticmethod
    async def update_choice(db: AsyncSession, choice_id: int, choice_data: AnswerChoiceUpdate) -> AnswerChoice:
        result = await db.execute(select(AnswerChoice).where(AnswerChoice.id == choice_id))
        choice = result.scalar_one_or_none()
        if not choice:
            raise NotFoundError("Answer choice")

        update_data = choice_data.model_dump(exclude_unset=True)
        if update_data.get("is_correct"):
            await QuizService._ensure_single_correct(db, choice.question_id, exclude_choice_id=choice.id)

        for field, value in update_data.items():
            setattr(choice, field, value)

        await db.commit()
        await db.refresh(choice)
        return choice

    @staticmethod
    async def delete_choice(db: AsyncSession, choice_id: int) -> bool:
        result = await db.execute(select(AnswerChoice).where(AnswerChoice.id == choice_id))
        choice = result.scalar_one_or_none()
        if not choice:
            raise NotFoundError("Answer choice")

        await db.delete(choice)
        await db.commit()
        return True

    @staticmethod
    async def get_quiz_for_taking(db: AsyncSession, quiz_id: int, user_id: int) -> QuizForTaking:
        """Quiz with its questions, stripped of the correct answers"""
        quiz = await QuizService.get_quiz(db, quiz_id)
        questions = await QuizService.get_quiz_questions(db, quiz_id)
        choices = await QuizService.get_choices_by_question(db, [question.id for question in questions])

        return QuizForTaking(
            id=quiz.id,
            title=quiz.title,
            instructions=quiz.instructions,
            passing_score=quiz.passing_score,
            max_attempts=quiz.max_attempts,
            remaining_attempts=await QuizService.get_remaining_attempts(db, user_id, quiz_id),
            questions=[
                QuestionForTaking(
                    id=question.id,
                    question_text=question.question_text,
                    order=question.order,
                    points=question.points,
                    choices=[ChoiceForTaking.model_validate(choice) for choice in choices[question.id]]
                )
                for question in questions
            ]
        )

    # Attempts

    @staticmethod
    async def _count_attempts(db: AsyncSession, user_id: int, quiz_id: int) -> int:
        result = await db.execute(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def get_remaining_attempts(db: AsyncSession, user_id: int, quiz_id: int) -> int:
        result = await db.execute(select(Quiz.max_attempts).where(Quiz.id == quiz_id))
        max_attempts = result.scalar_one_or_none()
        if max_attempts is None:
            return 0

        attempt_count = await QuizService._count_attempts(db, user_id, quiz_id)
        return max(0, max_attempts - attempt_count)

    @staticmethod
    async def can_user_take_quiz(db: AsyncSession, user_id: int, quiz_id: int) -> bool:
        if not await PrerequisiteService.can_take_quiz(db, user_id, quiz_id):
            return False
        return await QuizService.get_remaining_attempts(db, user_id, quiz_id) > 0

    @staticmethod
    async def start_attempt(db: AsyncSession, user_id: int, quiz_id: int) -> QuizAttempt:
        """Open a new attempt numbered after the user's previous ones"""
        quiz = await QuizService.get_quiz(db, quiz_id)
        if not quiz.is_active:
            raise InvalidStateError("Quiz is not active")

        if quiz.lesson_id is not None:
            access = await PrerequisiteService.check_lesson_access(db, user_id, quiz.lesson_id)
            if not access.can_access:
                raise AccessDeniedError(access.message, reason=access.reason.value)

        attempt_count = await QuizService._count_attempts(db, user_id, quiz_id)
        if attempt_count >= quiz.max_attempts:
            raise InvalidStateError("No attempts remaining for this quiz")

        attempt = QuizAttempt(
            user_id=user_id,
            quiz_id=quiz_id,
            attempt_number=attempt_count + 1,
            started_at=datetime.utcnow()
        )
        db.add(attempt)
        try:
            await db.commit()
        except IntegrityError:
            # The (user, quiz, attempt_number) index rejects a concurrent start
            await db.rollback()
            raise InvalidStateError("Another attempt was started at the same time")
        await db.refresh(attempt)

        logger.info(f"Quiz attempt started: {attempt.id} for user {user_id}, quiz {quiz_id}")
        return attempt

    @staticmethod
    async def get_attempt(db: AsyncSession, attempt_id: int) -> QuizAttempt:
        result = await db.execute(select(QuizAttempt).where(QuizAttempt.id == attempt_id))
        attempt = result.scalar_one_or_none()
        if not attempt:
            raise NotFoundError("Quiz attempt")
        return attempt

    @staticmethod
    async def _grade(
        db: AsyncSession,
        quiz_id: int,
        answers: List[dict],
        started_at: Optional[datetime],
        completed_at: Optional[datetime]
    ) -> QuizResult:
        quiz = await QuizService.get_quiz(db, quiz_id)
        questions = await QuizService.get_quiz_questions(db, quiz_id)
        choices = await QuizService.get_choices_by_question(db, [question.id for question in questions])
        return grade_answers(questions, choices, answers, quiz.passing_score, started_at, completed_at)

    @staticmethod
    async def submit_attempt(
        db: AsyncSession,
        attempt_id: int,
        answers: List[QuizAnswer],
        user_id: Optional[int] = None
    ) -> QuizResult:
        """Grade and close an open attempt.

        The attempt is completed with a conditional update so only one of two
        concurrent submissions can succeed.
        """
        attempt = await QuizService.get_attempt(db, attempt_id)
        if user_id is not None and attempt.user_id != user_id:
            raise NotFoundError("Quiz attempt")
        if attempt.completed_at is not None:
            raise InvalidStateError("Quiz attempt already completed")

        quiz_id = attempt.quiz_id
        attempt_user_id = attempt.user_id
        stored_answers = [
            {"question_id": answer.question_id, "choice_id": answer.choice_id}
            for answer in answers
        ]
        now = datetime.utcnow()
        result = await QuizService._grade(db, quiz_id, stored_answers, attempt.started_at, now)

        updated = await db.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt_id, QuizAttempt.completed_at.is_(None))
            .values(
                score=result.score,
                passed=result.passed,
                user_answers=stored_answers,
                completed_at=now
            )
        )
        if updated.rowcount == 0:
            await db.rollback()
            raise InvalidStateError("Quiz attempt already completed")
        await db.commit()

        result.attempt_id = attempt_id
        logger.info(
            f"Quiz attempt submitted: {attempt_id}, score {result.score}%, passed={result.passed}"
        )

        if result.passed:
            await QuizService._recheck_certificate(db, attempt_user_id, quiz_id)

        return result

    @staticmethod
    async def _recheck_certificate(db: AsyncSession, user_id: int, quiz_id: int):
        """A passed required quiz can be the last missing piece for a certificate"""
        result = await db.execute(
            select(Module.course_id)
            .join(Lesson, Lesson.module_id == Module.id)
            .join(Quiz, Quiz.lesson_id == Lesson.id)
            .where(Quiz.id == quiz_id)
        )
        course_id = result.scalar_one_or_none()
        if course_id is None:
            return

        from lms.certificates.service import CertificateService
        try:
            await CertificateService.check_and_generate_certificate(db, user_id, course_id)
        except Exception:
            logger.exception(f"Error generating certificate for user {user_id}, course {course_id}")
            await db.rollback()

    @staticmethod
    async def calculate_quiz_score(db: AsyncSession, attempt_id: int) -> QuizResult:
        """Regrade an attempt from its stored answers"""
        attempt = await QuizService.get_attempt(db, attempt_id)
        result = await QuizService._grade(
            db,
            attempt.quiz_id,
            attempt.user_answers or [],
            attempt.started_at,
            attempt.completed_at
        )
        result.attempt_id = attempt_id
        return result

    @staticmethod
    async def get_user_attempts(db: AsyncSession, user_id: int, quiz_id: int) -> List[QuizAttempt]:
        result = await db.execute(
            select(QuizAttempt)
            .where(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
            .order_by(QuizAttempt.attempt_number.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_latest_attempt(db: AsyncSession, user_id: int, quiz_id: int) -> Optional[QuizAttempt]:
        result = await db.execute(
            select(QuizAttempt)
            .where(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
            .order_by(QuizAttempt.attempt_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def is_quiz_passed(db: AsyncSession, user_id: int, quiz_id: int) -> bool:
        """True when any attempt by the user passed"""
        result = await db.execute(
            select(QuizAttempt.id).where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.passed == True
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None
