# lms/quizzes/router.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from lms.database import get_db
from lms.deps import get_current_user
from lms.accounts.models import User
from lms.accounts.schemas import StandardResponse
from lms.courses.prerequisites import PrerequisiteService
from lms.quizzes.service import QuizService
from lms.quizzes.schemas import QuizForTaking, QuizAttempt, QuizSubmission, QuizResult
from lms.exceptions import AccessDeniedError, NotFoundError, InvalidStateError

router = APIRouter()

async def _owned_attempt(db: AsyncSession, attempt_id: int, user: User):
    attempt = await QuizService.get_attempt(db, attempt_id)
    if attempt.user_id != user.id and not user.is_admin:
        raise NotFoundError("Quiz attempt")
    return attempt

@router.get("/{quiz_id}", response_model=QuizForTaking)
async def get_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Quiz questions without the answers"""
    quiz = await QuizService.get_quiz(db, quiz_id)
    if quiz.lesson_id is not None:
        access = await PrerequisiteService.check_lesson_access(db, current_user.id, quiz.lesson_id)
        if not access.can_access:
            raise AccessDeniedError(access.message, reason=access.reason.value)
    return await QuizService.get_quiz_for_taking(db, quiz_id, current_user.id)

@router.post("/{quiz_id}/start", response_model=QuizAttempt, status_code=201)
async def start_quiz(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await QuizService.start_attempt(db, current_user.id, quiz_id)

@router.get("/{quiz_id}/attempts", response_model=List[QuizAttempt])
async def get_quiz_attempts(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get user's quiz attempts, newest first"""
    await QuizService.get_quiz(db, quiz_id)
    return await QuizService.get_user_attempts(db, current_user.id, quiz_id)

@router.get("/{quiz_id}/remaining", response_model=StandardResponse)
async def get_remaining_attempts(
    quiz_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await QuizService.get_quiz(db, quiz_id)
    latest = await QuizService.get_latest_attempt(db, current_user.id, quiz_id)
    return StandardResponse(
        message="Remaining attempts",
        data={
            "quiz_id": quiz_id,
            "remaining_attempts": await QuizService.get_remaining_attempts(db, current_user.id, quiz_id),
            "passed": await QuizService.is_quiz_passed(db, current_user.id, quiz_id),
            "latest_attempt_id": latest.id if latest else None,
            "latest_score": latest.score if latest else None
        }
    )

@router.post("/attempts/{attempt_id}/submit", response_model=QuizResult)
async def submit_quiz(
    attempt_id: int,
    submission: QuizSubmission,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Grade an open attempt; a second submission is rejected"""
    return await QuizService.submit_attempt(db, attempt_id, submission.answers, user_id=current_user.id)

@router.get("/attempts/{attempt_id}/result", response_model=QuizResult)
async def get_attempt_result(
    attempt_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    attempt = await _owned_attempt(db, attempt_id, current_user)
    if attempt.completed_at is None:
        raise InvalidStateError("Quiz attempt not submitted yet")
    return await QuizService.calculate_quiz_score(db, attempt_id)
