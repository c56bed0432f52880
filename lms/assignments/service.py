# lms/assignments/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from fastapi import UploadFile
from datetime import datetime
from typing import List, Optional
import logging

from lms.accounts.models import User
from lms.courses.models import Lesson, Module
from lms.courses.prerequisites import PrerequisiteService
from lms.assignments.models import Assignment, AssignmentSubmission, SubmissionStatus
from lms.assignments.schemas import AssignmentCreate, AssignmentUpdate
from lms.exceptions import NotFoundError, AccessDeniedError, InvalidStateError
from lms.utils.file_upload import save_assignment_file, delete_upload_file
from lms.utils.email import send_assignment_feedback_email

logger = logging.getLogger(__name__)

class AssignmentService:

    @staticmethod
    async def get_assignment(db: AsyncSession, assignment_id: int) -> Assignment:
        result = await db.execute(select(Assignment).where(Assignment.id == assignment_id))
        assignment = result.scalar_one_or_none()
        if not assignment:
            raise NotFoundError("Assignment")
        return assignment

    @staticmethod
    async def get_lesson_assignment(db: AsyncSession, lesson_id: int) -> Optional[Assignment]:
        result = await db.execute(select(Assignment).where(Assignment.lesson_id == lesson_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_assignment(db: AsyncSession, assignment_data: AssignmentCreate) -> Assignment:
        if assignment_data.lesson_id is not None:
            result = await db.execute(select(Lesson.id).where(Lesson.id == assignment_data.lesson_id))
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Lesson")

        assignment = Assignment(**assignment_data.model_dump())
        db.add(assignment)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError("Lesson already has an assignment")
        await db.refresh(assignment)

        logger.info(f"Assignment created: {assignment.id}")
        return assignment

    @staticmethod
    async def update_assignment(db: AsyncSession, assignment_id: int, assignment_data: AssignmentUpdate) -> Assignment:
        assignment = await AssignmentService.get_assignment(db, assignment_id)

        for field, value in assignment_data.model_dump(exclude_unset=True).items():
            setattr(assignment, field, value)

        await db.commit()
        await db.refresh(assignment)
        return assignment

    @staticmethod
    async def delete_assignment(db: AsyncSession, assignment_id: int) -> bool:
        assignment = await AssignmentService.get_assignment(db, assignment_id)
        result = await db.execute(
            select(AssignmentSubmission.file_url).where(AssignmentSubmission.assignment_id == assignment_id)
        )
        file_urls = list(result.scalars().all())

        await db.execute(delete(AssignmentSubmission).where(AssignmentSubmission.assignment_id == assignment_id))
        await db.delete(assignment)
        await db.commit()

        for file_url in file_urls:
            await delete_upload_file(file_url)
        return True

    @staticmethod
    async def can_user_submit(db: AsyncSession, user_id: int, assignment_id: int) -> bool:
        """Assignment open, lesson unlocked and not past its due date"""
        if not await PrerequisiteService.can_submit_assignment(db, user_id, assignment_id):
            return False
        assignment = await AssignmentService.get_assignment(db, assignment_id)
        return not assignment.is_overdue()

    @staticmethod
    async def submit_assignment(
        db: AsyncSession,
        user_id: int,
        assignment_id: int,
        upload_file: UploadFile
    ) -> AssignmentSubmission:
        """Store the file and create or replace the user's submission"""
        assignment = await AssignmentService.get_assignment(db, assignment_id)
        if not assignment.is_active:
            raise InvalidStateError("Assignment is not accepting submissions")

        if assignment.lesson_id is not None:
            access = await PrerequisiteService.check_lesson_access(db, user_id, assignment.lesson_id)
            if not access.can_access:
                raise AccessDeniedError(access.message, reason=access.reason.value)

        if assignment.is_overdue():
            raise InvalidStateError("Assignment due date has passed")

        file_url = await save_assignment_file(
            upload_file,
            allowed_extensions=assignment.allowed_extensions,
            max_size=assignment.max_file_size
        )

        submission = await AssignmentService.get_submission(db, user_id, assignment_id)
        if submission:
            # Resubmission resets the review
            previous_file_url = submission.file_url
            submission.file_url = file_url
            submission.original_file_name = upload_file.filename
            submission.status = SubmissionStatus.PENDING
            submission.feedback = None
            submission.grade = None
            submission.reviewed_at = None
            submission.reviewed_by = None
            submission.submitted_at = datetime.utcnow()
            await db.commit()
            if previous_file_url != file_url:
                await delete_upload_file(previous_file_url)
        else:
            submission = AssignmentSubmission(
                assignment_id=assignment_id,
                user_id=user_id,
                file_url=file_url,
                original_file_name=upload_file.filename,
                status=SubmissionStatus.PENDING,
                submitted_at=datetime.utcnow()
            )
            db.add(submission)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                await delete_upload_file(file_url)
                raise InvalidStateError("Submission already in progress")

        await db.refresh(submission)
        logger.info(f"Assignment submitted: {submission.id} by user {user_id}")
        return submission

    @staticmethod
    async def get_submission(db: AsyncSession, user_id: int, assignment_id: int) -> Optional[AssignmentSubmission]:
        result = await db.execute(
            select(AssignmentSubmission).where(
                AssignmentSubmission.user_id == user_id,
                AssignmentSubmission.assignment_id == assignment_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_submission_by_id(db: AsyncSession, submission_id: int) -> AssignmentSubmission:
        result = await db.execute(select(AssignmentSubmission).where(AssignmentSubmission.id == submission_id))
        submission = result.scalar_one_or_none()
        if not submission:
            raise NotFoundError("Submission")
        return submission

    @staticmethod
    async def get_assignment_submissions(db: AsyncSession, assignment_id: int) -> List[AssignmentSubmission]:
        result = await db.execute(
            select(AssignmentSubmission)
            .where(AssignmentSubmission.assignment_id == assignment_id)
            .order_by(AssignmentSubmission.submitted_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_user_submissions(db: AsyncSession, user_id: int) -> List[AssignmentSubmission]:
        result = await db.execute(
            select(AssignmentSubmission)
            .where(AssignmentSubmission.user_id == user_id)
            .order_by(AssignmentSubmission.submitted_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_pending_submissions(db: AsyncSession) -> List[AssignmentSubmission]:
        """Review queue, oldest first"""
        result = await db.execute(
            select(AssignmentSubmission)
            .where(AssignmentSubmission.status == SubmissionStatus.PENDING)
            .order_by(AssignmentSubmission.submitted_at)
        )
        return result.scalars().all()

    @staticmethod
    async def review_submission(
        db: AsyncSession,
        submission_id: int,
        status: str,
        feedback: Optional[str],
        reviewer_id: int,
        grade: Optional[float] = None
    ) -> AssignmentSubmission:
        submission = await AssignmentService.get_submission_by_id(db, submission_id)

        submission.status = status
        submission.feedback = feedback
        submission.grade = grade
        submission.reviewed_by = reviewer_id
        submission.reviewed_at = datetime.utcnow()
        await db.commit()
        await db.refresh(submission)

        logger.info(f"Assignment submission reviewed: {submission_id} by reviewer {reviewer_id}, status {status}")

        user = await db.get(User, submission.user_id)
        assignment = await db.get(Assignment, submission.assignment_id)
        if user and assignment:
            await send_assignment_feedback_email(
                email=user.email,
                user_name=user.full_name,
                assignment_title=assignment.title,
                status=status,
                feedback=feedback,
                grade=grade
            )

        if status == SubmissionStatus.PASSED:
            await AssignmentService._recheck_certificate(db, submission.user_id, submission.assignment_id)
            await db.refresh(submission)

        return submission

    @staticmethod
    async def _recheck_certificate(db: AsyncSession, user_id: int, assignment_id: int):
        """A passed required assignment can be the last missing piece for a certificate"""
        result = await db.execute(
            select(Module.course_id)
            .join(Lesson, Lesson.module_id == Module.id)
            .join(Assignment, Assignment.lesson_id == Lesson.id)
            .where(Assignment.id == assignment_id)
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
