# lms/courses/progress.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from datetime import datetime
from typing import List, Optional
import logging

from lms.courses.models import Module, Lesson, Enrollment, LessonProgress, EnrollmentStatus, LessonType
from lms.courses.schemas import CourseProgressSummary, LessonResumeInfo
from lms.exceptions import NotFoundError

logger = logging.getLogger(__name__)

def _apply_access(
    progress: LessonProgress,
    completed: bool,
    video_timestamp: Optional[int],
    now: datetime
) -> bool:
    """Update an existing progress row in place; True when it just became completed"""
    newly_completed = False
    if completed and not progress.is_completed:
        progress.is_completed = True
        progress.completed_at = now
        newly_completed = True

    # Rewinds are legitimate, store whatever the player reports
    if video_timestamp is not None:
        progress.video_timestamp = video_timestamp

    if progress.started_at is None:
        progress.started_at = now
    progress.last_accessed_at = now
    return newly_completed

class LessonProgressService:

    @staticmethod
    async def get_lesson_progress(
        db: AsyncSession,
        enrollment_id: int,
        lesson_id: int
    ) -> Optional[LessonProgress]:
        result = await db.execute(
            select(LessonProgress).where(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.lesson_id == lesson_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def record_access(
        db: AsyncSession,
        enrollment_id: int,
        lesson_id: int,
        completed: bool = False,
        video_timestamp: Optional[int] = None
    ) -> LessonProgress:
        """Create or update the progress row for a lesson.

        Completion only ever moves from False to True. When the lesson is
        newly completed the course completion check runs afterwards.
        """
        result = await db.execute(select(Enrollment.course_id).where(Enrollment.id == enrollment_id))
        course_id = result.scalar_one_or_none()
        if course_id is None:
            raise NotFoundError("Enrollment")

        result = await db.execute(
            select(Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(Lesson.id == lesson_id, Module.course_id == course_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Lesson")

        now = datetime.utcnow()
        progress = await LessonProgressService.get_lesson_progress(db, enrollment_id, lesson_id)

        if progress is None:
            progress = LessonProgress(
                enrollment_id=enrollment_id,
                lesson_id=lesson_id,
                is_completed=completed,
                video_timestamp=video_timestamp,
                started_at=now,
                completed_at=now if completed else None,
                last_accessed_at=now
            )
            db.add(progress)
            try:
                await db.commit()
                newly_completed = completed
            except IntegrityError:
                # Another request created the row first
                await db.rollback()
                progress = await LessonProgressService.get_lesson_progress(db, enrollment_id, lesson_id)
                newly_completed = _apply_access(progress, completed, video_timestamp, now)
                await db.commit()
        else:
            newly_completed = _apply_access(progress, completed, video_timestamp, now)
            await db.commit()

        logger.info(
            f"Lesson progress updated: enrollment {enrollment_id}, lesson {lesson_id}, "
            f"completed={progress.is_completed}"
        )

        if newly_completed:
            await LessonProgressService._check_course_completion(db, enrollment_id)
            await db.refresh(progress)

        return progress

    @staticmethod
    async def _check_course_completion(db: AsyncSession, enrollment_id: int) -> bool:
        """Mark the enrollment completed at 100% and try to issue the certificate"""
        percentage = await LessonProgressService.calculate_course_progress(db, enrollment_id)
        if percentage < 100:
            return False

        result = await db.execute(
            update(Enrollment)
            .where(
                Enrollment.id == enrollment_id,
                Enrollment.status == EnrollmentStatus.APPROVED,
                Enrollment.completed_at.is_(None)
            )
            .values(status=EnrollmentStatus.COMPLETED, completed_at=datetime.utcnow())
        )
        await db.commit()
        if result.rowcount == 0:
            return False

        logger.info(f"Course completed: enrollment {enrollment_id}")

        result = await db.execute(
            select(Enrollment.user_id, Enrollment.course_id).where(Enrollment.id == enrollment_id)
        )
        user_id, course_id = result.one()

        from lms.certificates.service import CertificateService
        try:
            await CertificateService.check_and_generate_certificate(db, user_id, course_id)
        except Exception:
            logger.exception(
                f"Error generating certificate for user {user_id}, course {course_id}"
            )
            await db.rollback()

        return True

    @staticmethod
    async def get_enrollment_progress(db: AsyncSession, enrollment_id: int) -> List[LessonProgress]:
        """All progress rows of an enrollment in course order"""
        result = await db.execute(
            select(LessonProgress)
            .join(Lesson, LessonProgress.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(LessonProgress.enrollment_id == enrollment_id)
            .order_by(Module.order, Lesson.order)
        )
        return result.scalars().all()

    # Video position

    @staticmethod
    async def save_video_timestamp(
        db: AsyncSession,
        enrollment_id: int,
        lesson_id: int,
        timestamp: int
    ) -> bool:
        await LessonProgressService.record_access(
            db, enrollment_id, lesson_id, video_timestamp=timestamp
        )
        return True

    @staticmethod
    async def get_video_timestamp(db: AsyncSession, enrollment_id: int, lesson_id: int) -> Optional[int]:
        progress = await LessonProgressService.get_lesson_progress(db, enrollment_id, lesson_id)
        return progress.video_timestamp if progress else None

    @staticmethod
    async def mark_video_lesson_complete(db: AsyncSession, enrollment_id: int, lesson_id: int) -> bool:
        """Complete a video lesson; other lesson types are left untouched"""
        result = await db.execute(select(Lesson.lesson_type).where(Lesson.id == lesson_id))
        if result.scalar_one_or_none() != LessonType.VIDEO:
            return False

        await LessonProgressService.record_access(db, enrollment_id, lesson_id, completed=True)
        return True

    # Calculations

    @staticmethod
    async def calculate_course_progress(db: AsyncSession, enrollment_id: int) -> float:
        """Completed lessons over all lessons of the course, as a percentage"""
        result = await db.execute(select(Enrollment.course_id).where(Enrollment.id == enrollment_id))
        course_id = result.scalar_one_or_none()
        if course_id is None:
            return 0.0

        result = await db.execute(
            select(func.count(Lesson.id))
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
        )
        total_lessons = result.scalar() or 0
        if total_lessons == 0:
            return 0.0

        result = await db.execute(
            select(func.count(LessonProgress.id))
            .join(Lesson, LessonProgress.lesson_id == Lesson.id)
            .join(Module, Lesson.module_id == Module.id)
            .where(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.is_completed == True,
                Module.course_id == course_id
            )
        )
        completed_lessons = result.scalar() or 0

        return round(completed_lessons / total_lessons * 100, 2)

    @staticmethod
    async def calculate_module_progress(db: AsyncSession, enrollment_id: int, module_id: int) -> float:
        result = await db.execute(select(func.count(Lesson.id)).where(Lesson.module_id == module_id))
        total_lessons = result.scalar() or 0
        if total_lessons == 0:
            return 0.0

        result = await db.execute(
            select(func.count(LessonProgress.id))
            .join(Lesson, LessonProgress.lesson_id == Lesson.id)
            .where(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.is_completed == True,
                Lesson.module_id == module_id
            )
        )
        completed_lessons = result.scalar() or 0

        return round(completed_lessons / total_lessons * 100, 2)

    @staticmethod
    async def get_course_progress_summary(db: AsyncSession, enrollment_id: int) -> CourseProgressSummary:
        result = await db.execute(select(Enrollment).where(Enrollment.id == enrollment_id))
        enrollment = result.scalar_one_or_none()
        if enrollment is None:
            raise NotFoundError("Enrollment")

        result = await db.execute(
            select(Module.id).where(Module.course_id == enrollment.course_id).order_by(Module.order)
        )
        module_ids = result.scalars().all()

        result = await db.execute(
            select(func.count(Lesson.id)).where(Lesson.module_id.in_(module_ids))
        )
        total_lessons = result.scalar() or 0

        result = await db.execute(
            select(func.count(LessonProgress.id))
            .join(Lesson, LessonProgress.lesson_id == Lesson.id)
            .where(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.is_completed == True,
                Lesson.module_id.in_(module_ids)
            )
        )
        completed_lessons = result.scalar() or 0

        completed_modules = 0
        for module_id in module_ids:
            if await LessonProgressService.is_module_completed(db, enrollment_id, module_id):
                completed_modules += 1

        result = await db.execute(
            select(LessonProgress)
            .where(LessonProgress.enrollment_id == enrollment_id)
            .order_by(LessonProgress.last_accessed_at.desc())
            .limit(1)
        )
        last_progress = result.scalar_one_or_none()

        percentage = round(completed_lessons / total_lessons * 100, 2) if total_lessons else 0.0

        return CourseProgressSummary(
            enrollment_id=enrollment.id,
            course_id=enrollment.course_id,
            total_lessons=total_lessons,
            completed_lessons=completed_lessons,
            total_modules=len(module_ids),
            completed_modules=completed_modules,
            progress_percentage=percentage,
            last_accessed_lesson_id=last_progress.lesson_id if last_progress else None,
            last_accessed_at=last_progress.last_accessed_at if last_progress else None,
            is_completed=percentage >= 100,
            completed_at=enrollment.completed_at
        )

    # Resume

    @staticmethod
    async def get_last_accessed_lesson(db: AsyncSession, enrollment_id: int) -> Optional[Lesson]:
        result = await db.execute(
            select(Lesson)
            .join(LessonProgress, LessonProgress.lesson_id == Lesson.id)
            .where(LessonProgress.enrollment_id == enrollment_id)
            .order_by(LessonProgress.last_accessed_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_lesson_resume_info(
        db: AsyncSession,
        enrollment_id: int,
        lesson_id: int
    ) -> Optional[LessonResumeInfo]:
        progress = await LessonProgressService.get_lesson_progress(db, enrollment_id, lesson_id)
        if progress is None:
            return None

        return LessonResumeInfo(
            lesson_id=lesson_id,
            video_timestamp=progress.video_timestamp,
            is_completed=progress.is_completed,
            last_accessed_at=progress.last_accessed_at,
            can_resume=progress.video_timestamp is not None and not progress.is_completed
        )

    # Completion

    @staticmethod
    async def is_lesson_completed(db: AsyncSession, enrollment_id: int, lesson_id: int) -> bool:
        progress = await LessonProgressService.get_lesson_progress(db, enrollment_id, lesson_id)
        return bool(progress and progress.is_completed)

    @staticmethod
    async def is_module_completed(db: AsyncSession, enrollment_id: int, module_id: int) -> bool:
        return await LessonProgressService.calculate_module_progress(db, enrollment_id, module_id) >= 100

    @staticmethod
    async def is_course_completed(db: AsyncSession, enrollment_id: int) -> bool:
        return await LessonProgressService.calculate_course_progress(db, enrollment_id) >= 100

    @staticmethod
    async def get_course_completion_date(db: AsyncSession, enrollment_id: int) -> Optional[datetime]:
        result = await db.execute(select(Enrollment.completed_at).where(Enrollment.id == enrollment_id))
        return result.scalar_one_or_none()
