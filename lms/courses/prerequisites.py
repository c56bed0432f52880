# lms/courses/prerequisites.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional, Tuple
import logging

from lms.accounts.models import User, UserRole
from lms.courses.models import Course, Module, Lesson, Enrollment, LessonProgress
from lms.courses.schemas import AccessReason, AccessResult
from lms.quizzes.models import Quiz, QuizAttempt
from lms.assignments.models import Assignment

logger = logging.getLogger(__name__)

def _allowed(message: str = "All prerequisites met") -> AccessResult:
    return AccessResult(can_access=True, reason=AccessReason.ALLOWED, message=message)

def _not_found(entity: str) -> AccessResult:
    return AccessResult(can_access=False, reason=AccessReason.NOT_FOUND, message=f"{entity} not found")

class PrerequisiteService:
    """Decides whether a user may open a course, module or lesson.

    Every check reads current state from the database. Denials are returned
    as AccessResult values carrying a reason code; nothing here raises for
    missing entities.
    """

    @staticmethod
    async def _is_admin(db: AsyncSession, user_id: int) -> bool:
        result = await db.execute(select(User.role).where(User.id == user_id))
        return result.scalar_one_or_none() == UserRole.ADMIN

    @staticmethod
    async def _get_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[Enrollment]:
        result = await db.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _enrollment_gate(
        db: AsyncSession,
        user_id: int,
        course_id: int
    ) -> Tuple[Optional[AccessResult], Optional[Enrollment]]:
        """Admin bypass and enrollment status check shared by all levels.

        Returns (result, enrollment); a non-None result ends the check.
        """
        if await PrerequisiteService._is_admin(db, user_id):
            return AccessResult(
                can_access=True,
                reason=AccessReason.ADMIN_OVERRIDE,
                message="Admin access"
            ), None

        enrollment = await PrerequisiteService._get_enrollment(db, user_id, course_id)
        if enrollment is None:
            return AccessResult(
                can_access=False,
                reason=AccessReason.NOT_ENROLLED,
                message="Not enrolled in course"
            ), None

        if not enrollment.is_active:
            return AccessResult(
                can_access=False,
                reason=AccessReason.PAYMENT_PENDING,
                message="Payment approval required"
            ), enrollment

        return None, enrollment

    @staticmethod
    async def _completed_lesson_ids(
        db: AsyncSession,
        enrollment_id: int,
        lesson_ids: List[int]
    ) -> set:
        if not lesson_ids:
            return set()
        result = await db.execute(
            select(LessonProgress.lesson_id).where(
                LessonProgress.enrollment_id == enrollment_id,
                LessonProgress.lesson_id.in_(lesson_ids),
                LessonProgress.is_completed == True
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def _module_rule(
        db: AsyncSession,
        enrollment: Enrollment,
        module: Module
    ) -> Optional[AccessResult]:
        """Denial when the preceding module is not fully completed"""
        if module.order == 1:
            return None

        result = await db.execute(
            select(Module)
            .where(Module.course_id == module.course_id, Module.order < module.order)
            .order_by(Module.order.desc())
            .limit(1)
        )
        previous_module = result.scalar_one_or_none()
        if previous_module is None:
            return None

        result = await db.execute(
            select(Lesson)
            .where(Lesson.module_id == previous_module.id)
            .order_by(Lesson.order)
        )
        previous_lessons = result.scalars().all()
        if not previous_lessons:
            return None

        completed = await PrerequisiteService._completed_lesson_ids(
            db, enrollment.id, [lesson.id for lesson in previous_lessons]
        )
        if len(completed) >= len(previous_lessons):
            return None

        incomplete = [lesson for lesson in previous_lessons if lesson.id not in completed]
        percentage = round(len(completed) / len(previous_lessons) * 100, 2)
        return AccessResult(
            can_access=False,
            reason=AccessReason.PREVIOUS_MODULE_INCOMPLETE,
            message=f"Previous module not completed ({percentage}%)",
            blocking_lesson_id=incomplete[0].id,
            missing_prerequisites=[f"Complete lesson: {lesson.title_en}" for lesson in incomplete]
        )

    @staticmethod
    async def _has_passed_quiz(db: AsyncSession, user_id: int, quiz_id: int) -> bool:
        result = await db.execute(
            select(QuizAttempt.id).where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.passed == True
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    # Lesson access

    @staticmethod
    async def check_lesson_access(db: AsyncSession, user_id: int, lesson_id: int) -> AccessResult:
        """Evaluate every prerequisite for a lesson"""
        result = await db.execute(select(Lesson).where(Lesson.id == lesson_id))
        lesson = result.scalar_one_or_none()
        if lesson is None:
            return _not_found("Lesson")

        result = await db.execute(select(Module).where(Module.id == lesson.module_id))
        module = result.scalar_one_or_none()
        if module is None:
            return _not_found("Module")

        gate, enrollment = await PrerequisiteService._enrollment_gate(db, user_id, module.course_id)
        if gate is not None:
            return gate

        denial = await PrerequisiteService._module_rule(db, enrollment, module)
        if denial is not None:
            return denial

        if lesson.order == 1:
            return _allowed("First lesson in module")

        result = await db.execute(
            select(Lesson)
            .where(Lesson.module_id == lesson.module_id, Lesson.order < lesson.order)
            .order_by(Lesson.order.desc())
            .limit(1)
        )
        previous_lesson = result.scalar_one_or_none()
        if previous_lesson is None:
            return _allowed("No previous lesson required")

        completed = await PrerequisiteService._completed_lesson_ids(db, enrollment.id, [previous_lesson.id])
        if previous_lesson.id not in completed:
            return AccessResult(
                can_access=False,
                reason=AccessReason.PREVIOUS_LESSON_INCOMPLETE,
                message="Previous lesson not completed",
                blocking_lesson_id=previous_lesson.id,
                missing_prerequisites=[f"Complete lesson: {previous_lesson.title_en}"]
            )

        result = await db.execute(
            select(Quiz).where(
                Quiz.lesson_id == previous_lesson.id,
                Quiz.required_to_unlock == True,
                Quiz.is_active == True
            )
        )
        required_quiz = result.scalar_one_or_none()
        if required_quiz is not None:
            if not await PrerequisiteService._has_passed_quiz(db, user_id, required_quiz.id):
                return AccessResult(
                    can_access=False,
                    reason=AccessReason.REQUIRED_QUIZ_NOT_PASSED,
                    message="Required quiz not passed",
                    blocking_lesson_id=previous_lesson.id,
                    missing_prerequisites=[f"Pass quiz: {required_quiz.title}"]
                )

        return _allowed()

    @staticmethod
    async def can_access_lesson(db: AsyncSession, user_id: int, lesson_id: int) -> bool:
        result = await PrerequisiteService.check_lesson_access(db, user_id, lesson_id)
        return result.can_access

    @staticmethod
    async def get_accessible_lessons(db: AsyncSession, user_id: int, module_id: int) -> List[Lesson]:
        """Lessons of a module the user can currently open, in order"""
        result = await db.execute(
            select(Lesson).where(Lesson.module_id == module_id).order_by(Lesson.order)
        )
        accessible = []
        for lesson in result.scalars().all():
            if await PrerequisiteService.can_access_lesson(db, user_id, lesson.id):
                accessible.append(lesson)
        return accessible

    @staticmethod
    async def get_missing_prerequisites(db: AsyncSession, user_id: int, lesson_id: int) -> List[Lesson]:
        """Earlier lessons in the same module that are not completed yet"""
        result = await db.execute(select(Lesson).where(Lesson.id == lesson_id))
        lesson = result.scalar_one_or_none()
        if lesson is None:
            return []

        result = await db.execute(select(Module.course_id).where(Module.id == lesson.module_id))
        course_id = result.scalar_one_or_none()
        enrollment = await PrerequisiteService._get_enrollment(db, user_id, course_id)
        if enrollment is None:
            return []

        result = await db.execute(
            select(Lesson)
            .where(Lesson.module_id == lesson.module_id, Lesson.order < lesson.order)
            .order_by(Lesson.order)
        )
        previous_lessons = result.scalars().all()
        completed = await PrerequisiteService._completed_lesson_ids(
            db, enrollment.id, [prev.id for prev in previous_lessons]
        )
        return [prev for prev in previous_lessons if prev.id not in completed]

    # Module access

    @staticmethod
    async def check_module_access(db: AsyncSession, user_id: int, module_id: int) -> AccessResult:
        result = await db.execute(select(Module).where(Module.id == module_id))
        module = result.scalar_one_or_none()
        if module is None:
            return _not_found("Module")

        gate, enrollment = await PrerequisiteService._enrollment_gate(db, user_id, module.course_id)
        if gate is not None:
            return gate

        denial = await PrerequisiteService._module_rule(db, enrollment, module)
        if denial is not None:
            return denial

        if module.order == 1:
            return _allowed("First module in course")
        return _allowed("Previous module completed")

    @staticmethod
    async def can_access_module(db: AsyncSession, user_id: int, module_id: int) -> bool:
        result = await PrerequisiteService.check_module_access(db, user_id, module_id)
        return result.can_access

    @staticmethod
    async def get_accessible_modules(db: AsyncSession, user_id: int, course_id: int) -> List[Module]:
        result = await db.execute(
            select(Module).where(Module.course_id == course_id).order_by(Module.order)
        )
        accessible = []
        for module in result.scalars().all():
            if await PrerequisiteService.can_access_module(db, user_id, module.id):
                accessible.append(module)
        return accessible

    # Course access

    @staticmethod
    async def check_course_access(db: AsyncSession, user_id: int, course_id: int) -> AccessResult:
        result = await db.execute(select(Course.id).where(Course.id == course_id))
        if result.scalar_one_or_none() is None:
            return _not_found("Course")

        gate, _ = await PrerequisiteService._enrollment_gate(db, user_id, course_id)
        if gate is not None:
            return gate
        return _allowed("Enrolled and approved")

    @staticmethod
    async def can_access_course(db: AsyncSession, user_id: int, course_id: int) -> bool:
        result = await PrerequisiteService.check_course_access(db, user_id, course_id)
        return result.can_access

    @staticmethod
    async def get_enrollment_status(db: AsyncSession, user_id: int, course_id: int) -> Optional[str]:
        """Enrollment status string, or None when the user is not enrolled"""
        enrollment = await PrerequisiteService._get_enrollment(db, user_id, course_id)
        return enrollment.status if enrollment else None

    # Progression

    @staticmethod
    async def get_next_unlocked_lesson(db: AsyncSession, user_id: int, course_id: int) -> Optional[Lesson]:
        """First accessible lesson the user has not completed yet.

        Stops at the first locked lesson, so None means either everything is
        completed or the user is blocked.
        """
        enrollment = await PrerequisiteService._get_enrollment(db, user_id, course_id)
        if enrollment is None:
            return None

        result = await db.execute(
            select(Lesson)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
            .order_by(Module.order, Lesson.order)
        )
        lessons = result.scalars().all()
        completed = await PrerequisiteService._completed_lesson_ids(
            db, enrollment.id, [lesson.id for lesson in lessons]
        )

        for lesson in lessons:
            if lesson.id in completed:
                continue
            if await PrerequisiteService.can_access_lesson(db, user_id, lesson.id):
                return lesson
            return None
        return None

    @staticmethod
    async def is_next_unit_unlocked(db: AsyncSession, user_id: int, completed_lesson_id: int) -> bool:
        """Whether the lesson or module after `completed_lesson_id` is now open"""
        result = await db.execute(select(Lesson).where(Lesson.id == completed_lesson_id))
        lesson = result.scalar_one_or_none()
        if lesson is None:
            return False

        result = await db.execute(
            select(Lesson)
            .where(Lesson.module_id == lesson.module_id, Lesson.order > lesson.order)
            .order_by(Lesson.order)
            .limit(1)
        )
        next_lesson = result.scalar_one_or_none()
        if next_lesson is not None:
            return await PrerequisiteService.can_access_lesson(db, user_id, next_lesson.id)

        result = await db.execute(select(Module).where(Module.id == lesson.module_id))
        module = result.scalar_one()
        result = await db.execute(
            select(Module)
            .where(Module.course_id == module.course_id, Module.order > module.order)
            .order_by(Module.order)
            .limit(1)
        )
        next_module = result.scalar_one_or_none()
        if next_module is not None:
            return await PrerequisiteService.can_access_module(db, user_id, next_module.id)

        return False

    # Quiz and assignment gates

    @staticmethod
    async def can_take_quiz(db: AsyncSession, user_id: int, quiz_id: int) -> bool:
        result = await db.execute(select(Quiz).where(Quiz.id == quiz_id))
        quiz = result.scalar_one_or_none()
        if quiz is None or not quiz.is_active:
            return False
        if quiz.lesson_id is None:
            return True
        return await PrerequisiteService.can_access_lesson(db, user_id, quiz.lesson_id)

    @staticmethod
    async def can_submit_assignment(db: AsyncSession, user_id: int, assignment_id: int) -> bool:
        result = await db.execute(select(Assignment).where(Assignment.id == assignment_id))
        assignment = result.scalar_one_or_none()
        if assignment is None or not assignment.is_active:
            return False
        if assignment.lesson_id is None:
            return True
        return await PrerequisiteService.can_access_lesson(db, user_id, assignment.lesson_id)
