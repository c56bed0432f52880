# lms/courses/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
import logging

from lms.accounts.models import User
from lms.courses.models import Course, Module, Lesson, Enrollment, LessonProgress
from lms.courses.schemas import (
    CourseCreate, CourseUpdate, ModuleCreate, ModuleUpdate, LessonCreate, LessonUpdate,
    CourseStructure, ModuleOutline, LessonOutline, LessonBrief, LessonNavigation, LessonView,
    AccessReason, Course as CourseSchema, Lesson as LessonSchema, LessonProgress as LessonProgressSchema
)
from lms.courses.prerequisites import PrerequisiteService
from lms.courses.progress import LessonProgressService
from lms.quizzes.models import Quiz
from lms.quizzes.service import QuizService
from lms.assignments.models import Assignment
from lms.assignments.service import AssignmentService
from lms.exceptions import NotFoundError, AccessDeniedError, InvalidStateError

logger = logging.getLogger(__name__)

class CourseService:

    # Courses

    @staticmethod
    async def list_courses(
        db: AsyncSession,
        skip: int = 0,
        limit: int = 20,
        search: Optional[str] = None,
        published_only: bool = True
    ) -> List[Course]:
        query = select(Course)
        if published_only:
            query = query.where(Course.is_published == True)
        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    Course.title_en.ilike(search_term),
                    Course.title_mm.ilike(search_term),
                    Course.description_en.ilike(search_term)
                )
            )
        query = query.order_by(Course.created_at.desc()).offset(skip).limit(limit)

        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_course(db: AsyncSession, course_id: int) -> Course:
        result = await db.execute(select(Course).where(Course.id == course_id))
        course = result.scalar_one_or_none()
        if not course:
            raise NotFoundError("Course")
        return course

    @staticmethod
    async def get_visible_course(db: AsyncSession, course_id: int, user: Optional[User]) -> Course:
        """Unpublished courses only exist for admins"""
        course = await CourseService.get_course(db, course_id)
        if not course.is_published and not (user and user.is_admin):
            raise NotFoundError("Course")
        return course

    @staticmethod
    async def create_course(db: AsyncSession, course_data: CourseCreate) -> Course:
        course = Course(**course_data.model_dump())
        db.add(course)
        await db.commit()
        await db.refresh(course)

        logger.info(f"Course created: {course.id}")
        return course

    @staticmethod
    async def update_course(db: AsyncSession, course_id: int, course_data: CourseUpdate) -> Course:
        course = await CourseService.get_course(db, course_id)

        for field, value in course_data.model_dump(exclude_unset=True).items():
            setattr(course, field, value)

        await db.commit()
        await db.refresh(course)
        return course

    @staticmethod
    async def delete_course(db: AsyncSession, course_id: int) -> bool:
        """Delete a course and its content; refused once students are enrolled"""
        course = await CourseService.get_course(db, course_id)

        result = await db.execute(
            select(func.count(Enrollment.id)).where(Enrollment.course_id == course_id)
        )
        if result.scalar():
            raise InvalidStateError("Course has enrollments; unpublish it instead")

        for module in await CourseService.get_course_modules(db, course_id):
            await CourseService._delete_module_content(db, module.id)
            await db.delete(module)

        await db.delete(course)
        await db.commit()
        logger.info(f"Course deleted: {course_id}")
        return True

    # Modules

    @staticmethod
    async def get_course_modules(db: AsyncSession, course_id: int) -> List[Module]:
        result = await db.execute(
            select(Module).where(Module.course_id == course_id).order_by(Module.order)
        )
        return result.scalars().all()

    @staticmethod
    async def get_module(db: AsyncSession, module_id: int) -> Module:
        result = await db.execute(select(Module).where(Module.id == module_id))
        module = result.scalar_one_or_none()
        if not module:
            raise NotFoundError("Module")
        return module

    @staticmethod
    async def create_module(db: AsyncSession, course_id: int, module_data: ModuleCreate) -> Module:
        await CourseService.get_course(db, course_id)

        module = Module(course_id=course_id, **module_data.model_dump())
        db.add(module)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError(f"Module order {module_data.order} already used in this course")
        await db.refresh(module)
        return module

    @staticmethod
    async def update_module(db: AsyncSession, module_id: int, module_data: ModuleUpdate) -> Module:
        module = await CourseService.get_module(db, module_id)

        for field, value in module_data.model_dump(exclude_unset=True).items():
            setattr(module, field, value)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError("Module order already used in this course")
        await db.refresh(module)
        return module

    @staticmethod
    async def _delete_module_content(db: AsyncSession, module_id: int):
        result = await db.execute(select(Lesson.id).where(Lesson.module_id == module_id))
        lesson_ids = result.scalars().all()
        if not lesson_ids:
            return

        # Quizzes and assignments outlive their lesson, detached
        await db.execute(update(Quiz).where(Quiz.lesson_id.in_(lesson_ids)).values(lesson_id=None))
        await db.execute(update(Assignment).where(Assignment.lesson_id.in_(lesson_ids)).values(lesson_id=None))
        await db.execute(delete(LessonProgress).where(LessonProgress.lesson_id.in_(lesson_ids)))
        await db.execute(delete(Lesson).where(Lesson.id.in_(lesson_ids)))

    @staticmethod
    async def delete_module(db: AsyncSession, module_id: int) -> bool:
        module = await CourseService.get_module(db, module_id)

        await CourseService._delete_module_content(db, module_id)
        await db.delete(module)
        await db.commit()
        return True

    # Lessons

    @staticmethod
    async def get_module_lessons(db: AsyncSession, module_id: int) -> List[Lesson]:
        result = await db.execute(
            select(Lesson).where(Lesson.module_id == module_id).order_by(Lesson.order)
        )
        return result.scalars().all()

    @staticmethod
    async def get_lesson(db: AsyncSession, lesson_id: int) -> Lesson:
        result = await db.execute(select(Lesson).where(Lesson.id == lesson_id))
        lesson = result.scalar_one_or_none()
        if not lesson:
            raise NotFoundError("Lesson")
        return lesson

    @staticmethod
    async def get_lesson_course_id(db: AsyncSession, lesson_id: int) -> int:
        result = await db.execute(
            select(Module.course_id)
            .join(Lesson, Lesson.module_id == Module.id)
            .where(Lesson.id == lesson_id)
        )
        course_id = result.scalar_one_or_none()
        if course_id is None:
            raise NotFoundError("Lesson")
        return course_id

    @staticmethod
    async def create_lesson(db: AsyncSession, module_id: int, lesson_data: LessonCreate) -> Lesson:
        await CourseService.get_module(db, module_id)

        lesson = Lesson(module_id=module_id, **lesson_data.model_dump())
        db.add(lesson)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError(f"Lesson order {lesson_data.order} already used in this module")
        await db.refresh(lesson)
        return lesson

    @staticmethod
    async def update_lesson(db: AsyncSession, lesson_id: int, lesson_data: LessonUpdate) -> Lesson:
        lesson = await CourseService.get_lesson(db, lesson_id)

        for field, value in lesson_data.model_dump(exclude_unset=True).items():
            setattr(lesson, field, value)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError("Lesson order already used in this module")
        await db.refresh(lesson)
        return lesson

    @staticmethod
    async def delete_lesson(db: AsyncSession, lesson_id: int) -> bool:
        lesson = await CourseService.get_lesson(db, lesson_id)

        await db.execute(update(Quiz).where(Quiz.lesson_id == lesson_id).values(lesson_id=None))
        await db.execute(update(Assignment).where(Assignment.lesson_id == lesson_id).values(lesson_id=None))
        await db.execute(delete(LessonProgress).where(LessonProgress.lesson_id == lesson_id))
        await db.delete(lesson)
        await db.commit()
        return True

    # Structure and navigation

    @staticmethod
    async def get_course_structure(db: AsyncSession, course_id: int, user: Optional[User] = None) -> CourseStructure:
        """Course outline annotated with the user's completion and lock state"""
        course = await CourseService.get_visible_course(db, course_id, user)
        modules = await CourseService.get_course_modules(db, course_id)

        result = await db.execute(
            select(Lesson)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
            .order_by(Module.order, Lesson.order)
        )
        lessons = result.scalars().all()
        lesson_ids = [lesson.id for lesson in lessons]

        quiz_ids = {}
        assignment_ids = {}
        if lesson_ids:
            result = await db.execute(select(Quiz.lesson_id, Quiz.id).where(Quiz.lesson_id.in_(lesson_ids)))
            quiz_ids = dict(result.all())
            result = await db.execute(
                select(Assignment.lesson_id, Assignment.id).where(Assignment.lesson_id.in_(lesson_ids))
            )
            assignment_ids = dict(result.all())

        enrollment = None
        completed = set()
        if user is not None:
            result = await db.execute(
                select(Enrollment).where(Enrollment.user_id == user.id, Enrollment.course_id == course_id)
            )
            enrollment = result.scalar_one_or_none()
            if enrollment is not None and lesson_ids:
                result = await db.execute(
                    select(LessonProgress.lesson_id).where(
                        LessonProgress.enrollment_id == enrollment.id,
                        LessonProgress.is_completed == True
                    )
                )
                completed = set(result.scalars().all())

        accessible_module_ids = set()
        if user is not None:
            accessible_modules = await PrerequisiteService.get_accessible_modules(db, user.id, course_id)
            accessible_module_ids = {module.id for module in accessible_modules}

        module_outlines = []
        for module in modules:
            module_lessons = [lesson for lesson in lessons if lesson.module_id == module.id]
            outlines = []
            for lesson in module_lessons:
                accessible = False
                if user is not None:
                    accessible = await PrerequisiteService.can_access_lesson(db, user.id, lesson.id)
                outlines.append(LessonOutline(
                    id=lesson.id,
                    module_id=lesson.module_id,
                    title_en=lesson.title_en,
                    title_mm=lesson.title_mm,
                    order=lesson.order,
                    lesson_type=lesson.lesson_type,
                    is_completed=lesson.id in completed,
                    is_accessible=accessible,
                    quiz_id=quiz_ids.get(lesson.id),
                    assignment_id=assignment_ids.get(lesson.id)
                ))

            done = len([o for o in outlines if o.is_completed])
            module_outlines.append(ModuleOutline(
                id=module.id,
                title_en=module.title_en,
                title_mm=module.title_mm,
                order=module.order,
                is_accessible=module.id in accessible_module_ids,
                progress=round(done / len(outlines) * 100, 2) if outlines else 0.0,
                lessons=outlines
            ))

        progress = 0.0
        if enrollment is not None:
            progress = await LessonProgressService.calculate_course_progress(db, enrollment.id)

        return CourseStructure(
            course=CourseSchema.model_validate(course),
            enrollment_status=enrollment.status if enrollment else None,
            progress=progress,
            modules=module_outlines
        )

    @staticmethod
    async def get_lesson_navigation(db: AsyncSession, lesson_id: int) -> LessonNavigation:
        """Previous and next lesson in course order, crossing module boundaries"""
        course_id = await CourseService.get_lesson_course_id(db, lesson_id)

        result = await db.execute(
            select(Lesson)
            .join(Module, Lesson.module_id == Module.id)
            .where(Module.course_id == course_id)
            .order_by(Module.order, Lesson.order)
        )
        lessons = result.scalars().all()
        index = [lesson.id for lesson in lessons].index(lesson_id)

        previous_lesson = lessons[index - 1] if index > 0 else None
        next_lesson = lessons[index + 1] if index + 1 < len(lessons) else None
        return LessonNavigation(
            lesson_id=lesson_id,
            previous=LessonBrief.model_validate(previous_lesson) if previous_lesson else None,
            next=LessonBrief.model_validate(next_lesson) if next_lesson else None
        )

    @staticmethod
    async def get_lesson_view(db: AsyncSession, user: User, lesson_id: int) -> LessonView:
        """Open a lesson: check prerequisites, then record the visit"""
        lesson = await CourseService.get_lesson(db, lesson_id)
        course_id = await CourseService.get_lesson_course_id(db, lesson_id)

        access = await PrerequisiteService.check_lesson_access(db, user.id, lesson_id)
        if not access.can_access:
            raise AccessDeniedError(access.message, reason=access.reason.value)

        progress = None
        enrollment = await CourseService.get_enrollment(db, user.id, course_id)
        # Admins browsing without an enrollment leave no progress behind
        if enrollment is not None and enrollment.is_active:
            progress = await LessonProgressService.record_access(db, enrollment.id, lesson_id)

        quiz = await QuizService.get_lesson_quiz(db, lesson_id)
        assignment = await AssignmentService.get_lesson_assignment(db, lesson_id)

        return LessonView(
            lesson=LessonSchema.model_validate(lesson),
            access=access,
            progress=LessonProgressSchema.model_validate(progress) if progress else None,
            navigation=await CourseService.get_lesson_navigation(db, lesson_id),
            quiz_id=quiz.id if quiz else None,
            assignment_id=assignment.id if assignment else None
        )

    # Enrollments

    @staticmethod
    async def get_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[Enrollment]:
        result = await db.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Enrollment:
        """Enrollment that allows progress writes, or an access denial"""
        enrollment = await CourseService.get_enrollment(db, user_id, course_id)
        if enrollment is None:
            raise AccessDeniedError("Not enrolled in course", reason=AccessReason.NOT_ENROLLED.value)
        if not enrollment.is_active:
            raise AccessDeniedError("Payment approval required", reason=AccessReason.PAYMENT_PENDING.value)
        return enrollment

    @staticmethod
    async def get_user_enrollments(db: AsyncSession, user_id: int) -> List[Enrollment]:
        result = await db.execute(
            select(Enrollment)
            .where(Enrollment.user_id == user_id)
            .order_by(Enrollment.enrolled_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def list_enrollments(
        db: AsyncSession,
        course_id: Optional[int] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Enrollment]:
        query = select(Enrollment)
        if course_id is not None:
            query = query.where(Enrollment.course_id == course_id)
        if status is not None:
            query = query.where(Enrollment.status == status)
        query = query.order_by(Enrollment.enrolled_at.desc()).offset(skip).limit(limit)

        result = await db.execute(query)
        return result.scalars().all()
