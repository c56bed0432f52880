# lms/courses/router.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from lms.database import get_db
from lms.deps import get_current_user, get_optional_user
from lms.accounts.models import User
from lms.accounts.schemas import StandardResponse
from lms.courses.service import CourseService
from lms.courses.prerequisites import PrerequisiteService
from lms.courses.progress import LessonProgressService
from lms.courses.schemas import (
    Course, Module, LessonBrief, CourseStructure, LessonNavigation, LessonView,
    Enrollment, LessonProgress, ProgressUpdate, VideoPosition, CourseProgressSummary,
    LessonResumeInfo, AccessResult
)
from lms.exceptions import AccessDeniedError

router = APIRouter()

async def _enrollment_for_lesson(db: AsyncSession, user: User, lesson_id: int):
    """Enrollment to write progress against, once the lesson is unlocked"""
    course_id = await CourseService.get_lesson_course_id(db, lesson_id)
    access = await PrerequisiteService.check_lesson_access(db, user.id, lesson_id)
    if not access.can_access:
        raise AccessDeniedError(access.message, reason=access.reason.value)
    return await CourseService.get_active_enrollment(db, user.id, course_id)

# Courses
@router.get("/courses", response_model=List[Course])
async def get_courses(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Get published courses (admins also see drafts)"""
    published_only = not (current_user and current_user.is_admin)
    return await CourseService.list_courses(
        db, skip=skip, limit=limit, search=search, published_only=published_only
    )

@router.get("/courses/{course_id}", response_model=Course)
async def get_course(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    return await CourseService.get_visible_course(db, course_id, current_user)

@router.get("/courses/{course_id}/structure", response_model=CourseStructure)
async def get_course_structure(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Modules and lessons with completion and lock state for the caller"""
    return await CourseService.get_course_structure(db, course_id, current_user)

@router.get("/courses/{course_id}/modules", response_model=List[Module])
async def get_course_modules(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    await CourseService.get_visible_course(db, course_id, current_user)
    return await CourseService.get_course_modules(db, course_id)

@router.get("/courses/{course_id}/access", response_model=AccessResult)
async def check_course_access(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PrerequisiteService.check_course_access(db, current_user.id, course_id)

@router.get("/courses/{course_id}/progress", response_model=CourseProgressSummary)
async def get_course_progress(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Progress summary for the caller's enrollment"""
    enrollment = await CourseService.get_active_enrollment(db, current_user.id, course_id)
    return await LessonProgressService.get_course_progress_summary(db, enrollment.id)

@router.get("/courses/{course_id}/progress/lessons", response_model=List[LessonProgress])
async def get_course_lesson_progress(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Per-lesson progress rows in course order"""
    enrollment = await CourseService.get_active_enrollment(db, current_user.id, course_id)
    return await LessonProgressService.get_enrollment_progress(db, enrollment.id)

@router.get("/courses/{course_id}/next-lesson", response_model=Optional[LessonBrief])
async def get_next_lesson(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """First unlocked lesson not completed yet; null when finished or blocked"""
    return await PrerequisiteService.get_next_unlocked_lesson(db, current_user.id, course_id)

# Modules
@router.get("/modules/{module_id}/lessons", response_model=List[LessonBrief])
async def get_module_lessons(
    module_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    module = await CourseService.get_module(db, module_id)
    await CourseService.get_visible_course(db, module.course_id, current_user)
    return await CourseService.get_module_lessons(db, module_id)

@router.get("/modules/{module_id}/access", response_model=AccessResult)
async def check_module_access(
    module_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PrerequisiteService.check_module_access(db, current_user.id, module_id)

# Lessons
@router.get("/lessons/{lesson_id}", response_model=LessonView)
async def get_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Open a lesson; denied with a reason code while prerequisites are missing"""
    return await CourseService.get_lesson_view(db, current_user, lesson_id)

@router.get("/lessons/{lesson_id}/access", response_model=AccessResult)
async def check_lesson_access(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PrerequisiteService.check_lesson_access(db, current_user.id, lesson_id)

@router.get("/lessons/{lesson_id}/navigation", response_model=LessonNavigation)
async def get_lesson_navigation(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await CourseService.get_lesson_navigation(db, lesson_id)

# Progress
@router.post("/lessons/{lesson_id}/progress", response_model=LessonProgress)
async def update_lesson_progress(
    lesson_id: int,
    progress_data: ProgressUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Record a visit, video position or completion for a lesson"""
    enrollment = await _enrollment_for_lesson(db, current_user, lesson_id)
    return await LessonProgressService.record_access(
        db,
        enrollment.id,
        lesson_id,
        completed=progress_data.completed,
        video_timestamp=progress_data.video_timestamp
    )

@router.post("/lessons/{lesson_id}/complete", response_model=LessonProgress)
async def complete_lesson(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    enrollment = await _enrollment_for_lesson(db, current_user, lesson_id)
    return await LessonProgressService.record_access(db, enrollment.id, lesson_id, completed=True)

@router.put("/lessons/{lesson_id}/video-position", response_model=StandardResponse)
async def save_video_position(
    lesson_id: int,
    position: VideoPosition,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    enrollment = await _enrollment_for_lesson(db, current_user, lesson_id)
    await LessonProgressService.save_video_timestamp(db, enrollment.id, lesson_id, position.video_timestamp)
    return StandardResponse(
        message="Video position saved",
        data={"lesson_id": lesson_id, "video_timestamp": position.video_timestamp}
    )

@router.get("/lessons/{lesson_id}/resume", response_model=Optional[LessonResumeInfo])
async def get_resume_info(
    lesson_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Where to resume a lesson; null when it was never opened"""
    course_id = await CourseService.get_lesson_course_id(db, lesson_id)
    enrollment = await CourseService.get_active_enrollment(db, current_user.id, course_id)
    return await LessonProgressService.get_lesson_resume_info(db, enrollment.id, lesson_id)

# Enrollments
@router.get("/enrollments/me", response_model=List[Enrollment])
async def get_my_enrollments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await CourseService.get_user_enrollments(db, current_user.id)
