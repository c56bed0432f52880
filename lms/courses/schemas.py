# lms/courses/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

# Enums
class LessonType(str, Enum):
    VIDEO = "video"
    TEXT = "text"
    FILE = "file"

class EnrollmentStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    APPROVED = "approved"
    COMPLETED = "completed"

class AccessReason(str, Enum):
    NOT_FOUND = "not_found"
    NOT_ENROLLED = "not_enrolled"
    PAYMENT_PENDING = "payment_pending"
    PREVIOUS_MODULE_INCOMPLETE = "previous_module_incomplete"
    PREVIOUS_LESSON_INCOMPLETE = "previous_lesson_incomplete"
    REQUIRED_QUIZ_NOT_PASSED = "required_quiz_not_passed"
    ADMIN_OVERRIDE = "admin_override"
    ALLOWED = "allowed"

# Access Schemas
class AccessResult(BaseModel):
    can_access: bool
    reason: AccessReason
    message: str = ""
    blocking_lesson_id: Optional[int] = None
    missing_prerequisites: List[str] = []

# Course Schemas
class CourseBase(BaseModel):
    title_en: str = Field(..., min_length=1, max_length=255)
    title_mm: Optional[str] = None
    description_en: Optional[str] = None
    description_mm: Optional[str] = None
    price: Decimal = Field(Decimal("0"), ge=0)
    thumbnail_url: Optional[str] = None
    is_published: bool = False

class CourseCreate(CourseBase):
    pass

class CourseUpdate(BaseModel):
    title_en: Optional[str] = Field(None, min_length=1, max_length=255)
    title_mm: Optional[str] = None
    description_en: Optional[str] = None
    description_mm: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    thumbnail_url: Optional[str] = None
    is_published: Optional[bool] = None

class Course(CourseBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    created_at: datetime
    updated_at: Optional[datetime] = None

# Module Schemas
class ModuleBase(BaseModel):
    title_en: str = Field(..., min_length=1, max_length=255)
    title_mm: Optional[str] = None
    order: int = Field(..., ge=1)

class ModuleCreate(ModuleBase):
    pass

class ModuleUpdate(BaseModel):
    title_en: Optional[str] = Field(None, min_length=1, max_length=255)
    title_mm: Optional[str] = None
    order: Optional[int] = Field(None, ge=1)

class Module(ModuleBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    course_id: int

# Lesson Schemas
class LessonBase(BaseModel):
    title_en: str = Field(..., min_length=1, max_length=255)
    title_mm: Optional[str] = None
    order: int = Field(..., ge=1)
    lesson_type: LessonType = LessonType.VIDEO
    content_url: Optional[str] = None
    content_en: Optional[str] = None
    content_mm: Optional[str] = None

class LessonCreate(LessonBase):
    pass

class LessonUpdate(BaseModel):
    title_en: Optional[str] = Field(None, min_length=1, max_length=255)
    title_mm: Optional[str] = None
    order: Optional[int] = Field(None, ge=1)
    lesson_type: Optional[LessonType] = None
    content_url: Optional[str] = None
    content_en: Optional[str] = None
    content_mm: Optional[str] = None

class Lesson(LessonBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    module_id: int
    created_at: datetime

class LessonBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    module_id: int
    title_en: str
    title_mm: Optional[str] = None
    order: int

# Structure Schemas
class LessonOutline(LessonBrief):
    lesson_type: LessonType
    is_completed: bool = False
    is_accessible: bool = False
    quiz_id: Optional[int] = None
    assignment_id: Optional[int] = None

class ModuleOutline(BaseModel):
    id: int
    title_en: str
    title_mm: Optional[str] = None
    order: int
    is_accessible: bool = False
    progress: float = 0
    lessons: List[LessonOutline] = []

class CourseStructure(BaseModel):
    course: Course
    enrollment_status: Optional[EnrollmentStatus] = None
    progress: float = 0
    modules: List[ModuleOutline] = []

class LessonNavigation(BaseModel):
    lesson_id: int
    previous: Optional[LessonBrief] = None
    next: Optional[LessonBrief] = None

# Enrollment Schemas
class Enrollment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    user_id: int
    course_id: int
    status: EnrollmentStatus
    enrolled_at: datetime
    completed_at: Optional[datetime] = None

# Progress Schemas
class LessonProgress(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    enrollment_id: int
    lesson_id: int
    is_completed: bool
    video_timestamp: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None

class ProgressUpdate(BaseModel):
    completed: bool = False
    video_timestamp: Optional[int] = Field(None, ge=0)

class VideoPosition(BaseModel):
    video_timestamp: int = Field(..., ge=0)

class CourseProgressSummary(BaseModel):
    enrollment_id: int
    course_id: int
    total_lessons: int
    completed_lessons: int
    total_modules: int
    completed_modules: int
    progress_percentage: float
    last_accessed_lesson_id: Optional[int] = None
    last_accessed_at: Optional[datetime] = None
    is_completed: bool = False
    completed_at: Optional[datetime] = None

class LessonResumeInfo(BaseModel):
    lesson_id: int
    can_resume: bool
    video_timestamp: Optional[int] = None
    is_completed: bool = False
    last_accessed_at: Optional[datetime] = None

class LessonView(BaseModel):
    lesson: Lesson
    access: AccessResult
    progress: Optional[LessonProgress] = None
    navigation: LessonNavigation
    quiz_id: Optional[int] = None
    assignment_id: Optional[int] = None
