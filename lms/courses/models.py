# lms/courses/models.py
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Numeric, ForeignKey, UniqueConstraint
)
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class LessonType:
    VIDEO = "video"
    TEXT = "text"
    FILE = "file"

class EnrollmentStatus:
    PENDING_PAYMENT = "pending_payment"
    APPROVED = "approved"
    COMPLETED = "completed"

    # Statuses only move forward along this list
    ORDER = [PENDING_PAYMENT, APPROVED, COMPLETED]
    ACTIVE = (APPROVED, COMPLETED)

def _pick_language(lang: str, english: str, myanmar: str) -> str:
    if lang and lang.lower().startswith("my") and myanmar:
        return myanmar
    return english

class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    title_en = Column(String, nullable=False)
    title_mm = Column(String, nullable=True)
    description_en = Column(Text, nullable=True)
    description_mm = Column(Text, nullable=True)

    price = Column(Numeric(10, 2), default=0)
    thumbnail_url = Column(String, nullable=True)
    is_published = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_title(self, lang: str = "en") -> str:
        return _pick_language(lang, self.title_en, self.title_mm)

    def get_description(self, lang: str = "en") -> str:
        return _pick_language(lang, self.description_en, self.description_mm)

class Module(Base):
    __tablename__ = "modules"
    __table_args__ = (
        UniqueConstraint("course_id", "order", name="uq_module_course_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title_en = Column(String, nullable=False)
    title_mm = Column(String, nullable=True)
    order = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def get_title(self, lang: str = "en") -> str:
        return _pick_language(lang, self.title_en, self.title_mm)

class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        UniqueConstraint("module_id", "order", name="uq_lesson_module_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True)
    title_en = Column(String, nullable=False)
    title_mm = Column(String, nullable=True)
    order = Column(Integer, nullable=False)

    # Content
    lesson_type = Column(String, default=LessonType.VIDEO)  # video, text, file
    content_url = Column(String, nullable=True)
    content_en = Column(Text, nullable=True)
    content_mm = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def get_title(self, lang: str = "en") -> str:
        return _pick_language(lang, self.title_en, self.title_mm)

    def get_content(self, lang: str = "en") -> str:
        return _pick_language(lang, self.content_en, self.content_mm)

class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    status = Column(String, default=EnrollmentStatus.PENDING_PAYMENT)
    enrolled_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in EnrollmentStatus.ACTIVE

    def can_advance_to(self, status: str) -> bool:
        """True when moving to `status` is a step forward"""
        if status not in EnrollmentStatus.ORDER or self.status not in EnrollmentStatus.ORDER:
            return False
        return EnrollmentStatus.ORDER.index(status) > EnrollmentStatus.ORDER.index(self.status)

class LessonProgress(Base):
    __tablename__ = "lesson_progress"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "lesson_id", name="uq_progress_enrollment_lesson"),
    )

    id = Column(Integer, primary_key=True, index=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)

    is_completed = Column(Boolean, default=False)
    video_timestamp = Column(Integer, nullable=True)  # seconds

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    last_accessed_at = Column(DateTime, default=datetime.utcnow)
