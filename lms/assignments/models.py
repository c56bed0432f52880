# lms/assignments/models.py
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float, ForeignKey, UniqueConstraint
)
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class SubmissionStatus:
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"

class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True, unique=True)

    title = Column(String, nullable=False)
    instructions = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)

    max_file_size = Column(Integer, default=10 * 1024 * 1024)  # bytes
    allowed_file_types = Column(String, default="pdf,doc,docx,txt,zip")

    is_required = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def allowed_extensions(self) -> list:
        return [ext.strip().lower().lstrip(".") for ext in (self.allowed_file_types or "").split(",") if ext.strip()]

    def is_overdue(self, now: datetime = None) -> bool:
        return self.due_date is not None and (now or datetime.utcnow()) > self.due_date

class AssignmentSubmission(Base):
    __tablename__ = "assignment_submissions"
    __table_args__ = (
        UniqueConstraint("assignment_id", "user_id", name="uq_submission_assignment_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    file_url = Column(String, nullable=False)
    original_file_name = Column(String, nullable=True)

    status = Column(String, default=SubmissionStatus.PENDING)  # pending, passed, failed
    feedback = Column(Text, nullable=True)
    grade = Column(Float, nullable=True)

    submitted_at = Column(DateTime, default=datetime.utcnow)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
