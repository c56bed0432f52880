# lms/assignments/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum

class SubmissionStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"

class ReviewStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"

# Assignment Schemas
class AssignmentBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_file_size: int = Field(10 * 1024 * 1024, gt=0)
    allowed_file_types: str = "pdf,doc,docx,txt,zip"
    is_required: bool = True
    is_active: bool = True

class AssignmentCreate(AssignmentBase):
    lesson_id: Optional[int] = None

class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_file_size: Optional[int] = Field(None, gt=0)
    allowed_file_types: Optional[str] = None
    is_required: Optional[bool] = None
    is_active: Optional[bool] = None

class Assignment(AssignmentBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    lesson_id: Optional[int] = None
    created_at: datetime

# Submission Schemas
class Submission(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    assignment_id: int
    user_id: int
    file_url: str
    original_file_name: Optional[str] = None
    status: SubmissionStatus
    feedback: Optional[str] = None
    grade: Optional[float] = None
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None

class SubmissionReview(BaseModel):
    status: ReviewStatus
    feedback: Optional[str] = None
    grade: Optional[float] = Field(None, ge=0, le=100)
