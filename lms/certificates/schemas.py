# lms/certificates/schemas.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

class Certificate(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    user_id: int
    course_id: int
    certificate_code: str
    issued_at: datetime
    completion_date: datetime
    final_grade: float

class CertificateVerification(BaseModel):
    """Public view of a certificate looked up by its code"""
    valid: bool
    certificate_code: str
    student_name: Optional[str] = None
    course_title: Optional[str] = None
    issued_at: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    final_grade: Optional[float] = None

class CertificateEligibility(BaseModel):
    course_id: int
    eligible: bool
    has_certificate: bool
    progress_percentage: float
