# lms/certificates/models.py
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, UniqueConstraint
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_certificate_user_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    # CERT-YYYYMMDD-XXXXXXXX
    certificate_code = Column(String, unique=True, index=True, nullable=False)

    issued_at = Column(DateTime, default=datetime.utcnow)
    completion_date = Column(DateTime, nullable=False)
    final_grade = Column(Float, nullable=False)
