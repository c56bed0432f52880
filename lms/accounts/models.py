# lms/accounts/models.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class UserRole:
    ADMIN = "admin"
    STUDENT = "student"
    GUEST = "guest"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    preferred_language = Column(String, default="en")

    # Authentication
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)

    # Password reset
    reset_code = Column(String, nullable=True)
    reset_code_created = Column(DateTime, nullable=True)

    # Role
    role = Column(String, default=UserRole.STUDENT)  # admin, student, guest

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
