# lms/accounts/schemas.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime
from enum import Enum

class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"
    GUEST = "guest"

# User Schemas
class UserBase(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    preferred_language: str = "en"

class UserCreate(UserBase):
    password: str = Field(..., min_length=8)
    confirm_password: str

class UserUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    preferred_language: Optional[str] = None

class User(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    role: UserRole = UserRole.STUDENT
    is_active: bool = True
    created_at: datetime
    last_login: Optional[datetime] = None

class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    email: EmailStr
    full_name: str
    role: str

class RoleChange(BaseModel):
    role: UserRole

# Authentication Schemas
class UserLogin(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

class TokenRefresh(BaseModel):
    refresh_token: str

class PasswordResetRequest(BaseModel):
    email: EmailStr

class PasswordResetConfirm(BaseModel):
    email: EmailStr
    reset_code: str
    new_password: str = Field(..., min_length=8)
    confirm_password: str

# Response Schemas
class StandardResponse(BaseModel):
    status: str = "success"
    message: str
    data: Optional[dict] = None
