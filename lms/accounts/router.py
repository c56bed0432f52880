# lms/accounts/router.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from lms.database import get_db
from lms.deps import get_current_user
from lms.accounts.models import User as UserModel
from lms.accounts.service import UserService
from lms.accounts.schemas import (
    UserCreate, User, UserLogin, Token, UserUpdate,
    PasswordResetRequest, PasswordResetConfirm, StandardResponse, TokenRefresh
)
from lms.utils.security import create_access_token, create_refresh_token, verify_token

router = APIRouter()

def _issue_tokens(user: UserModel) -> Token:
    claims = {"sub": str(user.id), "email": user.email, "role": user.role}
    return Token(
        access_token=create_access_token(data=claims),
        refresh_token=create_refresh_token(data=claims)
    )

@router.post("/register", response_model=StandardResponse, status_code=201)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new student account"""
    user = await UserService.create_user(db, user_data)
    return StandardResponse(
        message="Registration successful",
        data={"user_id": user.id, "uuid": user.uuid}
    )

@router.post("/login", response_model=Token)
async def login(
    user_data: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Login user and return JWT tokens"""
    user = await UserService.authenticate_user(db, user_data.email, user_data.password)
    return _issue_tokens(user)

@router.post("/refresh", response_model=Token)
async def refresh_token(
    token_data: TokenRefresh,
    db: AsyncSession = Depends(get_db)
):
    """Refresh access token"""
    payload = verify_token(token_data.refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    user = await UserService.get_user_by_id(db, int(payload.get("sub")))
    return _issue_tokens(user)

@router.post("/password-reset", response_model=StandardResponse)
async def request_password_reset(
    reset_data: PasswordResetRequest,
    db: AsyncSession = Depends(get_db)
):
    """Request password reset"""
    await UserService.request_password_reset(db, reset_data.email)
    return StandardResponse(
        message="If an account exists with this email, password reset instructions have been sent"
    )

@router.post("/password-reset-confirm", response_model=StandardResponse)
async def confirm_password_reset(
    reset_data: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db)
):
    """Confirm password reset with code"""
    if reset_data.new_password != reset_data.confirm_password:
        raise HTTPException(
            status_code=400,
            detail="Passwords do not match"
        )

    await UserService.reset_password(
        db,
        reset_data.email,
        reset_data.reset_code,
        reset_data.new_password
    )
    return StandardResponse(message="Password reset successfully")

@router.get("/users/me", response_model=User)
async def get_current_user_profile(
    current_user: UserModel = Depends(get_current_user)
):
    """Get current user profile"""
    return current_user

@router.put("/users/me", response_model=User)
async def update_current_user(
    user_data: UserUpdate,
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update current user information"""
    return await UserService.update_user(db, current_user.id, user_data)
