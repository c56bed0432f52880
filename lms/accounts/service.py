# lms/accounts/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from fastapi import HTTPException
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from lms.accounts.models import User, UserRole
from lms.accounts.schemas import UserCreate, UserUpdate
from lms.exceptions import NotFoundError, InvalidStateError
from lms.utils.security import get_password_hash, verify_password, generate_verification_code
from lms.utils.email import send_password_reset_email, send_welcome_email

logger = logging.getLogger(__name__)

class UserService:

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
        """Get user by ID"""
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User")
        return user

    @staticmethod
    async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
        """Get user by email"""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_user(db: AsyncSession, user_data: UserCreate, role: str = UserRole.STUDENT) -> User:
        """Register a new user and send the welcome email"""
        existing_user = await UserService.get_user_by_email(db, user_data.email)
        if existing_user:
            raise HTTPException(
                status_code=400,
                detail="User with this email already exists"
            )

        if user_data.password != user_data.confirm_password:
            raise HTTPException(
                status_code=400,
                detail="Passwords do not match"
            )

        user = User(
            email=user_data.email.lower(),
            full_name=user_data.full_name,
            preferred_language=user_data.preferred_language,
            role=role,
            hashed_password=get_password_hash(user_data.password)
        )

        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise InvalidStateError("User with this email already exists")
        await db.refresh(user)

        logger.info(f"User registered: {user.id} ({user.email})")

        await send_welcome_email(user.email, user.full_name)

        return user

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
        """Authenticate user with email and password"""
        user = await UserService.get_user_by_email(db, email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=401,
                detail="Incorrect email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=400,
                detail="Account is disabled"
            )

        user.last_login = datetime.utcnow()
        await db.commit()

        return user

    @staticmethod
    async def request_password_reset(db: AsyncSession, email: str) -> bool:
        """Request password reset"""
        user = await UserService.get_user_by_email(db, email)
        if not user:
            # Don't reveal if user exists
            return True

        reset_code = generate_verification_code()
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                reset_code=reset_code,
                reset_code_created=datetime.utcnow()
            )
        )
        await db.commit()

        await send_password_reset_email(
            email=user.email,
            reset_code=reset_code,
            user_name=user.full_name
        )

        return True

    @staticmethod
    async def reset_password(
        db: AsyncSession,
        email: str,
        reset_code: str,
        new_password: str
    ) -> bool:
        """Reset password with code"""
        user = await UserService.get_user_by_email(db, email)
        if not user:
            raise NotFoundError("User")

        if (not user.reset_code or
            user.reset_code != reset_code or
            not user.reset_code_created):
            raise HTTPException(status_code=400, detail="Invalid reset code")

        # Codes are valid for one hour
        expiry_time = user.reset_code_created + timedelta(hours=1)
        if datetime.utcnow() > expiry_time:
            raise HTTPException(status_code=400, detail="Reset code has expired")

        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                hashed_password=get_password_hash(new_password),
                reset_code=None,
                reset_code_created=None
            )
        )
        await db.commit()

        return True

    @staticmethod
    async def update_user(db: AsyncSession, user_id: int, user_data: UserUpdate) -> User:
        """Update user information"""
        user = await UserService.get_user_by_id(db, user_id)

        update_data = user_data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(user, field, value)

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def list_users(
        db: AsyncSession,
        skip: int = 0,
        limit: int = 20,
        search: Optional[str] = None
    ) -> List[User]:
        """List users with search and pagination"""
        query = select(User)

        if search:
            query = query.where(
                or_(
                    User.full_name.ilike(f"%{search}%"),
                    User.email.ilike(f"%{search}%")
                )
            )

        query = query.order_by(User.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def change_role(db: AsyncSession, user_id: int, role: str) -> User:
        """Change user role (admin back-office)"""
        user = await UserService.get_user_by_id(db, user_id)
        user.role = role
        await db.commit()
        await db.refresh(user)

        logger.info(f"User {user_id} role changed to {role}")
        return user
