import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import RefreshToken, User
from app.auth.schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from app.auth.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from app.core.config import settings
from app.core.enums import UserRole
from app.core.exceptions import ServiceError
from app.core.models import School
from app.db.seed_permissions import seed_default_sub_roles

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def _find_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    stmt = select(User).where(func.lower(User.email) == email.lower())
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _issue_tokens(db: AsyncSession, user: User) -> AuthResponse:
    """Create an access token and a stored refresh token, then commit."""
    access_token = create_access_token(
        subject={
            "sub": str(user.id),
            "role": user.role,
            "school_id": str(user.school_id) if user.school_id else None,
            "iat": int(datetime.now(timezone.utc).timestamp()),
        }
    )
    refresh_token_str, refresh_expires_at = create_refresh_token()
    db.add(RefreshToken(user_id=user.id, token=refresh_token_str, expires_at=refresh_expires_at))
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Failed to persist authentication state", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    await db.refresh(user)

    return AuthResponse(
        user=UserResponse.model_validate(user),
        access_token=access_token,
        refresh_token=refresh_token_str,
        expires_in=settings.access_token_expire_minutes * 60,
    )


async def register_user(db: AsyncSession, payload: RegisterRequest) -> AuthResponse:
    if await _find_user_by_email(db, payload.email):
        raise ServiceError("Email is already registered", status.HTTP_400_BAD_REQUEST)

    school_id = None
    if payload.role == UserRole.ADMIN and payload.school_name and payload.school_name.strip():
        school = School(name=payload.school_name.strip())
        db.add(school)
        await db.flush()
        await seed_default_sub_roles(db, school.id)
        school_id = school.id
        logger.info("School %s created by registering admin %s", school.id, payload.email)

    user = User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        name=payload.name.strip(),
        role=payload.role.value,
        school_id=school_id,
        student_id=payload.student_id,
        employee_id=payload.employee_id,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Email is already registered", status.HTTP_400_BAD_REQUEST) from e

    return await _issue_tokens(db, user)


async def login_user(db: AsyncSession, payload: LoginRequest) -> AuthResponse:
    user = await _find_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid email or password", status.HTTP_401_UNAUTHORIZED)
    return await _issue_tokens(db, user)


async def refresh_session(db: AsyncSession, refresh_token: str) -> AuthResponse:
    """Exchange a refresh token for a new pair. The presented token is revoked."""
    stmt = select(RefreshToken).where(RefreshToken.token == refresh_token)
    result = await db.execute(stmt)
    stored = result.scalar_one_or_none()
    if not stored or _as_utc(stored.expires_at) <= datetime.now(timezone.utc):
        raise ServiceError("Invalid or expired refresh token", status.HTTP_401_UNAUTHORIZED)

    user = await db.get(User, stored.user_id)
    await db.execute(delete(RefreshToken).where(RefreshToken.id == stored.id))
    if not user:
        await db.commit()
        raise ServiceError("User not found", status.HTTP_401_UNAUTHORIZED)
    return await _issue_tokens(db, user)


async def get_profile(db: AsyncSession, user_id) -> UserResponse:
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return UserResponse.model_validate(user)
