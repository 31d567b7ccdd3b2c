from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import Actor, AdminActor, EmployeeActor, ParentActor, StudentActor
from app.auth.security import decode_access_token
from app.core.enums import UserRole
from app.core.models import SubRole, SubRolePermissionGrant
from app.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login-oauth", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def load_grants(db: AsyncSession, school_id: Optional[UUID], sub_role: Optional[str]) -> frozenset:
    """Permission keys granted to sub-role `sub_role` of the school."""
    if school_id is None or not sub_role:
        return frozenset()
    stmt = (
        select(SubRolePermissionGrant.permission_key)
        .join(SubRole, SubRole.id == SubRolePermissionGrant.sub_role_id)
        .where(SubRole.school_id == school_id, SubRole.key == sub_role)
    )
    result = await db.execute(stmt)
    return frozenset(result.scalars().all())


async def build_actor(db: AsyncSession, user: User) -> Actor:
    common = {"id": user.id, "school_id": user.school_id, "name": user.name, "email": user.email}
    if user.role == UserRole.ADMIN.value:
        return AdminActor(**common)
    if user.role == UserRole.EMPLOYEE.value:
        grants = await load_grants(db, user.school_id, user.sub_role)
        return EmployeeActor(sub_role=user.sub_role, grants=grants, **common)
    if user.role == UserRole.PARENT.value:
        return ParentActor(**common)
    return StudentActor(**common)


async def require_auth(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Resolve the bearer token into an Actor carrying role, school and (for employees) grants."""
    if not token:
        raise _unauthorized("Authentication required")

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    user = await db.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    return await build_actor(db, user)
