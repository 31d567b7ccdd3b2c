import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status

from app.auth.dependencies import require_auth
from app.auth.schemas import Actor
from app.core.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


def can_perform(actor: Actor, permission_key: str) -> bool:
    return actor.permits(permission_key)


def ensure_same_school(actor: Actor, school_id: Optional[UUID]) -> None:
    """Reject an explicit school id that is not the actor's own school."""
    if actor.school_id is None or school_id != actor.school_id:
        logger.warning(
            "Cross-tenant access denied: user %s (school %s) requested school %s",
            actor.id,
            actor.school_id,
            school_id,
        )
        raise AuthorizationError("Cross-tenant access denied")


async def require_school(actor: Actor = Depends(require_auth)) -> Actor:
    """Tenant guard: the caller must be linked to a school."""
    if actor.school_id is None:
        detail = "Admin is not linked to a school" if actor.is_admin else "User is not linked to a school"
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
    return actor


async def require_admin(actor: Actor = Depends(require_school)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return actor


async def require_staff(actor: Actor = Depends(require_school)) -> Actor:
    if not actor.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return actor


def require_roles(*roles: str):
    """
    Dependency factory restricting a route to the given roles. Does not require a school,
    so it also fits applicants that are not yet admitted anywhere.

    Example:
        Depends(require_roles("student"))
    """

    async def _checker(actor: Actor = Depends(require_auth)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
        return actor

    return _checker


def check_permission(permission_key: str):
    """
    Dependency factory for permission-gated staff actions inside the caller's school.
    Admins pass; employees need a grant on their sub-role; students and parents never pass.

    Example:
        Depends(check_permission("mark_attendance"))
    """

    async def _checker(actor: Actor = Depends(require_staff)) -> Actor:
        if not can_perform(actor, permission_key):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return _checker
