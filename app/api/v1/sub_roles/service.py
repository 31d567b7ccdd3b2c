"""Sub-roles of the employee role and the permission grants attached to them."""

import logging
import re
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessRuleError, ServiceError
from app.core.models import PermissionCatalog, SubRole, SubRolePermissionGrant
from app.core.tenant_service import get_scoped_or_404
from app.db.seed_permissions import seed_default_sub_roles, seed_permission_catalog

from .schemas import GrantsReplace, SubRoleCreate

logger = logging.getLogger(__name__)


def slugify_key(name: str) -> str:
    """'Lab Assistant' -> 'lab_assistant'."""
    return re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")


async def list_permissions(db: AsyncSession) -> List[PermissionCatalog]:
    await seed_permission_catalog(db)
    await db.commit()
    result = await db.execute(select(PermissionCatalog).order_by(PermissionCatalog.key))
    return list(result.scalars().all())


async def list_sub_roles(db: AsyncSession, school_id: UUID) -> List[SubRole]:
    await seed_default_sub_roles(db, school_id)
    await db.commit()
    stmt = select(SubRole).where(SubRole.school_id == school_id).order_by(SubRole.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_sub_role_by_key(db: AsyncSession, school_id: UUID, key: str) -> Optional[SubRole]:
    stmt = select(SubRole).where(SubRole.school_id == school_id, SubRole.key == key)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_sub_role(db: AsyncSession, school_id: UUID, payload: SubRoleCreate) -> SubRole:
    key = slugify_key(payload.key)
    if not key:
        raise BusinessRuleError("Sub-role key must contain letters or digits")
    obj = SubRole(school_id=school_id, key=key, name=payload.name.strip(), is_system=False)
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Sub-role key already exists for this school", status.HTTP_409_CONFLICT)
    await db.refresh(obj)
    return obj


async def delete_sub_role(db: AsyncSession, school_id: UUID, sub_role_id: UUID) -> None:
    obj = await get_scoped_or_404(db, SubRole, sub_role_id, school_id, "Sub-role")
    await db.execute(
        delete(SubRolePermissionGrant).where(
            SubRolePermissionGrant.school_id == school_id,
            SubRolePermissionGrant.sub_role_id == obj.id,
        )
    )
    await db.delete(obj)
    await db.commit()


async def list_grants(
    db: AsyncSession,
    school_id: UUID,
    sub_role_id: Optional[UUID] = None,
) -> List[SubRolePermissionGrant]:
    stmt = select(SubRolePermissionGrant).where(SubRolePermissionGrant.school_id == school_id)
    if sub_role_id:
        stmt = stmt.where(SubRolePermissionGrant.sub_role_id == sub_role_id)
    stmt = stmt.order_by(SubRolePermissionGrant.permission_key)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def replace_grants(db: AsyncSession, school_id: UUID, payload: GrantsReplace) -> List[SubRolePermissionGrant]:
    """Replace the whole grant set of a sub-role in one transaction."""
    await seed_permission_catalog(db)
    sub_role = await get_scoped_or_404(db, SubRole, payload.sub_role_id, school_id, "Sub-role")

    keys = list(dict.fromkeys(payload.permission_keys))
    if keys:
        result = await db.execute(select(PermissionCatalog.key).where(PermissionCatalog.key.in_(keys)))
        if len(result.scalars().all()) != len(keys):
            await db.rollback()
            raise BusinessRuleError("One or more permission keys are invalid")

    await db.execute(
        delete(SubRolePermissionGrant).where(
            SubRolePermissionGrant.school_id == school_id,
            SubRolePermissionGrant.sub_role_id == sub_role.id,
        )
    )
    for key in keys:
        db.add(SubRolePermissionGrant(school_id=school_id, sub_role_id=sub_role.id, permission_key=key))
    await db.commit()
    logger.info("Grants of sub-role %s replaced (%d keys)", sub_role.key, len(keys))
    return await list_grants(db, school_id, sub_role.id)
