from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.auth.schemas import Actor
from app.core.exceptions import ServiceError
from app.core.schemas import DropdownOption, MessageResponse
from app.db.session import get_db

from . import service
from .schemas import GrantResponse, GrantsReplace, PermissionResponse, SubRoleCreate, SubRoleResponse

router = APIRouter(prefix="/api/sms", tags=["sub-roles"])


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.list_permissions(db)


@router.get("/sub-roles", response_model=List[SubRoleResponse])
async def list_sub_roles(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.list_sub_roles(db, actor.school_id)


@router.get("/sub-roles/dropdown", response_model=List[DropdownOption])
async def sub_roles_dropdown(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> List[DropdownOption]:
    rows = await service.list_sub_roles(db, actor.school_id)
    return [DropdownOption(value=r.key, label=r.name) for r in rows]


@router.post("/sub-roles", response_model=SubRoleResponse, status_code=status.HTTP_201_CREATED)
async def create_sub_role(
    payload: SubRoleCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.create_sub_role(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/sub-roles/{sub_role_id}", response_model=MessageResponse)
async def delete_sub_role(
    sub_role_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
) -> MessageResponse:
    try:
        await service.delete_sub_role(db, actor.school_id, sub_role_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Deleted")


@router.get("/sub-role-grants", response_model=List[GrantResponse])
async def list_grants(
    sub_role_id: Optional[UUID] = Query(None, alias="subRoleId"),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    return await service.list_grants(db, actor.school_id, sub_role_id)


@router.put("/sub-role-grants", response_model=List[GrantResponse])
async def replace_grants(
    payload: GrantsReplace,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.replace_grants(db, actor.school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
