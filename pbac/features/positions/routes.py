"""
Position management API routes.

Positions are addressed by name or numeric ID in the path.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.core.database.engine import get_db
from pbac.features.permissions.dependencies import client_details, create_audit_log
from pbac.features.permissions.provider import RBACProvider
from pbac.features.positions.membership import MembershipQuery
from pbac.features.positions.models import Position
from pbac.features.positions.repository import PositionRepository
from pbac.features.positions.schemas import (
    AttachRoleToPosition,
    PositionCreate,
    PositionResponse,
    PositionUpdate,
    PositionWithRoles,
)
from pbac.features.users.dependencies import get_current_admin_user, get_current_user
from pbac.features.users.models import User
from pbac.features.users.schemas import UserPublic
from pbac.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=PositionWithRoles, status_code=status.HTTP_201_CREATED)
async def create_position(
    payload: PositionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a position, attaching the given roles (admin only)."""
    provider = RBACProvider(db)
    roles = [await provider.find_role(role) for role in payload.roles]

    try:
        position = Position(name=payload.name, description=payload.description, roles=roles)
        db.add(position)
        await db.commit()
        await db.refresh(position)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Position with this name already exists"
        )

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="position",
        resource_id=str(position.id),
        details=payload.model_dump(),
        **client_details(request),
    )
    await db.commit()
    return position


@router.get("", response_model=List[PositionResponse])
async def list_positions(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List positions ordered by name."""
    result = await db.execute(select(Position).order_by(Position.name).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/{position}", response_model=PositionWithRoles)
async def get_position(
    position: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a position with its roles."""
    return await PositionRepository(db).resolve(position)


@router.patch("/{position}", response_model=PositionResponse)
async def update_position(
    position: str,
    payload: PositionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Rename or re-describe a position (admin only)."""
    db_position = await PositionRepository(db).resolve(position)

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(db_position, field, value)

    try:
        await db.commit()
        await db.refresh(db_position)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Position with this name already exists"
        )

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update",
        resource_type="position",
        resource_id=str(db_position.id),
        details=changes,
        **client_details(request),
    )
    await db.commit()
    return db_position


@router.delete("/{position}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_position(
    position: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a position; its assignments and role links go with it (admin only)."""
    db_position = await PositionRepository(db).resolve(position)
    position_id, position_name = db_position.id, db_position.name

    await db.delete(db_position)
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="delete",
        resource_type="position",
        resource_id=str(position_id),
        details={"name": position_name},
        **client_details(request),
    )
    await db.commit()
    return None


@router.post("/{position}/roles", response_model=PositionWithRoles)
async def attach_role(
    position: str,
    payload: AttachRoleToPosition,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Attach a role to a position (admin only)."""
    db_position = await PositionRepository(db).resolve(position)
    role = await RBACProvider(db).find_role(payload.role)

    if role not in db_position.roles:
        db_position.roles.append(role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="attach",
        resource_type="position_role",
        resource_id=str(db_position.id),
        details={"role": role.name},
        **client_details(request),
    )
    await db.commit()
    return db_position


@router.delete("/{position}/roles/{role}", response_model=PositionWithRoles)
async def detach_role(
    position: str,
    role: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Detach a role from a position (admin only)."""
    db_position = await PositionRepository(db).resolve(position)
    db_role = await RBACProvider(db).find_role(role)

    if db_role in db_position.roles:
        db_position.roles.remove(db_role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="detach",
        resource_type="position_role",
        resource_id=str(db_position.id),
        details={"role": db_role.name},
        **client_details(request),
    )
    await db.commit()
    return db_position


@router.get("/{position}/holders", response_model=List[UserPublic])
async def list_holders(
    position: str,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List users holding the position. ``Manager|Auditor`` matches either."""
    stmt = select(User).where(User.deleted_at.is_(None))
    stmt = await MembershipQuery(db).scope_by_position(stmt, position)

    result = await db.execute(stmt.order_by(User.name).offset(skip).limit(limit))
    return result.scalars().all()
