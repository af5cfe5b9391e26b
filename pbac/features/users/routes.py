"""
User feature routes.

Besides profile management, these expose a user's positions and answer
permission checks across direct grants, roles and positions.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.core.database.engine import get_db
from pbac.features.permissions.dependencies import client_details, create_audit_log, require_any_permission, require_permission
from pbac.features.permissions.schemas import PermissionResponse
from pbac.features.positions.membership import MembershipQuery
from pbac.features.positions.schemas import (
    AssignPositions,
    PermissionCheckResponse,
    PositionCheckResponse,
    PositionResponse,
)
from pbac.features.positions.service import PositionHolder
from pbac.features.users.models import User
from pbac.features.users.schemas import UserCreate, UserResponse, UserPublic, UserUpdate
from pbac.features.users.dependencies import get_current_user, get_current_admin_user, get_user_or_404


router = APIRouter(tags=["users"])


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Create a user (admin only).

    Positions in the payload are resolved up front and written together
    with the user's row, so an unknown position fails the whole request.
    """
    user = User(email=payload.email, name=payload.name, is_admin=payload.is_admin)
    await PositionHolder(db, user).assign_position(payload.positions)

    try:
        db.add(user)
        await db.commit()
        await db.refresh(user)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    await create_audit_log(
        db,
        user_id=admin.id,
        action="create",
        resource_type="user",
        resource_id=user.id,
        details={"email": user.email, "positions": payload.positions},
        **client_details(request),
    )
    await db.commit()
    return user


@router.get("/", response_model=list[UserPublic])
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    position: Optional[str] = Query(None, description="Only holders of this position; `a|b` matches either"),
    skip: int = 0,
    limit: int = 50
):
    """List active users (public info only), optionally filtered by position."""
    stmt = select(User).where(User.is_active == True, User.deleted_at.is_(None))  # noqa: E712

    if position:
        stmt = await MembershipQuery(db).scope_by_position(stmt, position)

    result = await db.execute(stmt.order_by(User.name).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name

    await db.commit()
    await db.refresh(user)
    return user


@router.get("/me/positions", response_model=List[PositionResponse])
async def get_my_positions(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Positions held by the current user."""
    return await PositionHolder(db, user).assignments.positions_of(user)


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get public user profile by ID."""
    return await get_user_or_404(db, user_id)


# Admin-only routes
@router.patch("/{user_id}/admin", response_model=UserResponse)
async def toggle_admin_status(
    user_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Toggle admin status for a user (admin only)."""
    user = await get_user_or_404(db, user_id)

    # Prevent self-demotion
    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot modify your own admin status"
        )

    user.is_admin = not user.is_admin
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Soft-delete a user (admin only).

    The user's positions, roles and permissions are kept so a restore
    brings them back unchanged.
    """
    user = await get_user_or_404(db, user_id)

    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    user.soft_delete()
    await create_audit_log(
        db,
        user_id=admin.id,
        action="delete",
        resource_type="user",
        resource_id=user.id,
        **client_details(request),
    )
    await db.commit()
    return None


@router.post("/{user_id}/restore", response_model=UserResponse)
async def restore_user(
    user_id: str,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Restore a soft-deleted user (admin only)."""
    user = await get_user_or_404(db, user_id, with_trashed=True)

    if not user.is_trashed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is not deleted"
        )

    user.restore()
    await create_audit_log(
        db,
        user_id=admin.id,
        action="restore",
        resource_type="user",
        resource_id=user.id,
        **client_details(request),
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}/force", status_code=status.HTTP_204_NO_CONTENT)
async def force_delete_user(
    user_id: str,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Permanently delete a user and all of their assignments (admin only)."""
    user = await get_user_or_404(db, user_id, with_trashed=True)

    if user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    await db.delete(user)
    await create_audit_log(
        db,
        user_id=admin.id,
        action="force_delete",
        resource_type="user",
        resource_id=user_id,
        **client_details(request),
    )
    await db.commit()
    return None


# ============================================================================
# Positions
# ============================================================================

@router.get("/{user_id}/positions", response_model=List[PositionResponse])
async def get_user_positions(
    user_id: str,
    _: Annotated[User, Depends(require_permission("users.read"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Positions held by a user."""
    user = await get_user_or_404(db, user_id)
    return await PositionHolder(db, user).assignments.positions_of(user)


@router.post("/{user_id}/positions", response_model=List[PositionResponse])
async def assign_user_positions(
    user_id: str,
    payload: AssignPositions,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add positions to a user, keeping the ones already held (admin only)."""
    user = await get_user_or_404(db, user_id)
    await PositionHolder(db, user).assign_position(payload.positions)

    await create_audit_log(
        db,
        user_id=admin.id,
        action="assign",
        resource_type="user_position",
        resource_id=user.id,
        details=payload.model_dump(),
        **client_details(request),
    )
    await db.commit()
    return user.positions


@router.put("/{user_id}/positions", response_model=List[PositionResponse])
async def sync_user_positions(
    user_id: str,
    payload: AssignPositions,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Replace a user's positions with exactly the given ones (admin only)."""
    user = await get_user_or_404(db, user_id)
    await PositionHolder(db, user).sync_positions(payload.positions)

    await create_audit_log(
        db,
        user_id=admin.id,
        action="sync",
        resource_type="user_position",
        resource_id=user.id,
        details=payload.model_dump(),
        **client_details(request),
    )
    await db.commit()
    return user.positions


@router.delete("/{user_id}/positions/{position}", response_model=List[PositionResponse])
async def remove_user_position(
    user_id: str,
    position: str,
    request: Request,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Take a position away from a user (admin only)."""
    user = await get_user_or_404(db, user_id)
    await PositionHolder(db, user).remove_position(position)

    await create_audit_log(
        db,
        user_id=admin.id,
        action="remove",
        resource_type="user_position",
        resource_id=user.id,
        details={"position": position},
        **client_details(request),
    )
    await db.commit()
    return user.positions


@router.get("/{user_id}/positions/check", response_model=PositionCheckResponse)
async def check_user_position(
    user_id: str,
    _: Annotated[User, Depends(require_any_permission(["users.read", "users.manage_positions"]))],
    db: Annotated[AsyncSession, Depends(get_db)],
    position: str = Query(..., description="Position name; `a|b` checks for either")
):
    """Whether a user holds a position, or any of `a|b`."""
    user = await get_user_or_404(db, user_id)
    held = await PositionHolder(db, user).has_position(position)
    return PositionCheckResponse(position=position, held=held)


# ============================================================================
# Permissions
# ============================================================================

@router.get("/{user_id}/permissions", response_model=List[PermissionResponse])
async def get_user_permissions(
    user_id: str,
    _: Annotated[User, Depends(require_permission("users.read"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Every permission a user holds, whether direct, via a role, or via a position."""
    user = await get_user_or_404(db, user_id)
    return await PositionHolder(db, user).resolver.all_permissions(user)


@router.get("/{user_id}/permissions/check", response_model=PermissionCheckResponse)
async def check_user_permission(
    user_id: str,
    _: Annotated[User, Depends(require_permission("users.read"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    permission: str = Query(..., description="Permission name or ID"),
    guard_name: Optional[str] = None
):
    """
    Whether a user holds a permission by any path.

    An unknown permission answers 404 rather than false.
    """
    user = await get_user_or_404(db, user_id)
    granted = await PositionHolder(db, user).has_permission_to(permission, guard_name)
    return PermissionCheckResponse(permission=permission, guard_name=guard_name, granted=granted)
