"""
Permission management API routes.

Provides endpoints for managing permissions, roles, and their grants.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from pbac.core.database.engine import get_db
from pbac.features.users.dependencies import get_current_user, get_current_admin_user, get_user_or_404
from pbac.features.users.models import User
from pbac.features.permissions.models import AuditLog, Permission, Role
from pbac.features.permissions.provider import RBACProvider
from pbac.features.permissions.schemas import (
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleWithPermissions,
    AssignPermissionToRole,
    AssignRoleToUser,
    AssignPermissionToUser,
    AuditLogResponse,
)
from pbac.features.permissions.dependencies import client_details, create_audit_log
from pbac.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)  # Only admins can create permissions
):
    """Create a new permission (admin only)."""
    try:
        db_permission = Permission(**permission.model_dump(exclude_none=True))
        db.add(db_permission)
        await db.commit()
        await db.refresh(db_permission)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission with this name already exists for the guard"
        )

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="permission",
        resource_id=db_permission.id,
        details=permission.model_dump(),
        **client_details(request),
    )
    await db.commit()
    return db_permission


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    skip: int = 0,
    limit: int = 100,
    guard_name: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List all permissions with optional guard filtering."""
    stmt = select(Permission)

    if guard_name:
        stmt = stmt.where(Permission.guard_name == guard_name)

    stmt = stmt.order_by(Permission.name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific permission by ID."""
    permission = await db.get(Permission, permission_id)

    if not permission:
        raise HTTPException(status_code=404, detail="Permission not found")

    return permission


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a permission (admin only)."""
    db_permission = await db.get(Permission, permission_id)

    if not db_permission:
        raise HTTPException(status_code=404, detail="Permission not found")

    permission_name = db_permission.name
    await db.delete(db_permission)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="delete",
        resource_type="permission",
        resource_id=permission_id,
        details={"name": permission_name},
        **client_details(request),
    )
    await db.commit()
    return None


# ============================================================================
# Role Routes
# ============================================================================

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a new role (admin only)."""
    try:
        db_role = Role(**role.model_dump(exclude_none=True))
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role with this name already exists for the guard"
        )

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="role",
        resource_id=db_role.id,
        details=role.model_dump(),
        **client_details(request),
    )
    await db.commit()
    return db_role


@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    skip: int = 0,
    limit: int = 100,
    guard_name: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List roles with optional guard filtering."""
    stmt = select(Role)

    if guard_name:
        stmt = stmt.where(Role.guard_name == guard_name)

    stmt = stmt.order_by(Role.name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific role with its permissions."""
    role = await db.get(Role, role_id)

    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    return role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a role (admin only)."""
    db_role = await db.get(Role, role_id)

    if not db_role:
        raise HTTPException(status_code=404, detail="Role not found")

    role_name = db_role.name
    await db.delete(db_role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        details={"name": role_name},
        **client_details(request),
    )
    await db.commit()
    return None


@router.post("/roles/{role_id}/permissions", response_model=RoleWithPermissions)
async def assign_permission_to_role(
    role_id: str,
    assignment: AssignPermissionToRole,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Grant a permission to a role (admin only)."""
    role = await db.get(Role, role_id)

    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    await RBACProvider(db).grant_permission_to_role(role, assignment.permission)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="grant",
        resource_type="role",
        resource_id=role_id,
        details={"permission": assignment.permission},
        **client_details(request),
    )
    await db.commit()
    return role


# ============================================================================
# User Grant Routes
# ============================================================================

@router.post("/users/{user_id}/roles", response_model=List[RoleResponse])
async def assign_role_to_user(
    user_id: str,
    assignment: AssignRoleToUser,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Assign a role directly to a user (admin only)."""
    user = await get_user_or_404(db, user_id)
    await RBACProvider(db).assign_role(user, assignment.role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="assign",
        resource_type="user_role",
        resource_id=user_id,
        details={"role": assignment.role},
        **client_details(request),
    )
    await db.commit()
    return user.roles


@router.delete("/users/{user_id}/roles/{role}", response_model=List[RoleResponse])
async def remove_role_from_user(
    user_id: str,
    role: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Remove a directly assigned role from a user (admin only)."""
    user = await get_user_or_404(db, user_id)
    await RBACProvider(db).remove_role(user, role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="remove",
        resource_type="user_role",
        resource_id=user_id,
        details={"role": role},
        **client_details(request),
    )
    await db.commit()
    return user.roles


@router.post("/users/{user_id}/permissions", response_model=List[PermissionResponse])
async def assign_permission_to_user(
    user_id: str,
    assignment: AssignPermissionToUser,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Grant a direct permission to a user (admin only)."""
    user = await get_user_or_404(db, user_id)
    await RBACProvider(db).give_permission_to(user, assignment.permission)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="grant",
        resource_type="user_permission",
        resource_id=user_id,
        details={"permission": assignment.permission},
        **client_details(request),
    )
    await db.commit()
    return user.permissions


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    skip: int = 0,
    limit: int = 100,
    resource_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List audit log entries, newest first (admin only)."""
    stmt = select(AuditLog)

    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    stmt = stmt.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()
