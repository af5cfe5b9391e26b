"""
Permission checking dependencies and audit logging helpers.

Implements:
- FastAPI dependencies for route protection backed by PermissionResolver
- Audit logging helpers
"""
from typing import Dict, Any, Optional, List
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from pbac.core.database.engine import get_db
from pbac.features.users.dependencies import get_current_user
from pbac.features.users.models import User
from pbac.features.permissions.models import AuditLog
from pbac.features.positions.resolver import PermissionResolver
from pbac.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(permission: str, guard_name: Optional[str] = None):
    """
    FastAPI dependency to require a specific permission.

    The permission may come from a direct grant, a role, or a position.
    System admins pass without a check. An unknown permission denies.

    Usage:
        @router.post("/invoices/{invoice_id}/approve")
        async def approve_invoice(
            invoice_id: str,
            user: User = Depends(require_permission("approve-invoice"))
        ):
            pass

    Raises:
        HTTPException: 403 if user doesn't have permission
    """
    async def permission_dependency(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.is_admin:
            log.debug("User %s is admin - granted %s", current_user.id, permission)
            return current_user

        resolver = PermissionResolver(db)
        if not await resolver.check_permission_to(current_user, permission, guard_name):
            log.debug("User %s denied %s", current_user.id, permission)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}"
            )

        return current_user

    return permission_dependency


def require_any_permission(permissions: List[str], guard_name: Optional[str] = None):
    """
    FastAPI dependency to require ANY of the specified permissions.

    Usage:
        @router.get("/reports")
        async def get_reports(
            user: User = Depends(require_any_permission(["reports.read", "reports.admin"]))
        ):
            pass
    """
    async def permission_dependency(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.is_admin:
            return current_user

        resolver = PermissionResolver(db)
        for permission in permissions:
            if await resolver.check_permission_to(current_user, permission, guard_name):
                return current_user

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: requires one of {permissions}"
        )

    return permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

def client_details(request: Request) -> Dict[str, Optional[str]]:
    """Client address and user agent for an audit log entry."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Create an audit log entry.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "assign", "sync", "remove")
        resource_type: Type of resource (e.g., "position", "role", "user")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )

    db.add(audit_log)
    await db.flush()

    log.info(
        "Audit: user=%s action=%s resource=%s:%s", user_id, action, resource_type, resource_id
    )

    return audit_log
