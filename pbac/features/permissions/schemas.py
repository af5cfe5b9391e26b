"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, grants, and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Permission name, unique per guard")
    guard_name: Optional[str] = Field(None, max_length=50, description="Guard (defaults to the configured guard)")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate permission name format."""
        if not v.replace('_', '').replace('-', '').replace('.', '').replace(',', '').replace('*', '').replace(':', '').isalnum():
            raise ValueError('Permission name may only contain alphanumerics and _ - . , * :')
        return v


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    guard_name: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Role name, unique per guard")
    guard_name: Optional[str] = Field(None, max_length=50, description="Guard (defaults to the configured guard)")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters, underscores, and hyphens')
        return v


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    guard_name: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignPermissionToRole(BaseModel):
    """Schema for granting a permission to a role."""
    permission: str = Field(..., description="Permission name or ID")


class AssignRoleToUser(BaseModel):
    """Schema for assigning a role directly to a user."""
    role: str = Field(..., description="Role name or ID")


class AssignPermissionToUser(BaseModel):
    """Schema for granting a direct permission to a user."""
    permission: str = Field(..., description="Permission name or ID")


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
