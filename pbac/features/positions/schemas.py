"""
Pydantic schemas for positions and position assignments.
"""
from datetime import datetime
from typing import List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from pbac.features.permissions.schemas import RoleResponse


class PositionBase(BaseModel):
    """Base position schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique position name")
    description: Optional[str] = Field(None, max_length=1000)


class PositionCreate(PositionBase):
    """Schema for creating a position, optionally with roles attached."""
    roles: List[str] = Field(default_factory=list, description="Role names or IDs to attach")


class PositionUpdate(BaseModel):
    """Schema for renaming or re-describing a position."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)


class PositionResponse(PositionBase):
    """Schema for position response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PositionWithRoles(PositionResponse):
    """Schema for position with its roles."""
    roles: List[RoleResponse] = []

    model_config = ConfigDict(from_attributes=True)


class AttachRoleToPosition(BaseModel):
    """Schema for attaching a role to a position."""
    role: str = Field(..., description="Role name or ID")


class AssignPositions(BaseModel):
    """Schema for assigning or syncing a subject's positions."""
    positions: List[Union[int, str]] = Field(..., description="Position names or IDs")


class PositionCheckResponse(BaseModel):
    """Result of a position membership check."""
    position: str
    held: bool


class PermissionCheckResponse(BaseModel):
    """Result of a permission check."""
    permission: str
    guard_name: Optional[str] = None
    granted: bool
