"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from typing import Union
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user, optionally with initial positions."""
    is_admin: bool = False
    positions: list[Union[int, str]] = Field(default_factory=list, description="Position names or ids")


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    is_active: bool | None = None


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    is_active: bool
    is_admin: bool
    last_login_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str

    model_config = {"from_attributes": True}
