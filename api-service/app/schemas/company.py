"""
Company and membership schemas
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import BaseSchema, validate_non_empty_string
from app.schemas.role import RoleSummary


class CompanySummary(BaseSchema):
    id: UUID
    name: str


class CompanyOut(CompanySummary):
    description: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True
    owner_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class CompanyCreateRequest(BaseSchema):
    name: str = Field(..., min_length=2, max_length=120)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=64)
    owner_account_id: Optional[UUID] = Field(None, description="Defaults to the caller")

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_non_empty_string(value)


class MembershipOut(BaseSchema):
    company: CompanySummary
    role: Optional[RoleSummary] = None
    is_active: bool
    joined_at: Optional[datetime] = None


class MemberOut(BaseSchema):
    account_id: UUID
    username: str
    display_name: str
    role: Optional[RoleSummary] = None
    is_active: bool
    joined_at: Optional[datetime] = None


class AssignRoleRequest(BaseSchema):
    role_id: UUID
