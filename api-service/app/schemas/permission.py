"""
Permission and access-check schemas
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.core.rbac import PermissionCategory, parse_category
from app.schemas.base import BaseSchema


class PermissionOut(BaseSchema):
    code: str
    name: str
    description: Optional[str] = None
    module: str
    category: str


class PermissionCategoryGroup(BaseSchema):
    category: str
    permissions: list[PermissionOut] = Field(default_factory=list)


class AccessCheckRequest(BaseSchema):
    company_id: Optional[UUID] = Field(None, description="Defaults to the caller's current company")
    account_id: Optional[UUID] = Field(None, description="Defaults to the caller")
    permissions: list[str] = Field(default_factory=list, description="Any one of these codes is sufficient")
    category: Optional[str] = None

    @field_validator("permissions")
    @classmethod
    def normalize_codes(cls, values: list[str]) -> list[str]:
        return sorted({v.strip().upper() for v in values if v and v.strip()})

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            return parse_category(value).value
        except (KeyError, ValueError):
            raise ValueError(f"Unknown category, expected one of {[c.value for c in PermissionCategory]}")


class AccessDecisionOut(BaseSchema):
    allowed: bool
    reason: Optional[str] = None
    company_id: Optional[UUID] = None
    role_id: Optional[UUID] = None
    required: list[str] = Field(default_factory=list)
    required_category: Optional[str] = None
    held: list[str] = Field(default_factory=list)


class CategoryAccessOut(BaseSchema):
    company_id: Optional[UUID] = None
    categories: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    is_technician: bool = False
