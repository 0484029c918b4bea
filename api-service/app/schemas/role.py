"""
Role management schemas
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.core.rbac import ContractType
from app.schemas.base import BaseSchema, validate_non_empty_string


def _normalize_codes(values: Optional[list[str]]) -> Optional[list[str]]:
    if values is None:
        return None
    return sorted({v.strip().upper() for v in values if v and v.strip()})


class RoleSummary(BaseSchema):
    id: UUID
    name: str
    is_default: bool = False


class RoleOut(RoleSummary):
    description: Optional[str] = None
    company_id: UUID
    is_active: bool
    base_permissions: list[str] = Field(default_factory=list)
    permission_overrides: dict[str, bool] = Field(default_factory=dict)
    effective_permissions: list[str] = Field(default_factory=list)
    salary_norm: float = 0.0
    salary_cap: float = 0.0
    contract_type: str
    created_at: Optional[datetime] = None


class RoleCreateRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    is_default: bool = False
    salary_norm: float = Field(0.0, ge=0, le=100)
    salary_cap: float = Field(0.0, ge=0)
    contract_type: ContractType = ContractType.PERMANENT

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return validate_non_empty_string(value)

    @field_validator("permissions")
    @classmethod
    def normalize_permissions(cls, values: list[str]) -> list[str]:
        return _normalize_codes(values)


class RoleUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    description: Optional[str] = None
    permissions: Optional[list[str]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    salary_norm: Optional[float] = Field(None, ge=0, le=100)
    salary_cap: Optional[float] = Field(None, ge=0)
    contract_type: Optional[ContractType] = None

    @field_validator("permissions")
    @classmethod
    def normalize_permissions(cls, values: Optional[list[str]]) -> Optional[list[str]]:
        return _normalize_codes(values)


class RoleOverrideRequest(BaseSchema):
    code: str = Field(..., min_length=1, max_length=64)
    granted: Optional[bool] = Field(None, description="True grants, False revokes, null clears the override")

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class EffectivePermissionsOut(BaseSchema):
    role_id: UUID
    permissions: list[str] = Field(default_factory=list)
