"""
Invitation code schemas
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from app.schemas.base import BaseSchema
from app.schemas.company import CompanySummary
from app.schemas.role import RoleSummary


class InvitationCodeCreateRequest(BaseSchema):
    max_uses: Optional[int] = Field(None, ge=1, le=10000)
    expires_in_days: Optional[int] = Field(None, ge=1, le=365)
    expires_at: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_single_expiry(self):
        if self.expires_in_days is not None and self.expires_at is not None:
            raise ValueError("Provide either expires_in_days or expires_at, not both")
        return self


class InvitationCodeRedeemRequest(BaseSchema):
    code: str = Field(..., min_length=4, max_length=16)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class InvitationCodeStats(BaseSchema):
    total_uses: int
    max_uses: Optional[int] = None
    remaining_uses: Optional[int] = None
    is_active: bool
    is_expired: bool
    status: str
    last_used_at: Optional[datetime] = None


class InvitationCodeOut(BaseSchema):
    id: UUID
    code: str
    company_id: UUID
    description: Optional[str] = None
    created_by_id: Optional[UUID] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    stats: InvitationCodeStats


class InvitationCodeUsageOut(BaseSchema):
    account_id: Optional[UUID] = None
    used_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class InvitationCodePreview(BaseSchema):
    code: str
    company: CompanySummary
    remaining_uses: Optional[int] = None
    expires_at: Optional[datetime] = None


class RedemptionOut(BaseSchema):
    company: CompanySummary
    role: Optional[RoleSummary] = None
    current_company_id: Optional[UUID] = None


class ExpireSweepOut(BaseSchema):
    deactivated: int
    deleted_expired: int
    deleted_exhausted: int
