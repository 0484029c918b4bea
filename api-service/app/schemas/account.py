"""
Account schemas: projections, linked-account listings and profile updates
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.base import (
    BaseSchema,
    validate_bank_account,
    validate_email,
    validate_non_empty_string,
    validate_phone_number,
    validate_username,
)
from app.schemas.company import CompanySummary, MembershipOut
from app.schemas.role import RoleSummary


class AccountProjection(BaseSchema):
    """Everything a client needs to render session state"""
    id: UUID
    username: str
    display_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    bank_account: Optional[str] = None
    discord_id: Optional[str] = None
    discord_username: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool
    system_role: str
    system_role_label: str
    company_validated: bool
    has_complete_profile: bool
    account_family_id: Optional[str] = None
    company: Optional[CompanySummary] = None
    role: Optional[RoleSummary] = None
    companies: list[MembershipOut] = Field(default_factory=list)
    advances: float = 0.0
    bonuses: float = 0.0
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AccountSummary(BaseSchema):
    id: UUID
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    company: Optional[CompanySummary] = None
    role: Optional[RoleSummary] = None
    system_role: str
    is_active: bool = True
    is_current: bool = False


class LinkedAccountsOut(BaseSchema):
    account_family_id: Optional[str] = None
    accounts: list[AccountSummary] = Field(default_factory=list)


class SessionOut(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountProjection


class SwitchAccountRequest(BaseSchema):
    target_account_id: UUID


class LinkedAccountCreateRequest(BaseSchema):
    company_code: str = Field(..., min_length=4, max_length=16)
    username: str
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=80)
    last_name: Optional[str] = Field(None, max_length=80)
    phone_number: Optional[str] = None
    bank_account: Optional[str] = None

    @field_validator("company_code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        return validate_username(value)

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return validate_phone_number(value)

    @field_validator("bank_account")
    @classmethod
    def check_bank_account(cls, value: Optional[str]) -> Optional[str]:
        return validate_bank_account(value)


class ProfileCompletionRequest(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    phone_number: Optional[str] = None
    bank_account: Optional[str] = None
    email: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        return validate_non_empty_string(value)

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return validate_phone_number(value)

    @field_validator("bank_account")
    @classmethod
    def check_bank_account(cls, value: Optional[str]) -> Optional[str]:
        return validate_bank_account(value)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        return validate_email(value) if value else None


class CurrentCompanyRequest(BaseSchema):
    company_id: UUID
