"""
Authentication Schemas
Pydantic models for authentication requests and responses
"""

from typing import Optional
from pydantic import Field, field_validator
from app.schemas.account import AccountProjection
from app.schemas.base import BaseSchema, validate_non_empty_string


class LoginRequest(BaseSchema):
    """Login request schema"""
    username: str = Field(..., min_length=1, max_length=64, description="Account username")
    password: str = Field(..., min_length=1, description="Account password")

    @field_validator('username', 'password')
    @classmethod
    def validate_not_empty(cls, v):
        return validate_non_empty_string(v)


class DiscordLoginOut(BaseSchema):
    authorization_url: str
    state: str


class DiscordCallbackOut(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    outcome: str = Field(..., description="existing, linked or created")
    requires_company_code: bool
    requires_profile_completion: bool
    account: AccountProjection
    redirect_hint: Optional[str] = None
