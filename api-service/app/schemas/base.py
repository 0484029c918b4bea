"""
Base Pydantic Schemas
Common schemas and base classes for request/response models
"""

from datetime import datetime, timezone
from typing import Optional, Any, Dict
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum
import re


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        validate_assignment=True,
        arbitrary_types_allowed=True,
        str_strip_whitespace=True,
        use_enum_values=True
    )


class HealthStatus(str, Enum):
    """Health status enumeration"""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class HealthCheck(BaseModel):
    """Health check response"""
    status: HealthStatus = Field(..., description="Overall health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: Dict[str, Any] = Field(default_factory=dict, description="Individual health checks")


# Validation helpers
def validate_non_empty_string(v: Any) -> str:
    """Validate non-empty string"""
    if not isinstance(v, str):
        raise ValueError("Must be a string")
    if not v.strip():
        raise ValueError("String cannot be empty")
    return v.strip()


def validate_email(v: Any) -> str:
    """Validate email format"""
    if not isinstance(v, str):
        raise ValueError("Email must be a string")

    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(email_pattern, v.strip()):
        raise ValueError("Invalid email format")

    return v.lower().strip()


def validate_username(v: Any) -> str:
    """Usernames: 3 to 64 letters, digits, dots, dashes or underscores"""
    v = validate_non_empty_string(v)
    if not re.fullmatch(r"[A-Za-z0-9._-]{3,64}", v):
        raise ValueError("Username must be 3-64 characters of letters, digits, '.', '_' or '-'")
    return v


def validate_phone_number(v: Optional[str]) -> Optional[str]:
    """Phone numbers use the in-game format 555-<digits>"""
    if v is None:
        return v
    v = v.strip()
    if not re.fullmatch(r"555-\d{1,10}", v):
        raise ValueError("Phone number must look like 555-1234")
    return v


def validate_bank_account(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not re.fullmatch(r"\d{1,7}", v):
        raise ValueError("Bank account must be at most 7 digits")
    return v
