"""
Domain error taxonomy.

Every business-rule failure is raised as one of these HTTPException subclasses
so FastAPI renders it as ``{"detail": {"code": ..., "message": ...}}`` without
per-route try/except blocks.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from fastapi import HTTPException, status


class DomainError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "DOMAIN_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        detail = {"code": self.code, "message": self.message, **extra}
        super().__init__(status_code=self.status_code, detail=detail)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "Operation outside of your authorized scope"


class InvalidStateError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_STATE"
    default_message = "Resource is in a state that does not allow this operation"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"


class UpstreamFailureError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_FAILURE"
    default_message = "A required service is unavailable, please retry later"


# Access denials

class NotCompanyMemberError(ForbiddenError):
    code = "NOT_COMPANY_MEMBER"
    default_message = "You are not a member of this company"


class NoRoleAssignedError(ForbiddenError):
    code = "NO_ROLE_ASSIGNED"
    default_message = "No role is assigned to you in this company"


class InsufficientPermissionsError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "You do not have the permissions required for this action"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        required: Iterable[str] = (),
        held: Iterable[str] = (),
        required_category: Optional[str] = None,
    ) -> None:
        extra: dict[str, Any] = {"required": sorted(required), "held": sorted(held)}
        if required_category:
            extra["required_category"] = required_category
        super().__init__(message, **extra)


# Invitation code failures

class InvalidCodeError(NotFoundError):
    code = "INVALID_CODE"
    default_message = "Invitation code not found"


class CodeExpiredError(InvalidStateError):
    code = "CODE_EXPIRED"
    default_message = "Invitation code has expired"


class CodeExhaustedError(InvalidStateError):
    code = "CODE_EXHAUSTED"
    default_message = "Invitation code has reached its maximum number of uses"


class CodeDeactivatedError(InvalidStateError):
    code = "CODE_DEACTIVATED"
    default_message = "Invitation code has been deactivated"
