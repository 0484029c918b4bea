from fastapi import HTTPException

from app.core.errors import (
    CodeDeactivatedError,
    CodeExhaustedError,
    CodeExpiredError,
    ConflictError,
    DomainError,
    ForbiddenError,
    InsufficientPermissionsError,
    InvalidCodeError,
    InvalidStateError,
    NoRoleAssignedError,
    NotCompanyMemberError,
    NotFoundError,
    UpstreamFailureError,
)


def test_domain_errors_are_http_exceptions_with_structured_detail():
    error = NotFoundError("Role not found", role_id="abc")

    assert isinstance(error, HTTPException)
    assert error.status_code == 404
    assert error.detail == {"code": "NOT_FOUND", "message": "Role not found", "role_id": "abc"}


def test_default_message_is_used_when_none_given():
    error = ConflictError()

    assert error.status_code == 409
    assert error.detail["message"] == ConflictError.default_message


def test_status_codes_per_kind():
    assert ForbiddenError().status_code == 403
    assert InvalidStateError().status_code == 400
    assert UpstreamFailureError().status_code == 502


def test_access_denials_are_forbidden():
    for error_class in (NotCompanyMemberError, NoRoleAssignedError, InsufficientPermissionsError):
        error = error_class()
        assert error.status_code == 403
        assert isinstance(error, DomainError)

    assert NotCompanyMemberError().detail["code"] == "NOT_COMPANY_MEMBER"
    assert NoRoleAssignedError().detail["code"] == "NO_ROLE_ASSIGNED"


def test_insufficient_permissions_carries_required_and_held():
    error = InsufficientPermissionsError(
        required=["MANAGE_ROLES", "MANAGE_COMPANY"],
        held={"VIEW_FACTURES"},
        required_category="GESTION",
    )

    assert error.detail["code"] == "INSUFFICIENT_PERMISSIONS"
    assert error.detail["required"] == ["MANAGE_COMPANY", "MANAGE_ROLES"]
    assert error.detail["held"] == ["VIEW_FACTURES"]
    assert error.detail["required_category"] == "GESTION"


def test_insufficient_permissions_omits_empty_category():
    error = InsufficientPermissionsError(required=["MANAGE_ROLES"])

    assert "required_category" not in error.detail
    assert error.detail["held"] == []


def test_invitation_code_errors():
    assert InvalidCodeError().status_code == 404
    assert InvalidCodeError().detail["code"] == "INVALID_CODE"
    assert CodeExpiredError().detail["code"] == "CODE_EXPIRED"
    assert CodeExhaustedError().detail["code"] == "CODE_EXHAUSTED"
    assert CodeDeactivatedError().detail["code"] == "CODE_DEACTIVATED"
    assert isinstance(CodeExhaustedError(), InvalidStateError)
