from datetime import timedelta

from fastapi import HTTPException
import pytest

from app.core.security import (
    create_access_token,
    create_oauth_state,
    decode_token,
    get_password_hash,
    verify_password,
    verify_token,
    verify_oauth_state,
)


def test_verify_token_returns_subject():
    token = create_access_token(subject="account-1")

    subject = verify_token(token, token_type="access")

    assert subject == "account-1"


def test_decode_token_keeps_additional_claims():
    token = create_access_token(
        subject="account-1",
        additional_claims={"username": "mike", "system_role": "user", "company_id": None},
    )

    payload = decode_token(token)

    assert payload.subject == "account-1"
    assert payload.claims["username"] == "mike"
    assert payload.claims["system_role"] == "user"


def test_verify_token_rejects_untrusted_issuer_claim():
    token = create_access_token(
        subject="account-1",
        additional_claims={"iss": "malicious-issuer"},
    )

    with pytest.raises(HTTPException) as exc_info:
        verify_token(token, token_type="access")

    assert exc_info.value.status_code == 401
    assert "issuer" in str(exc_info.value.detail).lower()


def test_verify_token_rejects_wrong_token_type():
    token = create_access_token(subject="account-1", additional_claims={"type": "refresh"})

    with pytest.raises(HTTPException) as exc_info:
        verify_token(token, token_type="access")

    assert exc_info.value.status_code == 401


def test_verify_token_rejects_expired_token():
    token = create_access_token(subject="account-1", expires_delta=timedelta(minutes=-5))

    with pytest.raises(HTTPException) as exc_info:
        verify_token(token)

    assert exc_info.value.status_code == 401


def test_verify_token_rejects_garbage():
    with pytest.raises(HTTPException) as exc_info:
        verify_token("not-a-jwt")

    assert exc_info.value.status_code == 401


def test_password_hash_round_trip():
    hashed = get_password_hash("correct horse battery")

    assert verify_password("correct horse battery", hashed)
    assert not verify_password("wrong password", hashed)


def test_password_less_account_never_matches():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "")


def test_oauth_state_round_trip():
    state = create_oauth_state()

    verify_oauth_state(state)
    assert create_oauth_state() != state


def test_access_token_is_not_an_oauth_state():
    with pytest.raises(HTTPException) as exc_info:
        verify_oauth_state(create_access_token(subject="account-1"))

    assert exc_info.value.status_code == 401


def test_oauth_state_is_not_an_access_token():
    with pytest.raises(HTTPException):
        verify_token(create_oauth_state(), token_type="access")


def test_expired_oauth_state_is_rejected():
    state = create_access_token(
        subject="nonce",
        expires_delta=timedelta(minutes=-1),
        additional_claims={"type": "oauth_state"},
    )

    with pytest.raises(HTTPException):
        verify_oauth_state(state)
