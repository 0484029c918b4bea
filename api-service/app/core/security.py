"""
Security utilities for JWT authentication and password hashing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import secrets
from typing import Optional, Union, Any
from joserfc import jwt as jose_jwt
from joserfc.jwk import OctKey
from joserfc.errors import BadSignatureError, DecodeError, ExpiredTokenError, InvalidTokenError
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher
from fastapi import HTTPException, status
import structlog

from app.core.simple_config import settings

logger = structlog.get_logger()

# Password hashing context
pwd_context = PasswordHash((BcryptHasher(),))

# JWT Configuration
ALGORITHM = settings.JWT_ALGORITHM
SECRET_KEY = settings.JWT_SECRET_KEY
ACCESS_TOKEN_EXPIRE_MINUTES = settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
ISSUER = settings.AUTH_LOCAL_ISSUER
OAUTH_STATE_EXPIRE_MINUTES = 10

# joserfc key object (reusable)
_jwt_key = OctKey.import_key(SECRET_KEY)


@dataclass(frozen=True)
class TokenPayload:
    subject: str
    claims: dict


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    subject: Union[str, Any],
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict] = None
) -> str:
    """
    Create JWT access token

    Args:
        subject: Token subject (account ID)
        expires_delta: Custom expiration time
        additional_claims: Additional claims to include in token

    Returns:
        Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "exp": int(expire.timestamp()),
        "sub": str(subject),
        "type": "access",
        "iss": ISSUER,
        "iat": int(now.timestamp())
    }

    if additional_claims:
        to_encode.update(additional_claims)

    encoded_jwt = jose_jwt.encode({"alg": ALGORITHM}, to_encode, _jwt_key)

    logger.debug("Access token created", subject=str(subject), expires=expire)
    return encoded_jwt


def decode_token(token: str, token_type: str = "access") -> TokenPayload:
    """
    Decode and validate a JWT

    Raises:
        HTTPException: 401 if the signature, type, issuer, subject or expiry is invalid
    """
    try:
        token_obj = jose_jwt.decode(token, _jwt_key, algorithms=[ALGORITHM])
    except (BadSignatureError, DecodeError, ExpiredTokenError, InvalidTokenError, ValueError) as exc:
        logger.warning("JWT verification failed", error=str(exc))
        raise _unauthorized("Could not validate credentials")

    payload = token_obj.claims

    if payload.get("type") != token_type:
        logger.warning("Invalid token type", expected=token_type, actual=payload.get("type"))
        raise _unauthorized("Invalid token type")

    if payload.get("iss") != ISSUER:
        logger.warning("Token issuer is not trusted", issuer=payload.get("iss"))
        raise _unauthorized("Untrusted token issuer")

    subject = payload.get("sub")
    if subject is None:
        logger.warning("Token missing subject")
        raise _unauthorized("Invalid token: missing subject")

    exp = payload.get("exp")
    if exp is None or datetime.now(timezone.utc).timestamp() > exp:
        logger.warning("Token expired", subject=subject)
        raise _unauthorized("Token expired")

    logger.debug("Token verified successfully", subject=subject, type=token_type)
    return TokenPayload(subject=str(subject), claims=dict(payload))


def verify_token(token: str, token_type: str = "access") -> str:
    """
    Verify JWT token and return subject

    Raises:
        HTTPException: If token is invalid or expired
    """
    return decode_token(token, token_type=token_type).subject


def create_oauth_state() -> str:
    """Signed, short-lived value round-tripped through the OAuth provider"""
    return create_access_token(
        subject=secrets.token_urlsafe(16),
        expires_delta=timedelta(minutes=OAUTH_STATE_EXPIRE_MINUTES),
        additional_claims={"type": "oauth_state"},
    )


def verify_oauth_state(state: str) -> None:
    """
    Check the state returned to the OAuth callback

    Raises:
        HTTPException: 401 if the state was not issued here or has expired
    """
    decode_token(state, token_type="oauth_state")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against its hash

    Accounts created through Discord have no password and never match.
    """
    if not hashed_password:
        return False
    try:
        result = pwd_context.verify(plain_password, hashed_password)
        logger.debug("Password verification", result=result)
        return result
    except Exception as e:
        logger.error("Password verification error", error=str(e))
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    try:
        # Bcrypt has a 72 byte limit, truncate if necessary
        password_bytes = password.encode('utf-8')
        if len(password_bytes) > 72:
            password = password_bytes[:72].decode('utf-8', errors='ignore')
            logger.warning("Password truncated to 72 bytes for bcrypt")

        hashed = pwd_context.hash(password)
        logger.debug("Password hashed successfully")
        return hashed
    except Exception as e:
        logger.error("Password hashing error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing password"
        )
