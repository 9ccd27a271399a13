"""
Authentication and Authorization Module
========================================

Recognises callers from a JWT bearer token. Every AI endpoint works without
a token; the ``role`` claim only decides whether the caller is privileged
(full statistics, reload, usage reset).

Configuration comes from ``AuthConfig``:
- SECRET_KEY: JWT signing key (tokens are ignored while it is empty)
- ACCESS_TOKEN_EXPIRE_MINUTES: Token expiration time (default: 1440 = 24 hours)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from bge_ai.utils.config import AuthConfig
from bge_ai.utils.errors import MissingConfigError
from bge_ai.utils.logging import get_logger, set_user_id

logger = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Who made the HTTP request."""
    user_id: Optional[str] = None
    role: str = "student"
    privileged: bool = False
    authenticated: bool = False


ANONYMOUS = Caller()


def create_access_token(
    data: dict,
    auth_config: AuthConfig,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (``sub`` and ``role`` are the ones read back)
        auth_config: Signing settings
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Raises:
        MissingConfigError: If no secret key is configured
    """
    if not auth_config.secret_key:
        raise MissingConfigError("SECRET_KEY")

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=auth_config.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, auth_config.secret_key, algorithm=auth_config.algorithm)


def decode_access_token(token: str, auth_config: AuthConfig) -> Optional[dict]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded token payload if valid, None otherwise
    """
    if not auth_config.secret_key:
        return None
    try:
        return jwt.decode(token, auth_config.secret_key, algorithms=[auth_config.algorithm])
    except JWTError:
        return None


def caller_from_payload(payload: Optional[dict], auth_config: AuthConfig) -> Caller:
    if not payload:
        return ANONYMOUS
    role = str(payload.get("role") or "student").lower()
    return Caller(
        user_id=payload.get("sub"),
        role=role,
        privileged=role in auth_config.privileged_roles,
        authenticated=True,
    )


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Caller:
    """
    Optional authentication dependency.

    Missing or invalid tokens yield an anonymous, non-privileged caller.
    """
    if not credentials:
        return ANONYMOUS

    auth_config: AuthConfig = request.app.state.config.auth
    payload = decode_access_token(credentials.credentials, auth_config)
    if payload is None:
        logger.info("api.auth.invalid_token")
        return ANONYMOUS

    caller = caller_from_payload(payload, auth_config)
    if caller.user_id:
        set_user_id(str(caller.user_id))
    return caller


async def require_privileged(caller: Caller = Depends(get_caller)) -> Caller:
    """
    Dependency for administrative endpoints.

    Raises:
        HTTPException: 403 if the caller is not privileged
    """
    if not caller.privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return caller
