"""
Access token handling.

Tokens are issued by the identity service; this module only needs to verify
them. ``create_access_token`` exists for scripts and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from leave_engine.core.config import settings


def create_access_token(
    subject: str,
    role: str,
    permissions: Optional[List[str]] = None,
    employee_id: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: Dict[str, Any] = {"exp": expire, "sub": str(subject), "role": role, "type": "access"}
    if permissions is not None:
        claims["permissions"] = permissions
    if employee_id is not None:
        claims["employee_id"] = employee_id
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Return the payload of a valid token, ``{"error": "TOKEN_EXPIRED"}`` for an
    expired one and ``None`` for anything else.
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        return {"error": "TOKEN_EXPIRED"}
    except JWTError:
        return None
