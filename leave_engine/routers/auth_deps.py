"""
Auth dependencies.

Identity and RBAC live in another service; these dependencies only verify the
bearer token and turn it into an ``Actor``.
"""
import logging
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from leave_engine.schemas.auth import ROLE_PERMISSIONS, Actor, TokenData, UserRole
from leave_engine.services import auth as auth_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """
    Extracts and validates the caller from the JWT token.
    """
    payload = auth_service.decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="TOKEN_EXPIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = TokenData(**{k: payload.get(k) for k in ("sub", "role", "permissions", "employee_id")})
    if token_data.sub is None:
        logger.warning("Authentication failed: Missing subject in token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing subject in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = UserRole(token_data.role)
    except ValueError:
        logger.warning(f"Authentication failed: Unknown role {token_data.role!r}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown role"
        )

    permissions = token_data.permissions
    if permissions is None:
        permissions = ROLE_PERMISSIONS.get(role, [])

    return Actor(id=token_data.sub, role=role, permissions=permissions, employee_id=token_data.employee_id)


def require_permission(permission: str) -> Callable:
    """
    Dependency factory that checks the caller holds ``permission``.

    Usage:
        @router.put("/{leave_type}")
        def update(actor: Actor = Depends(require_permission("manage_settings"))):
            ...
    """
    def permission_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_permission(permission):
            logger.warning(f"Access denied for {actor.id}: missing {permission}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {permission}"
            )
        return actor
    return permission_checker


def require_settings_manager():
    return require_permission("manage_settings")


def require_approver():
    return require_permission("approve_leave")


def require_leave_viewer():
    return require_permission("view_leave_requests")
