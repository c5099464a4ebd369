"""
Identity seam.

Authentication happens upstream (SSO / gateway). The gateway forwards the
resolved caller and role in trusted headers; this module only turns them into
a `CurrentUser` and enforces role requirements per route.
"""

from enum import Enum
from functools import lru_cache
from typing import Callable, Optional

import structlog
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

logger = structlog.get_logger()

__all__ = ["CurrentUser", "UserRole", "get_current_user", "requires_role"]

USER_HEADER = "X-CloudForge-User"
ROLE_HEADER = "X-CloudForge-Role"


class UserRole(str, Enum):
    ADMIN = "admin"
    DEVELOPER = "developer"
    VIEWER = "viewer"


class CurrentUser(BaseModel):
    """The caller identity resolved by the upstream authentication layer."""

    id: str
    role: UserRole = UserRole.VIEWER


async def get_current_user(
    user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
    role: Optional[str] = Header(default=None, alias=ROLE_HEADER),
) -> CurrentUser:
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        resolved_role = UserRole((role or UserRole.VIEWER.value).strip().lower())
    except ValueError:
        logger.warning("unknown_caller_role", user_id=user_id, role=role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown role",
        )
    return CurrentUser(id=user_id.strip(), role=resolved_role)


@lru_cache(maxsize=32)
def requires_role(*allowed_roles: str) -> Callable[[CurrentUser], CurrentUser]:
    """
    FastAPI dependency for RBAC.

    Usage:
        @router.post("/admin-only")
        async def admin_only(user: CurrentUser = Depends(requires_role("admin"))):
            ...
    """
    allowed = {UserRole(r) for r in allowed_roles}

    def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            logger.warning(
                "insufficient_permissions",
                user_id=user.id,
                user_role=user.role.value,
                required_roles=sorted(r.value for r in allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {' or '.join(sorted(allowed_roles))}",
            )
        return user

    return role_checker
