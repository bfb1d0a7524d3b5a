# auth.py

"""Bearer token decoding and capability checks for FastAPI routes.

Tokens are issued by the outlet's staff login service; this module only
verifies them. Each role maps to a fixed set of capabilities and routes
declare the single capability they need with :func:`require`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from config import get_settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 12 * 60

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    ADMIN = "admin"
    KASIR = "kasir"
    KITCHEN = "kitchen"


class Capability(str, Enum):
    ORDERS_CREATE = "orders:create"
    ORDERS_VIEW = "orders:view"
    ORDERS_UPDATE_STATUS = "orders:update_status"
    PAYMENTS_COLLECT = "payments:collect"
    SHIFTS_OPERATE = "shifts:operate"
    REFUNDS_REQUEST = "refunds:request"
    REFUNDS_AUTHORIZE = "refunds:authorize"
    DELETIONS_REQUEST = "deletions:request"
    DELETIONS_AUTHORIZE = "deletions:authorize"
    INVENTORY_VIEW = "inventory:view"
    INVENTORY_MANAGE = "inventory:manage"
    REPORTS_VIEW = "reports:view"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.KASIR: frozenset(
        {
            Capability.ORDERS_CREATE,
            Capability.ORDERS_VIEW,
            Capability.ORDERS_UPDATE_STATUS,
            Capability.PAYMENTS_COLLECT,
            Capability.SHIFTS_OPERATE,
            Capability.REFUNDS_REQUEST,
            Capability.DELETIONS_REQUEST,
            Capability.INVENTORY_VIEW,
        }
    ),
    Role.KITCHEN: frozenset(
        {
            Capability.ORDERS_VIEW,
            Capability.ORDERS_UPDATE_STATUS,
            Capability.INVENTORY_VIEW,
        }
    ),
}


class User(BaseModel):
    """Authenticated staff member."""

    id: str
    username: str
    role: Role

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES[self.role]


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT containing the provided claims."""

    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    """Decode the bearer token and return the :class:`User`."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    settings = get_settings()
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        user_id = payload.get("sub")
        role = Role(payload.get("role"))
    except (jwt.PyJWTError, ValueError) as exc:
        logger.info("rejected token: %s", exc)
        raise credentials_exception from exc
    if not user_id:
        raise credentials_exception
    return User(id=str(user_id), username=payload.get("username", user_id), role=role)


def require(capability: Capability):
    """Return a dependency that enforces ``capability`` for the current user."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if not user.can(capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"missing capability {capability.value}",
            )
        return user

    return checker


__all__ = [
    "Capability",
    "ROLE_CAPABILITIES",
    "Role",
    "User",
    "create_access_token",
    "get_current_user",
    "require",
]
