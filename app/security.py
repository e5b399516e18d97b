# app/security.py
"""Security dependencies for API key validation and scope enforcement."""
from __future__ import annotations

from typing import Callable, Set

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey, ApiScope
from app.models.user import User
from app.utils.apikey import find_valid_key
from app.utils.errors import AuthorizationError, ForbiddenError
from app.utils.time import utcnow


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_api_key(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> ApiKey:
    """Validate API key tokens and return the corresponding row."""
    if not token:
        raise AuthorizationError("API key required.", code="NO_API_KEY")

    key = find_valid_key(db, token)
    if key is None:
        raise AuthorizationError("Invalid or expired API key", code="UNAUTHORIZED")

    key.last_used_at = utcnow()
    db.commit()
    return key


def require_scope(allowed: Set[ApiScope]) -> Callable:
    """Enforce that the key carries one of the allowed scopes (admin always passes)."""

    if not allowed:
        raise RuntimeError("require_scope needs a non-empty set of ApiScope")

    def _dep(key: ApiKey = Depends(require_api_key)) -> ApiKey:
        if key.scope == ApiScope.admin or key.scope in allowed:
            return key
        raise ForbiddenError(
            "Admin access required" if allowed == {ApiScope.admin} else "Insufficient scope",
            code="INSUFFICIENT_SCOPE",
            details={"required": sorted(scope.value for scope in allowed)},
        )

    return _dep


def require_current_user(
    api_key: ApiKey = Depends(require_api_key),
    db: Session = Depends(get_db),
) -> User:
    """Return the active user owning the API key."""

    user = db.get(User, api_key.user_id) if api_key.user_id is not None else None
    if user is None:
        raise ForbiddenError("User not found for API key.", code="USER_NOT_FOUND")
    if not user.is_active:
        raise ForbiddenError("User account is disabled.", code="USER_INACTIVE")
    return user


__all__ = ["require_api_key", "require_scope", "require_current_user"]
