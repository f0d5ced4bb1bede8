"""Internal token auth for editorial endpoints."""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from apps.api.app.core.config import get_settings


@dataclass(frozen=True)
class InternalCaller:
    authenticated: bool
    token_configured: bool


def token_matches(presented: str | None, expected: str) -> bool:
    if not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_internal_token(
    x_internal_token: str | None = Header(default=None, alias="X-Internal-Token"),
) -> InternalCaller:
    settings = get_settings()
    expected = settings.internal_api_token
    if not expected:
        if settings.runtime_environment == "production":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="internal api token not configured",
            )
        return InternalCaller(authenticated=True, token_configured=False)

    if not token_matches(x_internal_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized",
        )
    return InternalCaller(authenticated=True, token_configured=True)
