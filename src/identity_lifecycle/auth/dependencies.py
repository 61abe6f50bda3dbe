from __future__ import annotations

from typing import Any

from fastapi import Depends, Header

from identity_lifecycle.auth.jwt import decode_token
from identity_lifecycle.auth.models import Caller
from identity_lifecycle.configs.settings import Settings, get_settings
from identity_lifecycle.errors import AuthError
from identity_lifecycle.configs.logging_config import get_logger

log = get_logger(__name__)


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthError("missing authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError("invalid authorization header")
    return token


def caller_from_claims(claims: dict[str, Any]) -> Caller:
    """Cognito-style claims first, plain names as fallback."""
    sub = claims.get("sub")
    email = claims.get("email")
    if not sub or not email:
        log.info("auth.token_missing_claims has_sub=%s has_email=%s", bool(sub), bool(email))
        raise AuthError("token missing required claims")

    role = claims.get("custom:role") or claims.get("role")
    groups = claims.get("cognito:groups") or claims.get("groups") or []
    if isinstance(groups, str):
        groups = [groups]
    if not isinstance(groups, list):
        log.info("auth.invalid_groups_claim type=%s", type(groups).__name__)
        raise AuthError("invalid groups claim")

    return Caller(
        sub=str(sub),
        email=str(email),
        role=str(role) if role else None,
        groups=tuple(str(g) for g in groups),
    )


async def get_caller(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> Caller:
    claims = decode_token(_bearer_token(authorization), settings)
    caller = caller_from_claims(claims)
    log.info("auth.caller sub=%s email=%s role=%s", caller.sub, caller.email, caller.role)
    return caller
