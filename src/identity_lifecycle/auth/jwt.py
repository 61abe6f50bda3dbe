from __future__ import annotations

from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from identity_lifecycle.configs.settings import Settings
from identity_lifecycle.errors import AuthError
from identity_lifecycle.configs.logging_config import get_logger

log = get_logger(__name__)

# Cognito marks its tokens with token_use; plain tokens carry no such claim.
ACCEPTED_TOKEN_USES = frozenset({"id", "access"})


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    """
    Verify a bearer JWT with the shared secret and return its claims.

    The audience is only checked when one is configured.
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_alg],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except ExpiredSignatureError as e:
        log.info("auth.jwt expired")
        raise AuthError("token expired") from e
    except JWTError as e:
        log.info("auth.jwt invalid error=%s", str(e))
        raise AuthError("invalid token") from e

    token_use = claims.get("token_use")
    if token_use is not None and token_use not in ACCEPTED_TOKEN_USES:
        log.info("auth.jwt rejected token_use=%s", token_use)
        raise AuthError("invalid token")

    log.debug("auth.jwt ok sub=%s email=%s", claims.get("sub"), claims.get("email"))
    return claims
