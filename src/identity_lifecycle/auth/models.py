from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """The authenticated user behind a request, as asserted by the bearer token."""

    sub: str
    email: str
    role: str | None = None
    groups: tuple[str, ...] = ()
