from __future__ import annotations

from pydantic import Field

from identity_lifecycle.domain.entities.base import CamelModel


class AccountAccess(CamelModel):
    account_id: str
    account_name: str
    enterprise_id: str | None = None
    enterprise_name: str | None = None


class AccessResult(CamelModel):
    is_super_admin: bool
    accounts: list[AccountAccess] = Field(default_factory=list)
