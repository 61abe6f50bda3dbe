from __future__ import annotations

from identity_lifecycle.auth.models import Caller
from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.configs.settings import Settings
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.access import AccessResult, AccountAccess
from identity_lifecycle.repositories.kv_store import KeyValueStore
from identity_lifecycle.repositories.principal_repository import PrincipalRepository

log = get_logger(__name__)

UNKNOWN_ACCOUNT = "Unknown"


class AccessResolver:
    """Which tenants a caller may act in."""

    def __init__(self, store: KeyValueStore, settings: Settings):
        self._store = store
        self._principals = PrincipalRepository(store)
        self._super_admin_role = settings.super_admin_role
        self._platform_admin_email = settings.platform_admin_email.lower()

    def is_super_admin(self, caller: Caller) -> bool:
        return (
            caller.role == self._super_admin_role
            or self._super_admin_role in caller.groups
            or (caller.email or "").lower() == self._platform_admin_email
        )

    async def resolve(self, caller: Caller) -> AccessResult:
        if self.is_super_admin(caller):
            accounts = await self._all_accounts()
            log.info("access.resolve super_admin email=%s accounts=%s", caller.email, len(accounts))
            return AccessResult(is_super_admin=True, accounts=accounts)

        accounts: dict[str, AccountAccess] = {}
        for principal in await self._principals.find_active_by_email(caller.email):
            if principal.account_id in accounts:
                continue
            accounts[principal.account_id] = AccountAccess(
                account_id=principal.account_id,
                account_name=await self._name_or(keys.account_pk(principal.account_id), UNKNOWN_ACCOUNT),
                enterprise_id=principal.enterprise_id,
                enterprise_name=(
                    await self._name_or(keys.enterprise_pk(principal.enterprise_id), None)
                    if principal.enterprise_id
                    else None
                ),
            )
        log.info("access.resolve scoped email=%s accounts=%s", caller.email, len(accounts))
        return AccessResult(is_super_admin=False, accounts=list(accounts.values()))

    async def _all_accounts(self) -> list[AccountAccess]:
        out: list[AccountAccess] = []
        for item in await self._store.query_by_index(keys.GSI1, keys.ENTITY_ACCOUNT):
            enterprise_id = item.get("enterpriseId")
            enterprise_name = item.get("enterpriseName")
            if enterprise_id and not enterprise_name:
                enterprise_name = await self._name_or(keys.enterprise_pk(enterprise_id), None)
            out.append(
                AccountAccess(
                    account_id=item["id"],
                    account_name=item.get("name") or UNKNOWN_ACCOUNT,
                    enterprise_id=enterprise_id,
                    enterprise_name=enterprise_name,
                )
            )
        return out

    async def _name_or(self, partition: str, default: str | None) -> str | None:
        # Display names are cosmetic: a failed lookup degrades to the placeholder.
        try:
            item = await self._store.get(keys.metadata_key(partition))
        except Exception as e:
            log.warning("access.lookup_failed pk=%s error=%s", partition, str(e))
            return default
        if not item:
            return default
        return item.get("name") or default
