from __future__ import annotations

import uuid
from typing import Any

from pydantic import ValidationError

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.principal import Principal
from identity_lifecycle.repositories.kv_store import Item, KeyValueStore

log = get_logger(__name__)


def principal_item(principal: Principal) -> Item:
    """Principal metadata item with its by-type and by-tenant index attributes."""
    pk = keys.user_pk(principal.id)
    return {
        keys.PK: pk,
        keys.SK: keys.METADATA,
        "GSI1PK": keys.ENTITY_USER,
        "GSI1SK": pk,
        "GSI2PK": keys.account_users_pk(principal.account_id),
        "GSI2SK": pk,
        **principal.model_dump(by_alias=True),
    }


def workstream_item(user_id: str, workstream_id: str, created_at: str) -> Item:
    return {
        keys.PK: keys.user_pk(user_id),
        keys.SK: keys.workstream_sk(workstream_id),
        "id": str(uuid.uuid4()),
        "userId": user_id,
        "workstreamId": workstream_id,
        "createdAt": created_at,
    }


def to_principal(item: dict[str, Any]) -> Principal:
    return Principal.model_validate(item)


def parse_principals(items: list[Item]) -> list[Principal]:
    """Valid principals only; a malformed item is logged and left out of the listing."""
    out: list[Principal] = []
    for item in items:
        try:
            out.append(to_principal(item))
        except ValidationError as e:
            log.warning(
                "repo.principal.invalid_item pk=%s errors=%s", item.get(keys.PK), e.error_count()
            )
    return out


class PrincipalRepository:
    """Principal reads over the item store. Writes go through the orchestrator's transactions."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get(self, user_id: str) -> Principal | None:
        item = await self._store.get(keys.metadata_key(keys.user_pk(user_id)))
        return to_principal(item) if item else None

    async def all_items(self) -> list[Item]:
        items = await self._store.query_by_index(keys.GSI1, keys.ENTITY_USER)
        log.debug("repo.principal.all_items count=%s", len(items))
        return items

    async def tenant_items(self, tenant_id: str) -> list[Item]:
        items = await self._store.query_by_index(keys.GSI2, keys.account_users_pk(tenant_id))
        log.debug("repo.principal.tenant_items tenant_id=%s count=%s", tenant_id, len(items))
        return items

    async def list_all(self) -> list[Principal]:
        return parse_principals(await self.all_items())

    async def list_by_tenant(self, tenant_id: str) -> list[Principal]:
        return parse_principals(await self.tenant_items(tenant_id))

    async def find_active_by_email(self, email: str) -> list[Principal]:
        wanted = (email or "").strip().lower()
        if not wanted:
            return []
        return [
            p
            for p in await self.list_all()
            if (p.email or "").lower() == wanted and p.status == "active"
        ]

    async def workstream_items(self, user_id: str) -> list[Item]:
        return await self._store.query(keys.user_pk(user_id), keys.WORKSTREAM_PREFIX)

    async def workstream_ids(self, user_id: str) -> list[str]:
        return [it["workstreamId"] for it in await self.workstream_items(user_id)]

    async def partition_items(self, user_id: str) -> list[Item]:
        return await self._store.query(keys.user_pk(user_id))

    async def set_cognito_sub(self, user_id: str, cognito_sub: str, updated_at: str) -> Principal:
        log.info("repo.principal.set_cognito_sub user_id=%s", user_id)
        item = await self._store.update(
            keys.metadata_key(keys.user_pk(user_id)),
            {"cognitoSub": cognito_sub, "updatedAt": updated_at},
        )
        return to_principal(item)

    async def apply_update(self, user_id: str, fields: dict[str, Any]) -> Principal:
        item = await self._store.update(keys.metadata_key(keys.user_pk(user_id)), fields)
        return to_principal(item)
