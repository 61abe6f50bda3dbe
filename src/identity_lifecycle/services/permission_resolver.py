"""Resolves a caller's menu permissions: principal -> groups -> roles -> permissions."""

from __future__ import annotations

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.permission import MenuPermission, ResolvedPermissions
from identity_lifecycle.domain.entities.principal import Principal
from identity_lifecycle.repositories.kv_store import KeyValueStore
from identity_lifecycle.repositories.principal_repository import PrincipalRepository

log = get_logger(__name__)


def pick_principal(matches: list[Principal], tenant_id: str | None) -> Principal | None:
    """
    Narrow to `tenant_id` when that leaves something, then prefer the most
    recently created record (ties broken by id) so the choice is deterministic.
    """
    if not matches:
        return None
    if tenant_id and len(matches) > 1:
        scoped = [p for p in matches if p.account_id == tenant_id]
        if scoped:
            matches = scoped
    return sorted(matches, key=lambda p: (p.created_at or "", p.id), reverse=True)[0]


def merge_permissions(
    merged: dict[str, MenuPermission], incoming: list[MenuPermission]
) -> dict[str, MenuPermission]:
    """
    Fold `incoming` into `merged` by menu key. Flags only escalate (OR);
    unseen tabs are appended, known tabs have their visibility OR'd.
    """
    for perm in incoming:
        existing = merged.get(perm.menu_key)
        if existing is None:
            merged[perm.menu_key] = perm.model_copy(deep=True)
            continue

        existing.is_visible = existing.is_visible or perm.is_visible
        existing.can_create = existing.can_create or perm.can_create
        existing.can_view = existing.can_view or perm.can_view
        existing.can_edit = existing.can_edit or perm.can_edit
        existing.can_delete = existing.can_delete or perm.can_delete

        tabs = {t.key: t for t in existing.tabs}
        for tab in perm.tabs:
            known = tabs.get(tab.key)
            if known is None:
                copied = tab.model_copy()
                existing.tabs.append(copied)
                tabs[tab.key] = copied
            elif tab.is_visible:
                known.is_visible = True
    return merged


class PermissionResolver:
    def __init__(self, store: KeyValueStore):
        self._store = store
        self._principals = PrincipalRepository(store)

    async def resolve(self, caller_email: str, tenant_id: str | None = None) -> ResolvedPermissions:
        principal = pick_principal(await self._principals.find_active_by_email(caller_email), tenant_id)
        if principal is None:
            log.debug("perm.resolve no_principal email=%s", caller_email)
            return ResolvedPermissions()

        role_ids = await self._role_ids_from_groups(principal.id)
        role_id: str | None = None
        role_name: str | None = None

        if not role_ids and principal.assigned_role:
            role = await self._role_by_name(principal.assigned_role)
            if role:
                role_ids = [role["id"]]
                role_id, role_name = role["id"], role.get("name")
                log.info(
                    "perm.resolve legacy_role_fallback user_id=%s role=%s",
                    principal.id,
                    principal.assigned_role,
                )
        elif role_ids:
            first = await self._store.get(keys.metadata_key(keys.role_pk(role_ids[0])))
            if first:
                role_id, role_name = first.get("id"), first.get("name")

        if not role_ids:
            log.info("perm.resolve no_roles user_id=%s", principal.id)
            return ResolvedPermissions(technical_user_id=principal.id)

        merged: dict[str, MenuPermission] = {}
        for rid in role_ids:
            items = await self._store.query(keys.role_pk(rid), keys.PERMISSION_PREFIX)
            merge_permissions(merged, [MenuPermission.from_item(it) for it in items])

        log.info(
            "perm.resolve done user_id=%s roles=%s menus=%s",
            principal.id,
            len(role_ids),
            len(merged),
        )
        return ResolvedPermissions(
            permissions=list(merged.values()),
            role_id=role_id,
            role_name=role_name,
            technical_user_id=principal.id,
        )

    async def _role_ids_from_groups(self, user_id: str) -> list[str]:
        memberships = await self._store.query(keys.user_pk(user_id), keys.GROUP_PREFIX)
        role_ids: list[str] = []
        for membership in memberships:
            links = await self._store.query(keys.group_pk(membership["groupId"]), keys.ROLE_PREFIX)
            role_ids.extend(link["roleId"] for link in links)
        # dedupe, first seen wins
        return list(dict.fromkeys(role_ids))

    async def _role_by_name(self, name: str) -> dict | None:
        for role in await self._store.query_by_index(keys.GSI1, keys.ENTITY_ROLE):
            if role.get("name") == name:
                return role
        return None
