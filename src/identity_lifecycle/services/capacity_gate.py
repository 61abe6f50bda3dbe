"""
License capacity for a tenant.

    total_allowed        = sum(numberOfUsers) over licenses with endDate >= today
    current_active_users = principals under ACCOUNT#<id>#USERS with status "active"
    remaining            = max(0, total_allowed - current_active_users)

Validation is check-then-act. The caller writes the new principal afterwards,
so two concurrent creations at the boundary can both pass.
"""

from __future__ import annotations

import asyncio
from typing import Any

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.capacity import Capacity, LicenseSummary
from identity_lifecycle.errors import CapacityExceededError
from identity_lifecycle.repositories.kv_store import KeyValueStore
from identity_lifecycle.utils.time_utils import today_iso

log = get_logger(__name__)

LICENSE_NOT_FOUND = "LICENSE_NOT_FOUND"
LICENSE_LIMIT_EXCEEDED = "LICENSE_LIMIT_EXCEEDED"


class LicenseCapacityGate:
    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get_capacity(self, tenant_id: str) -> Capacity:
        licenses, active_users = await asyncio.gather(
            self._active_licenses(tenant_id),
            self._active_user_count(tenant_id),
        )
        total = sum(int(lic.get("numberOfUsers") or 0) for lic in licenses)
        return Capacity(
            total_allowed=total,
            current_active_users=active_users,
            remaining=max(0, total - active_users),
            licenses=[
                LicenseSummary(
                    license_id=lic.get("id") or lic[keys.SK][len(keys.LICENSE_PREFIX):],
                    enterprise_id=lic.get("enterpriseId"),
                    product_id=lic.get("productId"),
                    number_of_users=int(lic.get("numberOfUsers") or 0),
                    end_date=lic.get("endDate"),
                )
                for lic in licenses
            ],
        )

    async def validate_user_creation(self, tenant_id: str, requested: int = 1) -> Capacity:
        capacity = await self.get_capacity(tenant_id)

        if capacity.total_allowed == 0:
            log.warning("capacity.blocked tenant_id=%s reason=no_active_license", tenant_id)
            raise CapacityExceededError(
                "No active licenses found for this account",
                code=LICENSE_NOT_FOUND,
                capacity=capacity,
            )

        if capacity.remaining < requested:
            log.warning(
                "capacity.blocked tenant_id=%s active=%s allowed=%s requested=%s",
                tenant_id,
                capacity.current_active_users,
                capacity.total_allowed,
                requested,
            )
            raise CapacityExceededError(
                "License user limit exceeded. "
                f"Active users: {capacity.current_active_users}, "
                f"Licensed capacity: {capacity.total_allowed}, "
                f"Requested: {requested}",
                code=LICENSE_LIMIT_EXCEEDED,
                capacity=capacity,
            )

        log.debug(
            "capacity.ok tenant_id=%s active=%s allowed=%s remaining=%s",
            tenant_id,
            capacity.current_active_users,
            capacity.total_allowed,
            capacity.remaining,
        )
        return capacity

    async def _active_licenses(self, tenant_id: str) -> list[dict[str, Any]]:
        today = today_iso()
        items = await self._store.query(keys.account_pk(tenant_id), keys.LICENSE_PREFIX)
        # ISO dates compare correctly as strings.
        return [it for it in items if it.get("endDate") and str(it["endDate"])[:10] >= today]

    async def _active_user_count(self, tenant_id: str) -> int:
        items = await self._store.query_by_index(keys.GSI2, keys.account_users_pk(tenant_id))
        return sum(1 for it in items if it.get("status") == "active")
