"""Shared fixtures: an in-memory item store and recording fakes for the side channels."""

from __future__ import annotations

import copy
from typing import Any, Sequence

import pytest

from identity_lifecycle.configs.settings import Settings
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.provisioning import (
    NotificationResult,
    Outcome,
    OutcomeKind,
    ProviderCreateResult,
    ProviderDeleteResult,
    ProviderProfile,
    ProviderUpdateResult,
)
from identity_lifecycle.errors import NotFoundError, StoreTransactionError
from identity_lifecycle.identity.provider import IdentityProviderAdapter
from identity_lifecycle.repositories.kv_store import (
    BatchOperation,
    Delete,
    Item,
    Key,
    KeyValueStore,
    Put,
    Update,
    WriteOperation,
    chunked,
)


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store with the same contract as the Mongo one.

    `fail_transactions` makes the next transact_write raise; `fail_batch_at`
    fails the batch chunk with that index.
    """

    def __init__(self, max_transact_items: int = 100):
        self.items: dict[tuple[str, str], Item] = {}
        self.max_transact_items = max_transact_items
        self.fail_transactions = False
        self.fail_batch_at: int | None = None
        self.transactions: list[list[WriteOperation]] = []
        self.batches: list[list[BatchOperation]] = []
        self.get_errors: dict[str, Exception] = {}

    def put(self, item: Item) -> None:
        self.items[(item[keys.PK], item[keys.SK])] = copy.deepcopy(item)

    async def get(self, key: Key) -> Item | None:
        if key[keys.PK] in self.get_errors:
            raise self.get_errors[key[keys.PK]]
        item = self.items.get((key[keys.PK], key[keys.SK]))
        return copy.deepcopy(item) if item else None

    async def query(self, partition: str, sort_prefix: str | None = None) -> list[Item]:
        return self._select(keys.PK, keys.SK, partition, sort_prefix)

    async def query_by_index(
        self, index_name: str, partition: str, sort_prefix: str | None = None
    ) -> list[Item]:
        pk_field, sk_field = keys.INDEX_FIELDS[index_name]
        return self._select(pk_field, sk_field, partition, sort_prefix)

    def _select(self, pk_field: str, sk_field: str, partition: str, prefix: str | None) -> list[Item]:
        out = [
            copy.deepcopy(it)
            for it in self.items.values()
            if it.get(pk_field) == partition and str(it.get(sk_field, "")).startswith(prefix or "")
        ]
        return sorted(out, key=lambda it: str(it.get(sk_field, "")))

    async def update(self, key: Key, fields: Item) -> Item:
        current = self.items.get((key[keys.PK], key[keys.SK]))
        if current is None:
            raise NotFoundError(f"item {key[keys.PK]}/{key[keys.SK]} not found")
        current.update(copy.deepcopy(fields))
        return copy.deepcopy(current)

    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        self.transactions.append(list(operations))
        if len(operations) > self.max_transact_items:
            raise StoreTransactionError("transaction too large")
        if self.fail_transactions:
            self.fail_transactions = False
            raise StoreTransactionError("injected transaction failure")
        staged = copy.deepcopy(self.items)
        for op in operations:
            if isinstance(op, Put):
                staged[(op.item[keys.PK], op.item[keys.SK])] = copy.deepcopy(op.item)
            elif isinstance(op, Delete):
                staged.pop((op.key[keys.PK], op.key[keys.SK]), None)
            elif isinstance(op, Update):
                target = staged.get((op.key[keys.PK], op.key[keys.SK]))
                if target is None:
                    raise StoreTransactionError("update target missing")
                target.update(copy.deepcopy(op.fields))
        self.items = staged

    async def batch_write(
        self, operations: Sequence[BatchOperation], max_batch_size: int = 25
    ) -> None:
        for i, chunk in enumerate(chunked(list(operations), max_batch_size)):
            if self.fail_batch_at == i:
                raise RuntimeError(f"injected batch failure at chunk {i}")
            self.batches.append(list(chunk))
            for op in chunk:
                if isinstance(op, Put):
                    self.put(op.item)
                else:
                    self.items.pop((op.key[keys.PK], op.key[keys.SK]), None)


class FakeIdentityProvider(IdentityProviderAdapter):
    """Records calls; `existing` holds emails already present upstream."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.existing: dict[str, str] = {}
        self.fail_emails: set[str] = set()
        self.fail_all = False
        self.created: list[ProviderProfile] = []
        self.updated: list[ProviderProfile] = []
        self.deleted: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def _maybe_fail(self, email: str) -> None:
        if self.fail_all or email in self.fail_emails:
            raise ConnectionError(f"identity provider unreachable for {email}")

    async def create_user(self, profile: ProviderProfile) -> ProviderCreateResult:
        if not self.configured:
            return ProviderCreateResult(skipped=True, reason="identity provider not configured")
        self._maybe_fail(profile.email)
        self.created.append(profile)
        if profile.email in self.existing:
            return ProviderCreateResult(updated=True, cognito_sub=self.existing[profile.email])
        sub = f"sub-{profile.email}"
        self.existing[profile.email] = sub
        return ProviderCreateResult(created=True, cognito_sub=sub, temporary_password="Tmp#Pass123")

    async def update_user(self, profile: ProviderProfile) -> ProviderUpdateResult:
        self._maybe_fail(profile.email)
        self.updated.append(profile)
        if profile.email not in self.existing:
            return ProviderUpdateResult(skipped=True, reason="user not found in identity provider")
        return ProviderUpdateResult(updated=True, cognito_sub=self.existing[profile.email])

    async def delete_user(self, email: str) -> ProviderDeleteResult:
        self._maybe_fail(email)
        self.deleted.append(email)
        if self.existing.pop(email, None) is None:
            return ProviderDeleteResult(skipped=True, reason="user not found in identity provider")
        return ProviderDeleteResult(deleted=True)


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def is_configured(self) -> bool:
        return True

    async def send_credential_provisioned_email(self, recipient, temporary_password, display_context=None):
        if self.fail:
            raise ConnectionError("notification service down")
        self.sent.append((recipient.email, temporary_password))
        return NotificationResult(sent=True, message_id="m-1", audit_id="a-1")


class FakeEvents:
    def __init__(self):
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, event: str, **fields: Any) -> Outcome:
        self.published.append((event, fields))
        return Outcome.of(OutcomeKind.PUBLISHED)


def license_item(tenant_id: str, license_id: str, seats: int, end_date: str) -> Item:
    return {
        keys.PK: keys.account_pk(tenant_id),
        keys.SK: f"{keys.LICENSE_PREFIX}{license_id}",
        "id": license_id,
        "numberOfUsers": seats,
        "endDate": end_date,
    }


def user_item(
    user_id: str,
    tenant_id: str,
    email: str,
    *,
    status: str = "active",
    cognito_sub: str | None = None,
    created_at: str = "2024-01-01T00:00:00.000Z",
    assigned_role: str | None = None,
    enterprise_id: str | None = None,
) -> Item:
    pk = keys.user_pk(user_id)
    return {
        keys.PK: pk,
        keys.SK: keys.METADATA,
        "GSI1PK": keys.ENTITY_USER,
        "GSI1SK": pk,
        "GSI2PK": keys.account_users_pk(tenant_id),
        "GSI2SK": pk,
        "id": user_id,
        "accountId": tenant_id,
        "enterpriseId": enterprise_id,
        "firstName": "Test",
        "lastName": user_id,
        "email": email,
        "assignedRole": assigned_role,
        "status": status,
        "cognitoSub": cognito_sub,
        "createdAt": created_at,
        "updatedAt": created_at,
    }


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def idp() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def events() -> FakeEvents:
    return FakeEvents()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, cognito_user_pool_id="pool-1")
