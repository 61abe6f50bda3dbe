from __future__ import annotations

import pytest
from pydantic import ValidationError

from conftest import license_item, user_item
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.principal import CreateUserRequest, UpdateUserRequest
from identity_lifecycle.domain.entities.provisioning import OutcomeKind
from identity_lifecycle.errors import CapacityExceededError, NotFoundError, StoreTransactionError
from identity_lifecycle.repositories.principal_repository import workstream_item
from identity_lifecycle.services import lifecycle_events
from identity_lifecycle.services.capacity_gate import LicenseCapacityGate
from identity_lifecycle.services.user_lifecycle import UserLifecycleOrchestrator


@pytest.fixture
def orchestrator(store, idp, notifier, events) -> UserLifecycleOrchestrator:
    store.put(license_item("t1", "l1", 5, "2099-12-31"))
    return UserLifecycleOrchestrator(
        store=store,
        capacity_gate=LicenseCapacityGate(store),
        identity_provider=idp,
        notifier=notifier,
        events=events,
    )


def _request(**overrides) -> CreateUserRequest:
    data = {
        "account_id": "t1",
        "account_name": "Acme",
        "first_name": "Ana",
        "last_name": "Lopez",
        "email": " ana@acme.io ",
        "assigned_role": "analyst",
        "workstream_ids": ["w1", "w2", "w1"],
    }
    data.update(overrides)
    return CreateUserRequest(**data)


def _user_items(store) -> list[dict]:
    return [it for (pk, _), it in store.items.items() if pk.startswith(keys.USER_PREFIX)]


async def test_create_persists_principal_and_workstreams_atomically(orchestrator, store, idp, notifier, events):
    result = await orchestrator.create(_request())

    user_id = result.user.id
    assert len(store.transactions) == 1
    stored = await store.get(keys.metadata_key(keys.user_pk(user_id)))
    assert stored["email"] == "ana@acme.io"
    assert stored["status"] == "active"
    assert stored["cognitoSub"] == "sub-ana@acme.io"
    assert stored["GSI2PK"] == "ACCOUNT#t1#USERS"
    assert [it["workstreamId"] for it in await store.query(keys.user_pk(user_id), "WORKSTREAM#")] == ["w1", "w2"]

    assert result.identity_provider.kind is OutcomeKind.CREATED
    assert result.notification.kind is OutcomeKind.SENT
    assert notifier.sent == [("ana@acme.io", "Tmp#Pass123")]
    assert events.published[0][0] == lifecycle_events.USER_CREATED
    assert result.license_capacity.current_active_users == 1
    assert result.license_capacity.remaining == 4


async def test_create_continues_when_identity_provider_fails(orchestrator, store, idp, notifier):
    idp.fail_all = True

    result = await orchestrator.create(_request())

    assert result.identity_provider.kind is OutcomeKind.FAILED
    assert result.user.cognito_sub is None
    assert result.notification.kind is OutcomeKind.SKIPPED
    assert notifier.sent == []
    assert await store.get(keys.metadata_key(keys.user_pk(result.user.id))) is not None


async def test_create_reuses_existing_upstream_principal_without_email(orchestrator, idp, notifier):
    idp.existing["ana@acme.io"] = "sub-existing"

    result = await orchestrator.create(_request())

    assert result.identity_provider.kind is OutcomeKind.UPDATED
    assert result.user.cognito_sub == "sub-existing"
    assert notifier.sent == []


async def test_create_notification_failure_does_not_fail_creation(orchestrator, notifier):
    notifier.fail = True

    result = await orchestrator.create(_request())

    assert result.notification.kind is OutcomeKind.FAILED
    assert result.user.id


async def test_create_transaction_failure_leaves_no_items(orchestrator, store):
    store.fail_transactions = True

    with pytest.raises(StoreTransactionError):
        await orchestrator.create(_request())

    assert _user_items(store) == []


async def test_create_over_capacity_writes_nothing_and_skips_provider(orchestrator, store, idp):
    for i in range(5):
        store.put(user_item(f"u{i}", "t1", f"u{i}@acme.io"))

    with pytest.raises(CapacityExceededError):
        await orchestrator.create(_request())

    assert len(_user_items(store)) == 5
    assert store.transactions == []
    assert idp.created == []


async def test_update_applies_only_present_fields_and_never_cognito_sub(orchestrator, store, idp):
    store.put(user_item("u1", "t1", "u1@acme.io", cognito_sub="sub-keep"))
    idp.existing["u1@acme.io"] = "sub-keep"
    req = UpdateUserRequest.model_validate({"firstName": "Renamed", "cognitoSub": "sub-evil"})

    result = await orchestrator.update("u1", req)

    stored = await store.get(keys.metadata_key(keys.user_pk("u1")))
    assert stored["firstName"] == "Renamed"
    assert stored["lastName"] == "u1"
    assert stored["cognitoSub"] == "sub-keep"
    assert stored["updatedAt"] != "2024-01-01T00:00:00.000Z"
    assert result.identity_provider.kind is OutcomeKind.UPDATED
    assert idp.updated[0].email == "u1@acme.io"


async def test_update_explicit_null_clears_field(orchestrator, store):
    item = user_item("u1", "t1", "u1@acme.io")
    item["middleName"] = "Q"
    store.put(item)

    await orchestrator.update("u1", UpdateUserRequest.model_validate({"middleName": None}))

    assert (await store.get(keys.metadata_key(keys.user_pk("u1"))))["middleName"] is None


@pytest.mark.parametrize("field", ["firstName", "lastName", "email", "status"])
async def test_update_rejects_null_for_required_fields(orchestrator, store, field):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    before = await store.get(keys.metadata_key(keys.user_pk("u1")))

    with pytest.raises(ValidationError):
        UpdateUserRequest.model_validate({field: None})

    assert await store.get(keys.metadata_key(keys.user_pk("u1"))) == before
    assert (await orchestrator.get("u1")).email == "u1@acme.io"


async def test_update_normalizes_email(orchestrator, store, idp):
    store.put(user_item("u1", "t1", "u1@acme.io"))

    result = await orchestrator.update("u1", UpdateUserRequest.model_validate({"email": "  new@acme.io "}))

    assert result.user.email == "new@acme.io"
    assert (await store.get(keys.metadata_key(keys.user_pk("u1"))))["email"] == "new@acme.io"


def test_update_rejects_email_without_at_sign():
    with pytest.raises(ValidationError):
        UpdateUserRequest.model_validate({"email": "not-an-address"})


async def test_update_missing_principal(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.update("nope", UpdateUserRequest(first_name="x"))


async def test_update_provider_failure_is_reported_not_raised(orchestrator, store, idp):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    idp.fail_all = True

    result = await orchestrator.update("u1", UpdateUserRequest(status="inactive"))

    assert result.user.status == "inactive"
    assert result.identity_provider.kind is OutcomeKind.FAILED


async def test_delete_removes_partition_with_metadata_last(orchestrator, store, idp, events):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    for i in range(30):
        store.put(workstream_item("u1", f"w{i:02d}", "2024-01-01T00:00:00.000Z"))
    idp.existing["u1@acme.io"] = "sub-1"

    result = await orchestrator.delete("u1")

    assert result.deleted_items == 31
    assert result.identity_provider.kind is OutcomeKind.DELETED
    assert [len(b) for b in store.batches] == [25, 6]
    assert store.batches[-1][-1].key[keys.SK] == keys.METADATA
    assert _user_items(store) == []
    assert events.published[-1][0] == lifecycle_events.USER_DELETED


async def test_delete_partial_failure_can_be_rerun(orchestrator, store):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    for i in range(30):
        store.put(workstream_item("u1", f"w{i:02d}", "2024-01-01T00:00:00.000Z"))
    store.fail_batch_at = 1

    with pytest.raises(RuntimeError):
        await orchestrator.delete("u1")

    assert await store.get(keys.metadata_key(keys.user_pk("u1"))) is not None
    store.fail_batch_at = None
    result = await orchestrator.delete("u1")
    assert result.deleted_items == 6
    assert _user_items(store) == []


async def test_delete_missing_principal(orchestrator):
    with pytest.raises(NotFoundError):
        await orchestrator.delete("nope")


async def test_replace_workstreams_in_one_transaction(orchestrator, store):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    store.put(workstream_item("u1", "a", "2024-01-01T00:00:00.000Z"))
    store.put(workstream_item("u1", "b", "2024-01-01T00:00:00.000Z"))

    result = await orchestrator.replace_workstreams("u1", ["b", "c", "c"])

    assert result == ["b", "c"]
    assert len(store.transactions) == 1
    assert sorted(await orchestrator.get_workstreams("u1")) == ["b", "c"]


async def test_get_includes_workstreams(orchestrator, store):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    store.put(workstream_item("u1", "w1", "2024-01-01T00:00:00.000Z"))

    user = await orchestrator.get("u1")

    assert user.workstreams == ["w1"]
    with pytest.raises(NotFoundError):
        await orchestrator.get("missing")


async def test_list_by_tenant_scopes_to_tenant(orchestrator, store):
    store.put(user_item("u1", "t1", "u1@acme.io"))
    store.put(user_item("u2", "t2", "u2@acme.io"))

    assert [p.id for p in await orchestrator.list_by_tenant("t1")] == ["u1"]
    assert sorted(p.id for p in await orchestrator.list_all()) == ["u1", "u2"]
