from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import license_item, user_item
from identity_lifecycle.auth.dependencies import get_caller
from identity_lifecycle.auth.models import Caller
from identity_lifecycle.main import create_app, wire_services
from identity_lifecycle.services.reconciliation_scheduler import ReconciliationScheduler

ADMIN = Caller(sub="s-admin", email="root@acme.io", role="super_admin")
ANALYST = Caller(sub="s-ana", email="ana@acme.io", role="analyst")


@pytest.fixture
def app(store, idp, notifier, events, settings):
    application = create_app()
    wire_services(
        application,
        settings=settings,
        store=store,
        identity_provider=idp,
        notifier=notifier,
        events=events,
    )
    application.dependency_overrides[get_caller] = lambda: ADMIN
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _body(**overrides) -> dict:
    body = {
        "accountId": "t1",
        "firstName": "Ana",
        "lastName": "Lopez",
        "email": "ana@acme.io",
        "assignedRole": "analyst",
        "workstreamIds": ["w1"],
    }
    body.update(overrides)
    return body


async def test_health(client) -> None:
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["data"]["ok"] is True


async def test_health_reports_scheduler_loop(app, client) -> None:
    scheduler = ReconciliationScheduler(app.state.reconciliation_engine, interval_seconds=3600)
    app.state.reconciliation_scheduler = scheduler

    scheduler.start()
    alive = await client.get("/health")
    await scheduler.stop()
    stopped = await client.get("/health")

    assert alive.json()["data"]["reconciliationScheduler"] is True
    assert stopped.json()["data"]["reconciliationScheduler"] is False


async def test_create_user_returns_capacity_snapshot(client, store) -> None:
    store.put(license_item("t1", "l1", 2, "2099-12-31"))

    resp = await client.post("/users", json=_body())

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["email"] == "ana@acme.io"
    assert data["licenseCapacity"] == {
        "totalAllowed": 2,
        "currentActiveUsers": 1,
        "remaining": 1,
        "licenses": data["licenseCapacity"]["licenses"],
    }
    assert data["identityProvider"]["kind"] == "created"

    fetched = await client.get(f"/users/{data['user']['id']}")
    assert fetched.json()["data"]["workstreams"] == ["w1"]


async def test_create_user_over_capacity_is_forbidden(client, store) -> None:
    store.put(license_item("t1", "l1", 1, "2099-12-31"))
    store.put(user_item("u1", "t1", "u1@acme.io"))

    resp = await client.post("/users", json=_body())

    assert resp.status_code == 403
    payload = resp.json()
    assert payload["status"] == "failure"
    assert payload["code"] == "LICENSE_LIMIT_EXCEEDED"
    assert payload["capacity"]["remaining"] == 0


async def test_invalid_body_is_rejected(client) -> None:
    resp = await client.post("/users", json=_body(email="not-an-email"))

    assert resp.status_code == 422


async def test_update_with_null_required_field_is_rejected(client, store) -> None:
    store.put(user_item("u1", "t1", "u1@acme.io"))

    resp = await client.put("/users/u1", json={"firstName": None})

    assert resp.status_code == 422
    assert (await client.get("/users/u1")).json()["data"]["firstName"] == "Test"


async def test_unknown_user_is_404(client) -> None:
    resp = await client.get("/users/missing")

    assert resp.status_code == 404
    assert resp.json()["status"] == "failure"


async def test_update_and_delete_user(client, store) -> None:
    store.put(user_item("u1", "t1", "u1@acme.io"))

    updated = await client.put("/users/u1", json={"lastName": "Renamed"})
    assert updated.status_code == 200
    assert updated.json()["data"]["user"]["lastName"] == "Renamed"

    deleted = await client.delete("/users/u1")
    assert deleted.status_code == 200
    assert deleted.json()["data"]["deletedItems"] == 1
    assert (await client.get("/users/u1")).status_code == 404


async def test_replace_workstreams(client, store) -> None:
    store.put(user_item("u1", "t1", "u1@acme.io"))

    resp = await client.put("/users/u1/workstreams", json={"workstreamIds": ["a", "b"]})

    assert resp.json()["data"] == ["a", "b"]
    assert (await client.get("/users/u1/workstreams")).json()["data"] == ["a", "b"]


async def test_tenant_listing_and_capacity(client, store) -> None:
    store.put(license_item("t1", "l1", 3, "2099-12-31"))
    store.put(user_item("u1", "t1", "u1@acme.io"))

    users = await client.get("/accounts/t1/users")
    capacity = await client.get("/accounts/t1/license-capacity")

    assert [u["id"] for u in users.json()["data"]] == ["u1"]
    assert capacity.json()["data"]["remaining"] == 2


async def test_reconcile_requires_super_admin(app, client, store) -> None:
    store.put(user_item("u1", "t1", "u1@acme.io"))

    ok = await client.post("/users/reconcile", json={"dryRun": True})
    assert ok.status_code == 200
    assert ok.json()["data"]["skipped"] == 1

    app.dependency_overrides[get_caller] = lambda: ANALYST
    denied = await client.post("/users/reconcile", json={})
    assert denied.status_code == 403


async def test_me_endpoints(app, client, store) -> None:
    app.dependency_overrides[get_caller] = lambda: ANALYST
    store.put(user_item("u1", "t1", "ana@acme.io"))

    access = await client.get("/me/access")
    perms = await client.get("/me/permissions", params={"accountId": "t1"})

    assert access.json()["data"]["isSuperAdmin"] is False
    assert access.json()["data"]["accounts"][0]["accountId"] == "t1"
    assert perms.json()["data"]["technicalUserId"] == "u1"


async def test_missing_token_is_401(store, idp, notifier, events, settings) -> None:
    application = create_app()
    wire_services(
        application,
        settings=settings,
        store=store,
        identity_provider=idp,
        notifier=notifier,
        events=events,
    )
    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as ac:
        resp = await ac.get("/users/u1")

    assert resp.status_code == 401
