from fastapi import APIRouter, Depends, Request

from identity_lifecycle.auth.dependencies import get_caller
from identity_lifecycle.auth.models import Caller
from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain.entities.principal import (
    CreateUserRequest,
    ReplaceWorkstreamsRequest,
    UpdateUserRequest,
)
from identity_lifecycle.domain.entities.reconciliation import ReconcileRequest
from identity_lifecycle.errors import ForbiddenError
from identity_lifecycle.services.access_resolver import AccessResolver
from identity_lifecycle.services.capacity_gate import LicenseCapacityGate
from identity_lifecycle.services.reconciliation import ReconciliationEngine
from identity_lifecycle.services.user_lifecycle import UserLifecycleOrchestrator
from identity_lifecycle.utils.response import success

log = get_logger(__name__)

router = APIRouter(tags=["users"])


def _users(request: Request) -> UserLifecycleOrchestrator:
    return request.app.state.user_lifecycle


@router.post("/users")
async def create_user(
    request: Request,
    body: CreateUserRequest,
    caller: Caller = Depends(get_caller),
) -> dict:
    log.info("user.create.start caller=%s tenant_id=%s", caller.email, body.account_id)
    data = await _users(request).create(body)
    log.info(
        "user.create.done caller=%s user_id=%s idp=%s",
        caller.email,
        data.user.id,
        data.identity_provider.kind.value,
    )
    return success(data, message="User created successfully")


# Registered before /users/{user_id} so "reconcile" is not taken as an id.
@router.post("/users/reconcile")
async def reconcile_users(
    request: Request,
    body: ReconcileRequest,
    caller: Caller = Depends(get_caller),
) -> dict:
    access: AccessResolver = request.app.state.access_resolver
    if not access.is_super_admin(caller):
        log.warning("user.reconcile.forbidden caller=%s", caller.email)
        raise ForbiddenError("only super admins can trigger reconciliation")

    engine: ReconciliationEngine = request.app.state.reconciliation_engine
    data = await engine.reconcile(
        tenant_id=body.account_id,
        dry_run=body.dry_run,
        include_inactive=body.include_inactive,
    )
    return success(data, message="Reconciliation complete")


@router.get("/users/{user_id}")
async def get_user(request: Request, user_id: str, caller: Caller = Depends(get_caller)) -> dict:
    return success(await _users(request).get(user_id))


@router.get("/accounts/{tenant_id}/users")
async def list_tenant_users(
    request: Request, tenant_id: str, caller: Caller = Depends(get_caller)
) -> dict:
    return success(await _users(request).list_by_tenant(tenant_id))


@router.put("/users/{user_id}")
async def update_user(
    request: Request,
    user_id: str,
    body: UpdateUserRequest,
    caller: Caller = Depends(get_caller),
) -> dict:
    log.info("user.update.start caller=%s user_id=%s", caller.email, user_id)
    data = await _users(request).update(user_id, body)
    return success(data, message="User updated successfully")


@router.delete("/users/{user_id}")
async def delete_user(request: Request, user_id: str, caller: Caller = Depends(get_caller)) -> dict:
    log.info("user.delete.start caller=%s user_id=%s", caller.email, user_id)
    data = await _users(request).delete(user_id)
    return success(data, message="User deleted successfully")


@router.get("/users/{user_id}/workstreams")
async def get_workstreams(
    request: Request, user_id: str, caller: Caller = Depends(get_caller)
) -> dict:
    return success(await _users(request).get_workstreams(user_id))


@router.put("/users/{user_id}/workstreams")
async def replace_workstreams(
    request: Request,
    user_id: str,
    body: ReplaceWorkstreamsRequest,
    caller: Caller = Depends(get_caller),
) -> dict:
    data = await _users(request).replace_workstreams(user_id, body.workstream_ids)
    return success(data, message="Workstreams updated successfully")


@router.get("/accounts/{tenant_id}/license-capacity")
async def license_capacity(
    request: Request, tenant_id: str, caller: Caller = Depends(get_caller)
) -> dict:
    gate: LicenseCapacityGate = request.app.state.capacity_gate
    return success(await gate.get_capacity(tenant_id))
