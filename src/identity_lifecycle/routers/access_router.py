from fastapi import APIRouter, Depends, Query, Request

from identity_lifecycle.auth.dependencies import get_caller
from identity_lifecycle.auth.models import Caller
from identity_lifecycle.services.access_resolver import AccessResolver
from identity_lifecycle.services.permission_resolver import PermissionResolver
from identity_lifecycle.utils.response import success

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/access")
async def my_access(request: Request, caller: Caller = Depends(get_caller)) -> dict:
    resolver: AccessResolver = request.app.state.access_resolver
    return success(await resolver.resolve(caller))


@router.get("/permissions")
async def my_permissions(
    request: Request,
    account_id: str | None = Query(default=None, alias="accountId"),
    caller: Caller = Depends(get_caller),
) -> dict:
    resolver: PermissionResolver = request.app.state.permission_resolver
    return success(await resolver.resolve(caller.email, account_id))
