from __future__ import annotations

import uuid
from typing import Any

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.principal import (
    CreateUserRequest,
    DeleteUserResult,
    Principal,
    PrincipalWithWorkstreams,
    UpdateUserRequest,
    UpdateUserResult,
    CreateUserResult,
)
from identity_lifecycle.domain.entities.provisioning import (
    CredentialRecipient,
    Outcome,
    OutcomeKind,
    ProviderCreateResult,
    ProviderProfile,
)
from identity_lifecycle.errors import NotFoundError
from identity_lifecycle.identity.provider import IdentityProviderAdapter
from identity_lifecycle.repositories.kv_store import Delete, KeyValueStore, Put
from identity_lifecycle.repositories.principal_repository import (
    PrincipalRepository,
    principal_item,
    workstream_item,
)
from identity_lifecycle.services import lifecycle_events
from identity_lifecycle.services.capacity_gate import LicenseCapacityGate
from identity_lifecycle.services.lifecycle_events import LifecycleEventPublisher
from identity_lifecycle.utils.time_utils import now_iso
from identity_lifecycle.webclient.notification_client import NotificationClient

log = get_logger(__name__)


async def dispatch_credentials(
    notifier: NotificationClient,
    principal: Principal,
    temporary_password: str,
    context: dict[str, Any],
) -> Outcome:
    """Best-effort credential email. Failures become an Outcome, never an exception."""
    try:
        result = await notifier.send_credential_provisioned_email(
            CredentialRecipient(
                email=principal.email,
                first_name=principal.first_name,
                last_name=principal.last_name,
            ),
            temporary_password,
            context,
        )
    except Exception as e:
        log.warning("notify.credential failed email=%s error=%s", principal.email, str(e))
        return Outcome.failed(str(e))
    outcome = result.outcome()
    if outcome.kind is OutcomeKind.FAILED:
        log.warning("notify.credential failed email=%s reason=%s", principal.email, outcome.reason)
    return outcome


class UserLifecycleOrchestrator:
    """
    Creates, updates and deletes technical users.

    The stored principal is authoritative. Identity-provider calls, credential
    emails and lifecycle events are side channels: their failures are logged
    and returned as Outcomes, and never fail the operation.
    """

    def __init__(
        self,
        store: KeyValueStore,
        capacity_gate: LicenseCapacityGate,
        identity_provider: IdentityProviderAdapter,
        notifier: NotificationClient,
        events: LifecycleEventPublisher,
        batch_size: int = 25,
    ):
        self._store = store
        self._gate = capacity_gate
        self._idp = identity_provider
        self._notifier = notifier
        self._events = events
        self._principals = PrincipalRepository(store)
        self._batch_size = batch_size

    # ----------------------------
    # Reads
    # ----------------------------

    async def get(self, user_id: str) -> PrincipalWithWorkstreams:
        principal = await self._principals.get(user_id)
        if principal is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        workstreams = await self._principals.workstream_ids(user_id)
        return PrincipalWithWorkstreams(**principal.model_dump(), workstreams=workstreams)

    async def list_by_tenant(self, tenant_id: str) -> list[Principal]:
        return await self._principals.list_by_tenant(tenant_id)

    async def list_all(self) -> list[Principal]:
        return await self._principals.list_all()

    # ----------------------------
    # Create
    # ----------------------------

    async def create(self, req: CreateUserRequest) -> CreateUserResult:
        log.info("svc.user.create start tenant_id=%s email=%s", req.account_id, req.email)

        # 1. capacity, before anything is written anywhere
        capacity = await self._gate.validate_user_creation(req.account_id)
        log.info(
            "svc.user.create capacity_ok tenant_id=%s active=%s allowed=%s",
            req.account_id,
            capacity.current_active_users,
            capacity.total_allowed,
        )

        user_id = str(uuid.uuid4())
        now = now_iso()

        # 2. identity provider, best-effort
        idp_result, idp_outcome = await self._provision(req)

        principal = Principal(
            id=user_id,
            account_id=req.account_id,
            enterprise_id=req.enterprise_id,
            first_name=req.first_name,
            last_name=req.last_name,
            middle_name=req.middle_name,
            email=req.email,
            assigned_role=req.assigned_role,
            assigned_group=req.assigned_group,
            start_date=req.start_date,
            end_date=req.end_date,
            status="active",
            is_technical_user=req.is_technical_user,
            cognito_sub=idp_result.cognito_sub if idp_result else None,
            created_at=now,
            updated_at=now,
        )

        notification = Outcome.skipped("no temporary credential issued")
        if idp_result and idp_result.created and idp_result.temporary_password:
            notification = await dispatch_credentials(
                self._notifier,
                principal,
                idp_result.temporary_password,
                {"accountId": req.account_id, "accountName": req.account_name, "userId": user_id},
            )

        # 3. authoritative, atomic persist
        operations = [Put(principal_item(principal))]
        operations.extend(Put(workstream_item(user_id, ws, now)) for ws in req.workstream_ids)
        await self._store.transact_write(operations)
        log.info(
            "svc.user.create persisted user_id=%s tenant_id=%s workstreams=%s",
            user_id,
            req.account_id,
            len(req.workstream_ids),
        )

        event = await self._events.publish(
            lifecycle_events.USER_CREATED,
            user_id=user_id,
            tenant_id=req.account_id,
            email=req.email,
        )

        # 4. snapshot computed locally, not re-queried
        return CreateUserResult(
            user=principal,
            license_capacity=capacity.after_creation(),
            identity_provider=idp_outcome,
            notification=notification,
            event=event,
        )

    async def _provision(
        self, req: CreateUserRequest
    ) -> tuple[ProviderCreateResult | None, Outcome]:
        try:
            result = await self._idp.create_user(
                ProviderProfile(
                    email=req.email,
                    first_name=req.first_name,
                    last_name=req.last_name,
                    account_id=req.account_id,
                    enterprise_id=req.enterprise_id,
                    role=req.assigned_role,
                    group_name=req.assigned_group,
                )
            )
        except Exception as e:
            # Reconciliation provisions the upstream principal later.
            log.error(
                "svc.user.create idp_failed email=%s error=%s; proceeding with stored record",
                req.email,
                str(e),
            )
            return None, Outcome.failed(str(e))

        outcome = result.outcome()
        if result.created:
            log.info("svc.user.create idp_created email=%s sub=%s", req.email, result.cognito_sub)
        elif result.updated:
            log.info("svc.user.create idp_already_existed email=%s", req.email)
        else:
            log.warning("svc.user.create idp_skipped email=%s reason=%s", req.email, result.reason)
        return result, outcome

    # ----------------------------
    # Update
    # ----------------------------

    async def update(self, user_id: str, req: UpdateUserRequest) -> UpdateUserResult:
        log.info("svc.user.update start user_id=%s", user_id)
        existing = await self._principals.get(user_id)
        if existing is None:
            raise NotFoundError(f"User with ID {user_id} not found")

        fields = req.changed_fields()
        fields["updatedAt"] = now_iso()
        updated = await self._principals.apply_update(user_id, fields)
        log.info("svc.user.update applied user_id=%s keys=%s", user_id, sorted(fields.keys()))

        idp_outcome = await self._sync_update(existing.email, req)
        event = await self._events.publish(
            lifecycle_events.USER_UPDATED,
            user_id=user_id,
            tenant_id=updated.account_id,
            fields=",".join(sorted(fields.keys())),
        )
        return UpdateUserResult(user=updated, identity_provider=idp_outcome, event=event)

    async def _sync_update(self, email: str, req: UpdateUserRequest) -> Outcome:
        try:
            result = await self._idp.update_user(
                ProviderProfile(
                    email=email,
                    first_name=req.first_name,
                    last_name=req.last_name,
                    account_id=req.account_id,
                    enterprise_id=req.enterprise_id,
                    role=req.assigned_role,
                    status=req.status,
                )
            )
        except Exception as e:
            log.error("svc.user.update idp_sync_failed email=%s error=%s", email, str(e))
            return Outcome.failed(str(e))
        if result.skipped:
            log.warning("svc.user.update idp_sync_skipped email=%s reason=%s", email, result.reason)
        return result.outcome()

    # ----------------------------
    # Delete
    # ----------------------------

    async def delete(self, user_id: str) -> DeleteUserResult:
        log.info("svc.user.delete start user_id=%s", user_id)
        items = await self._principals.partition_items(user_id)
        if not items:
            raise NotFoundError(f"User with ID {user_id} not found")

        metadata = next((it for it in items if it[keys.SK] == keys.METADATA), None)
        email = metadata.get("email") if metadata else None

        idp_outcome = Outcome.skipped("no email on record")
        if email:
            idp_outcome = await self._deprovision(email)

        # Metadata goes last: if a later chunk fails the principal is still
        # discoverable and delete can simply be re-run.
        ordered = sorted(items, key=lambda it: it[keys.SK] == keys.METADATA)
        await self._store.batch_write(
            [Delete(keys.item_key(it[keys.PK], it[keys.SK])) for it in ordered],
            max_batch_size=self._batch_size,
        )
        log.info("svc.user.delete done user_id=%s items=%s", user_id, len(items))

        event = await self._events.publish(
            lifecycle_events.USER_DELETED,
            user_id=user_id,
            tenant_id=metadata.get("accountId") if metadata else None,
            email=email,
        )
        return DeleteUserResult(
            user_id=user_id,
            deleted_items=len(items),
            identity_provider=idp_outcome,
            event=event,
        )

    async def _deprovision(self, email: str) -> Outcome:
        try:
            result = await self._idp.delete_user(email)
        except Exception as e:
            log.error("svc.user.delete idp_failed email=%s error=%s; proceeding", email, str(e))
            return Outcome.failed(str(e))
        if result.skipped:
            log.warning("svc.user.delete idp_skipped email=%s reason=%s", email, result.reason)
        return result.outcome()

    # ----------------------------
    # Workstreams
    # ----------------------------

    async def get_workstreams(self, user_id: str) -> list[str]:
        return await self._principals.workstream_ids(user_id)

    async def replace_workstreams(self, user_id: str, workstream_ids: list[str]) -> list[str]:
        """Replace the full assignment set in one transaction."""
        if await self._principals.get(user_id) is None:
            raise NotFoundError(f"User with ID {user_id} not found")

        wanted = list(dict.fromkeys(workstream_ids))
        existing = await self._principals.workstream_items(user_id)
        now = now_iso()
        operations: list[Any] = [
            Delete(keys.item_key(it[keys.PK], it[keys.SK]))
            for it in existing
            if it.get("workstreamId") not in wanted
        ]
        operations.extend(Put(workstream_item(user_id, ws, now)) for ws in wanted)
        await self._store.transact_write(operations)
        log.info(
            "svc.user.workstreams replaced user_id=%s removed=%s count=%s",
            user_id,
            len(operations) - len(wanted),
            len(wanted),
        )
        return wanted
