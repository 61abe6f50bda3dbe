from __future__ import annotations

from pydantic import ValidationError

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain import keys
from identity_lifecycle.domain.entities.principal import Principal
from identity_lifecycle.domain.entities.provisioning import ProviderProfile
from identity_lifecycle.domain.entities.reconciliation import (
    ReconciliationDetail,
    ReconciliationSummary,
)
from identity_lifecycle.errors import NotConfiguredError
from identity_lifecycle.identity.provider import IdentityProviderAdapter
from identity_lifecycle.repositories.kv_store import Item, KeyValueStore
from identity_lifecycle.repositories.principal_repository import PrincipalRepository, to_principal
from identity_lifecycle.services import lifecycle_events
from identity_lifecycle.services.lifecycle_events import LifecycleEventPublisher
from identity_lifecycle.services.user_lifecycle import dispatch_credentials
from identity_lifecycle.utils.time_utils import now_iso
from identity_lifecycle.webclient.notification_client import NotificationClient

log = get_logger(__name__)

DRY_RUN_REASON = "dry run"


def _unreadable_detail(item: Item, error: ValidationError) -> ReconciliationDetail:
    user_id = item.get("id") or str(item.get(keys.PK, ""))[len(keys.USER_PREFIX):]
    email = item.get("email")
    return ReconciliationDetail(
        user_id=str(user_id),
        email=email if isinstance(email, str) else "",
        status="failed",
        reason=f"invalid principal record: {error.error_count()} validation error(s)",
    )


class ReconciliationEngine:
    """
    Provisions stored principals that have no identity-provider subject yet.

    Items are processed one at a time. A failure is recorded on that item's
    detail and the run moves on. Re-running is safe: provisioned principals
    carry a cognitoSub and drop out of the selection.
    """

    def __init__(
        self,
        store: KeyValueStore,
        identity_provider: IdentityProviderAdapter,
        notifier: NotificationClient,
        events: LifecycleEventPublisher,
    ):
        self._principals = PrincipalRepository(store)
        self._idp = identity_provider
        self._notifier = notifier
        self._events = events

    async def reconcile(
        self,
        tenant_id: str | None = None,
        dry_run: bool = False,
        include_inactive: bool = False,
    ) -> ReconciliationSummary:
        if not self._idp.is_configured():
            raise NotConfiguredError("Identity provider is not configured. Cannot reconcile.")

        log.info(
            "reconcile.start dry_run=%s tenant_id=%s include_inactive=%s",
            dry_run,
            tenant_id or "ALL",
            include_inactive,
        )
        if tenant_id:
            items = await self._principals.tenant_items(tenant_id)
        else:
            items = await self._principals.all_items()

        targets: list[Principal] = []
        unreadable: list[ReconciliationDetail] = []
        for item in items:
            if item.get("cognitoSub"):
                continue
            try:
                principal = to_principal(item)
            except ValidationError as e:
                # Status can't be trusted on a malformed item, so it is always reported.
                log.warning("reconcile.invalid_item pk=%s errors=%s", item.get(keys.PK), e.error_count())
                unreadable.append(_unreadable_detail(item, e))
                continue
            if include_inactive or principal.status == "active":
                targets.append(principal)
        log.info(
            "reconcile.scan total=%s missing_external_id=%s invalid=%s",
            len(items),
            len(targets),
            len(unreadable),
        )

        summary = ReconciliationSummary(
            total_scanned=len(items),
            missing_external_id=len(targets) + len(unreadable),
            dry_run=dry_run,
        )
        for detail in unreadable:
            summary.record(detail)
        for principal in targets:
            if dry_run:
                summary.record(
                    ReconciliationDetail(
                        user_id=principal.id,
                        email=principal.email,
                        status="skipped",
                        reason=DRY_RUN_REASON,
                    )
                )
                continue
            summary.record(await self._reconcile_one(principal))

        log.info(
            "reconcile.done scanned=%s missing=%s provisioned=%s updated=%s skipped=%s failed=%s",
            summary.total_scanned,
            summary.missing_external_id,
            summary.provisioned,
            summary.updated,
            summary.skipped,
            summary.failed,
        )
        for d in summary.details:
            if d.status == "failed":
                log.error("reconcile.item_failed user_id=%s email=%s reason=%s", d.user_id, d.email, d.reason)

        await self._events.publish(
            lifecycle_events.RECONCILIATION_COMPLETED,
            tenant_id=tenant_id,
            dry_run=dry_run,
            provisioned=summary.provisioned,
            updated=summary.updated,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return summary

    async def _reconcile_one(self, principal: Principal) -> ReconciliationDetail:
        try:
            result = await self._idp.create_user(
                ProviderProfile(
                    email=principal.email,
                    first_name=principal.first_name,
                    last_name=principal.last_name,
                    account_id=principal.account_id,
                    enterprise_id=principal.enterprise_id,
                    role=principal.assigned_role,
                    group_name=principal.assigned_group,
                )
            )
            if result.skipped:
                return ReconciliationDetail(
                    user_id=principal.id,
                    email=principal.email,
                    status="skipped",
                    reason=result.reason,
                )

            if result.cognito_sub:
                await self._principals.set_cognito_sub(principal.id, result.cognito_sub, now_iso())
        except Exception as e:
            log.warning("reconcile.item_error user_id=%s error=%s", principal.id, str(e))
            return ReconciliationDetail(
                user_id=principal.id,
                email=principal.email,
                status="failed",
                reason=str(e),
            )

        if result.created:
            log.info("reconcile.provisioned email=%s sub=%s", principal.email, result.cognito_sub)
            if result.temporary_password:
                await dispatch_credentials(
                    self._notifier,
                    principal,
                    result.temporary_password,
                    {"accountId": principal.account_id, "userId": principal.id},
                )
        else:
            log.info("reconcile.updated email=%s sub=%s", principal.email, result.cognito_sub)

        return ReconciliationDetail(
            user_id=principal.id,
            email=principal.email,
            status="provisioned" if result.created else "updated",
            cognito_sub=result.cognito_sub,
        )
