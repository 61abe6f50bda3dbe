from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.configs.settings import Settings
from identity_lifecycle.domain.entities.provisioning import (
    ProviderCreateResult,
    ProviderDeleteResult,
    ProviderProfile,
    ProviderUpdateResult,
)
from identity_lifecycle.errors import ProviderUnavailableError
from identity_lifecycle.identity.passwords import generate_temporary_password
from identity_lifecycle.identity.provider import IdentityProviderAdapter

log = get_logger(__name__)

NOT_CONFIGURED = "identity provider not configured"
NOT_FOUND = "user not found in identity provider"


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _is_not_found(exc: Exception) -> bool:
    return isinstance(exc, ClientError) and _error_code(exc) == "UserNotFoundException"


def _sub_from(attributes: list[dict[str, str]] | None) -> str | None:
    for attr in attributes or []:
        if attr.get("Name") == "sub":
            return attr.get("Value")
    return None


def full_attributes(profile: ProviderProfile) -> list[dict[str, str]]:
    return [
        {"Name": "email", "Value": profile.email},
        {"Name": "email_verified", "Value": "true"},
        {"Name": "given_name", "Value": profile.first_name or ""},
        {"Name": "family_name", "Value": profile.last_name or ""},
        {"Name": "custom:account_id", "Value": profile.account_id or ""},
        {"Name": "custom:enterprise_id", "Value": profile.enterprise_id or ""},
        {"Name": "custom:role", "Value": profile.role or ""},
    ]


def partial_attributes(profile: ProviderProfile) -> list[dict[str, str]]:
    """Only the attributes present on the profile."""
    attrs: list[dict[str, str]] = []
    if profile.first_name:
        attrs.append({"Name": "given_name", "Value": profile.first_name})
    if profile.last_name:
        attrs.append({"Name": "family_name", "Value": profile.last_name})
    if profile.account_id:
        attrs.append({"Name": "custom:account_id", "Value": profile.account_id})
    if profile.enterprise_id is not None:
        attrs.append({"Name": "custom:enterprise_id", "Value": profile.enterprise_id})
    if profile.role:
        attrs.append({"Name": "custom:role", "Value": profile.role})
    return attrs


class CognitoIdentityProvider(IdentityProviderAdapter):
    """
    AWS Cognito user pool adapter.

    Uses boto3 (sync) via asyncio.to_thread. With no user pool configured every
    call reports `skipped`, which keeps local development free of AWS.
    """

    def __init__(self, settings: Settings, client: Any = None):
        self._user_pool_id = settings.cognito_user_pool_id
        self._client = client
        if self._client is None and self._user_pool_id:
            self._client = boto3.client("cognito-idp", region_name=settings.cognito_region)
        if self.is_configured():
            log.info("cognito.init user_pool_id=%s", self._user_pool_id)
        else:
            log.warning("cognito.init disabled reason=%s", NOT_CONFIGURED)

    def is_configured(self) -> bool:
        return bool(self._user_pool_id and self._client is not None)

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        def _invoke() -> dict[str, Any]:
            return getattr(self._client, operation)(UserPoolId=self._user_pool_id, **kwargs)

        try:
            return await asyncio.to_thread(_invoke)
        except ClientError as e:
            if _is_not_found(e):
                raise
            raise ProviderUnavailableError(f"{operation} failed: {_error_code(e) or e}") from e
        except BotoCoreError as e:
            raise ProviderUnavailableError(f"{operation} failed: {e}") from e

    # ----------------------------
    # Create
    # ----------------------------

    async def create_user(self, profile: ProviderProfile) -> ProviderCreateResult:
        if not self.is_configured():
            log.warning("cognito.create skipped email=%s reason=%s", profile.email, NOT_CONFIGURED)
            return ProviderCreateResult(skipped=True, reason=NOT_CONFIGURED)

        attributes = full_attributes(profile)
        try:
            existing = await self._call("admin_get_user", Username=profile.email)
        except ClientError:
            existing = None

        if existing is not None:
            await self._call(
                "admin_update_user_attributes",
                Username=profile.email,
                UserAttributes=attributes,
            )
            sub = _sub_from(existing.get("UserAttributes"))
            log.info("cognito.create already_exists email=%s sub=%s", profile.email, sub)
            await self._ensure_group(profile.email, profile.group_name)
            return ProviderCreateResult(updated=True, cognito_sub=sub)

        password = generate_temporary_password()
        created = await self._call(
            "admin_create_user",
            Username=profile.email,
            UserAttributes=attributes,
            MessageAction="SUPPRESS",
            TemporaryPassword=password,
        )
        sub = _sub_from((created.get("User") or {}).get("Attributes"))
        # Permanent so the first login does not force a password change.
        await self._call(
            "admin_set_user_password",
            Username=profile.email,
            Password=password,
            Permanent=True,
        )
        await self._ensure_group(profile.email, profile.group_name)
        log.info("cognito.create created email=%s sub=%s", profile.email, sub)
        return ProviderCreateResult(created=True, cognito_sub=sub, temporary_password=password)

    # ----------------------------
    # Update
    # ----------------------------

    async def update_user(self, profile: ProviderProfile) -> ProviderUpdateResult:
        if not self.is_configured():
            log.warning("cognito.update skipped email=%s reason=%s", profile.email, NOT_CONFIGURED)
            return ProviderUpdateResult(skipped=True, reason=NOT_CONFIGURED)

        try:
            existing = await self._call("admin_get_user", Username=profile.email)
        except ClientError:
            log.warning("cognito.update not_found email=%s", profile.email)
            return ProviderUpdateResult(skipped=True, reason=NOT_FOUND)

        attributes = partial_attributes(profile)
        if attributes:
            await self._call(
                "admin_update_user_attributes",
                Username=profile.email,
                UserAttributes=attributes,
            )
        if profile.status:
            await self._sync_status(profile.email, profile.status)

        log.info("cognito.update done email=%s attributes=%s", profile.email, len(attributes))
        return ProviderUpdateResult(updated=True, cognito_sub=_sub_from(existing.get("UserAttributes")))

    # ----------------------------
    # Delete
    # ----------------------------

    async def delete_user(self, email: str) -> ProviderDeleteResult:
        if not self.is_configured():
            return ProviderDeleteResult(skipped=True, reason=NOT_CONFIGURED)

        try:
            await self._remove_from_all_groups(email)
            await self._call("admin_delete_user", Username=email)
        except ClientError:
            log.warning("cognito.delete not_found email=%s", email)
            return ProviderDeleteResult(skipped=True, reason=NOT_FOUND)
        log.info("cognito.delete done email=%s", email)
        return ProviderDeleteResult(deleted=True)

    # ----------------------------
    # Helpers
    # ----------------------------

    async def _ensure_group(self, email: str, group_name: str | None) -> None:
        if not group_name:
            return
        try:
            await self._call("admin_add_user_to_group", Username=email, GroupName=group_name)
        except (ClientError, ProviderUnavailableError) as e:
            log.warning("cognito.group_assign_failed email=%s group=%s error=%s", email, group_name, str(e))

    async def _remove_from_all_groups(self, email: str) -> None:
        try:
            resp = await self._call("admin_list_groups_for_user", Username=email)
            for group in resp.get("Groups") or []:
                name = group.get("GroupName")
                if name:
                    await self._call("admin_remove_user_from_group", Username=email, GroupName=name)
        except ProviderUnavailableError as e:
            log.warning("cognito.group_remove_failed email=%s error=%s", email, str(e))

    async def _sync_status(self, email: str, status: str) -> None:
        operation = {"active": "admin_enable_user", "inactive": "admin_disable_user"}.get(status)
        if operation is None:
            return
        try:
            await self._call(operation, Username=email)
        except (ClientError, ProviderUnavailableError) as e:
            log.warning("cognito.status_sync_failed email=%s status=%s error=%s", email, status, str(e))
