from __future__ import annotations

from typing import Any

import httpx

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain.entities.provisioning import CredentialRecipient, NotificationResult
from identity_lifecycle.errors import ProviderUnavailableError
from identity_lifecycle.webclient.oauth2 import OAuth2HttpClient

log = get_logger(__name__)

CREDENTIAL_TEMPLATE = "credential-provisioned"


class NotificationClient:
    """Dispatches credential emails through the platform notification service."""

    def __init__(self, base_url: str, http_client: OAuth2HttpClient | None):
        self._base_url = base_url.rstrip("/")
        self._http = http_client

    def is_configured(self) -> bool:
        return bool(self._base_url and self._http is not None)

    async def send_credential_provisioned_email(
        self,
        recipient: CredentialRecipient,
        temporary_password: str,
        display_context: dict[str, Any] | None = None,
    ) -> NotificationResult:
        if not self.is_configured():
            log.debug("notify.credential skipped email=%s reason=not_configured", recipient.email)
            return NotificationResult(skipped=True, reason="notification service not configured")

        body = {
            "template": CREDENTIAL_TEMPLATE,
            "recipient": {
                "email": recipient.email,
                "firstName": recipient.first_name,
                "lastName": recipient.last_name,
            },
            "variables": {"temporaryPassword": temporary_password},
            "context": display_context or {},
        }
        try:
            resp = await self._http.post(f"{self._base_url}/notifications/email", json=body)
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(f"notification service unreachable: {e}") from e

        if resp.status_code >= 500:
            raise ProviderUnavailableError(f"notification service error status={resp.status_code}")
        if resp.status_code >= 400:
            log.warning("notify.credential rejected email=%s status=%s", recipient.email, resp.status_code)
            return NotificationResult(reason=f"rejected with status {resp.status_code}")

        payload = resp.json() if resp.content else {}
        log.info(
            "notify.credential sent email=%s message_id=%s audit_id=%s",
            recipient.email,
            payload.get("messageId"),
            payload.get("auditId"),
        )
        return NotificationResult(
            sent=True,
            message_id=payload.get("messageId"),
            audit_id=payload.get("auditId"),
        )
