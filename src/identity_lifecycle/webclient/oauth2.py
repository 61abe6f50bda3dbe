from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.configs.settings import Settings

log = get_logger(__name__)


class OAuth2TokenProvider:
    """Client-credentials token, cached until shortly before expiry."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str | None = None,
        timeout: float = 5.0,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.timeout = timeout

        self._lock = asyncio.Lock()
        self._access_token: str | None = None
        self._expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "OAuth2TokenProvider":
        return cls(
            token_url=settings.oauth2_token_url,
            client_id=settings.oauth2_client_id,
            client_secret=settings.oauth2_client_secret,
            scope=settings.oauth2_scope,
        )

    def _valid(self) -> bool:
        return bool(self._access_token) and time.time() < self._expires_at

    async def get_token(self) -> str:
        if self._valid():
            return self._access_token

        async with self._lock:
            # another waiter may have refreshed it
            if not self._valid():
                await self._fetch_token()
            return self._access_token

    async def _fetch_token(self) -> None:
        data = {"grant_type": "client_credentials"}
        if self.scope:
            data["scope"] = self.scope

        log.info("oauth2.token.fetch url=%s client_id=%s", self.token_url, self.client_id)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                self.token_url,
                data=data,
                auth=(self.client_id, self.client_secret),
            )
            resp.raise_for_status()
            payload = resp.json()

        self._access_token = payload["access_token"]
        expires_in = payload.get("expires_in", 300)
        # refresh slightly early
        self._expires_at = time.time() + expires_in - 30


class OAuth2HttpClient:
    """httpx.AsyncClient that attaches a bearer token to every request."""

    def __init__(self, token_provider: OAuth2TokenProvider, client: httpx.AsyncClient | None = None):
        self.token_provider = token_provider
        self.session = client or httpx.AsyncClient(timeout=10.0)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token = await self.token_provider.get_token()
        headers = kwargs.pop("headers", None) or {}
        headers["Authorization"] = f"Bearer {token}"
        return await self.session.request(method, url, headers=headers, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self.session.aclose()
