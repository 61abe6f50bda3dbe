from __future__ import annotations

from typing import Any

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """
    Central configuration.

    - Values loaded from the environment and `.env`
    - Comma-separated lists for multi-value settings like CORS_ORIGINS
    """

    # ----------------------------
    # Service
    # ----------------------------
    SERVICE_NAME: str = "identity-lifecycle-service"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ----------------------------
    # Mongo (single-table item store)
    # ----------------------------
    mongo_uri: str = "mongodb://localhost:27017/?replicaSet=rs0"
    mongo_db: str = "admin_platform"
    items_collection: str = "admin_items"
    max_transact_items: int = 100
    batch_write_size: int = 25

    # ----------------------------
    # Redis
    # ----------------------------
    redis_url: str = "redis://localhost:6379/0"
    redis_stream_users: str = "il:stream:users"

    # ----------------------------
    # Identity provider (Cognito)
    # ----------------------------
    cognito_user_pool_id: str = ""  # empty disables provisioning
    cognito_region: str = "us-east-1"

    # ----------------------------
    # Notifications
    # ----------------------------
    notification_base_url: str = ""  # empty disables credential emails
    oauth2_token_url: str = "http://localhost:5055/oauth2/token"
    oauth2_client_id: str = "identity-lifecycle"
    oauth2_client_secret: str = "change-me"
    oauth2_scope: str | None = None

    # ----------------------------
    # CORS
    # ----------------------------
    # store as raw string list from env; we will normalize in code
    CORS_ORIGINS: Any = Field(default_factory=list)

    # ----------------------------
    # JWT
    # ----------------------------
    jwt_alg: str = "HS256"
    jwt_secret: str = "change-me"
    jwt_audience: str | None = None
    jwt_issuer: str | None = None

    # ----------------------------
    # Access
    # ----------------------------
    platform_admin_email: str = "admin@adminplatform.com"
    super_admin_role: str = "super_admin"

    # ----------------------------
    # Reconciliation
    # ----------------------------
    reconciliation_enabled: bool = False
    reconciliation_interval_seconds: int = 86400
    reconciliation_dry_run: bool = False

    # Pydantic settings config (v2 style)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
