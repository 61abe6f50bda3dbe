from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict


class OutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    SENT = "sent"
    PUBLISHED = "published"
    SKIPPED = "skipped"
    FAILED = "failed"


class Outcome(BaseModel):
    """Result of a best-effort side channel (identity provider, notifier, event stream)."""

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    reason: str | None = None

    @classmethod
    def of(cls, kind: OutcomeKind, reason: str | None = None) -> "Outcome":
        return cls(kind=kind, reason=reason)

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(kind=OutcomeKind.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "Outcome":
        return cls(kind=OutcomeKind.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind not in (OutcomeKind.SKIPPED, OutcomeKind.FAILED)


@dataclass(frozen=True)
class ProviderProfile:
    """Attributes pushed to the identity provider. None means "leave unchanged" on update."""

    email: str
    first_name: str | None = None
    last_name: str | None = None
    account_id: str | None = None
    enterprise_id: str | None = None
    role: str | None = None
    group_name: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class ProviderCreateResult:
    created: bool = False
    updated: bool = False
    skipped: bool = False
    cognito_sub: str | None = None
    temporary_password: str | None = None
    reason: str | None = None

    def outcome(self) -> Outcome:
        if self.created:
            return Outcome.of(OutcomeKind.CREATED)
        if self.updated:
            return Outcome.of(OutcomeKind.UPDATED)
        return Outcome.skipped(self.reason or "skipped by identity provider")


@dataclass(frozen=True)
class ProviderUpdateResult:
    updated: bool = False
    skipped: bool = False
    cognito_sub: str | None = None
    reason: str | None = None

    def outcome(self) -> Outcome:
        if self.updated:
            return Outcome.of(OutcomeKind.UPDATED)
        return Outcome.skipped(self.reason or "skipped by identity provider")


@dataclass(frozen=True)
class ProviderDeleteResult:
    deleted: bool = False
    skipped: bool = False
    reason: str | None = None

    def outcome(self) -> Outcome:
        if self.deleted:
            return Outcome.of(OutcomeKind.DELETED)
        return Outcome.skipped(self.reason or "skipped by identity provider")


@dataclass(frozen=True)
class CredentialRecipient:
    email: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    sent: bool = False
    skipped: bool = False
    reason: str | None = None
    message_id: str | None = None
    audit_id: str | None = None

    def outcome(self) -> Outcome:
        if self.sent:
            return Outcome.of(OutcomeKind.SENT)
        if self.skipped:
            return Outcome.skipped(self.reason or "notification skipped")
        return Outcome.failed(self.reason or "notification failed")
