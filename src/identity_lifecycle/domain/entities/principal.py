from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from identity_lifecycle.domain.entities.base import CamelModel
from identity_lifecycle.domain.entities.capacity import Capacity
from identity_lifecycle.domain.entities.provisioning import Outcome
from identity_lifecycle.utils.time_utils import parse_date

PrincipalStatus = Literal["active", "inactive"]

# Stored as required strings on Principal; an update may change them but not null them.
NON_NULLABLE_UPDATE_FIELDS: tuple[str, ...] = ("first_name", "last_name", "email", "status")

# Fields an update request may touch. cognitoSub is deliberately absent.
UPDATABLE_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "middle_name",
    "email",
    "assigned_role",
    "assigned_group",
    "start_date",
    "end_date",
    "status",
)


def normalize_email(v: str) -> str:
    v = v.strip()
    if "@" not in v:
        raise ValueError("email must contain '@'")
    return v


class Principal(CamelModel):
    """
    A tenant's technical user, stored at ``USER#<id>`` / ``METADATA``.
    """

    id: str
    account_id: str
    enterprise_id: str | None = None
    first_name: str = ""
    last_name: str = ""
    middle_name: str | None = None
    email: str
    assigned_role: str | None = None
    assigned_group: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    status: PrincipalStatus | str = "active"
    is_technical_user: bool = False
    cognito_sub: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def is_active_on(self, day: date) -> bool:
        if self.status != "active":
            return False
        end = parse_date(self.end_date)
        return end is None or end > day


class PrincipalWithWorkstreams(Principal):
    workstreams: list[str] = Field(default_factory=list)


class CreateUserRequest(CamelModel):
    account_id: str
    account_name: str | None = None
    enterprise_id: str | None = None
    first_name: str
    last_name: str
    middle_name: str | None = None
    email: str
    assigned_role: str
    assigned_group: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    is_technical_user: bool = False
    workstream_ids: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("workstream_ids")
    @classmethod
    def dedupe_workstreams(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class UpdateUserRequest(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    middle_name: str | None = None
    email: str | None = None
    assigned_role: str | None = None
    assigned_group: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    status: PrincipalStatus | None = None
    # Only forwarded to the identity provider; the stored tenant never changes.
    account_id: str | None = None
    enterprise_id: str | None = None

    @field_validator(*NON_NULLABLE_UPDATE_FIELDS)
    @classmethod
    def reject_null(cls, v: object, info: ValidationInfo) -> object:
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return normalize_email(v)

    def changed_fields(self) -> dict[str, object]:
        """Fields explicitly present in the request, keyed by their stored (camelCase) name."""
        out: dict[str, object] = {}
        for name in UPDATABLE_FIELDS:
            if name in self.model_fields_set:
                out[to_camel(name)] = getattr(self, name)
        return out


class ReplaceWorkstreamsRequest(CamelModel):
    workstream_ids: list[str] = Field(default_factory=list)

    @field_validator("workstream_ids")
    @classmethod
    def dedupe_workstreams(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class CreateUserResult(CamelModel):
    user: Principal
    license_capacity: Capacity
    identity_provider: Outcome
    notification: Outcome
    event: Outcome


class UpdateUserResult(CamelModel):
    user: Principal
    identity_provider: Outcome
    event: Outcome


class DeleteUserResult(CamelModel):
    user_id: str
    deleted_items: int
    identity_provider: Outcome
    event: Outcome
