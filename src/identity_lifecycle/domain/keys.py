"""Key-space conventions shared with the existing single-table data."""

from __future__ import annotations

PK = "PK"
SK = "SK"
GSI1 = "GSI1"
GSI2 = "GSI2"

INDEX_FIELDS: dict[str, tuple[str, str]] = {
    GSI1: ("GSI1PK", "GSI1SK"),
    GSI2: ("GSI2PK", "GSI2SK"),
}

METADATA = "METADATA"

ENTITY_USER = "ENTITY#USER"
ENTITY_ROLE = "ENTITY#ROLE"
ENTITY_ACCOUNT = "ENTITY#ACCOUNT"

USER_PREFIX = "USER#"
GROUP_PREFIX = "GROUP#"
ROLE_PREFIX = "ROLE#"
WORKSTREAM_PREFIX = "WORKSTREAM#"
PERMISSION_PREFIX = "PERMISSION#"
LICENSE_PREFIX = "LICENSE#"


def user_pk(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def group_pk(group_id: str) -> str:
    return f"{GROUP_PREFIX}{group_id}"


def role_pk(role_id: str) -> str:
    return f"{ROLE_PREFIX}{role_id}"


def account_pk(tenant_id: str) -> str:
    return f"ACCOUNT#{tenant_id}"


def enterprise_pk(enterprise_id: str) -> str:
    return f"ENTERPRISE#{enterprise_id}"


def account_users_pk(tenant_id: str) -> str:
    return f"ACCOUNT#{tenant_id}#USERS"


def workstream_sk(workstream_id: str) -> str:
    return f"{WORKSTREAM_PREFIX}{workstream_id}"


def item_key(partition: str, sort: str) -> dict[str, str]:
    return {PK: partition, SK: sort}


def metadata_key(partition: str) -> dict[str, str]:
    return item_key(partition, METADATA)
