from __future__ import annotations

from typing import Literal

from pydantic import Field

from identity_lifecycle.domain.entities.base import CamelModel

DetailStatus = Literal["provisioned", "updated", "skipped", "failed"]


class ReconcileRequest(CamelModel):
    account_id: str | None = None
    dry_run: bool = False
    include_inactive: bool = False


class ReconciliationDetail(CamelModel):
    user_id: str
    email: str
    status: DetailStatus
    cognito_sub: str | None = None
    reason: str | None = None


class ReconciliationSummary(CamelModel):
    total_scanned: int = 0
    missing_external_id: int = 0
    provisioned: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    details: list[ReconciliationDetail] = Field(default_factory=list)

    def record(self, detail: ReconciliationDetail) -> None:
        self.details.append(detail)
        if detail.status == "provisioned":
            self.provisioned += 1
        elif detail.status == "updated":
            self.updated += 1
        elif detail.status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
