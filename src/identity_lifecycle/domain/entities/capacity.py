from __future__ import annotations

from pydantic import Field

from identity_lifecycle.domain.entities.base import CamelModel


class LicenseSummary(CamelModel):
    license_id: str
    enterprise_id: str | None = None
    product_id: str | None = None
    number_of_users: int = 0
    end_date: str | None = None


class Capacity(CamelModel):
    """Licensed seats for a tenant: allowed, in use, and left."""

    total_allowed: int
    current_active_users: int
    remaining: int
    licenses: list[LicenseSummary] = Field(default_factory=list)

    def after_creation(self, count: int = 1) -> "Capacity":
        return self.model_copy(
            update={
                "current_active_users": self.current_active_users + count,
                "remaining": self.remaining - count,
            }
        )
