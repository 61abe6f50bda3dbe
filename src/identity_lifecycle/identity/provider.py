from __future__ import annotations

from abc import ABC, abstractmethod

from identity_lifecycle.domain.entities.provisioning import (
    ProviderCreateResult,
    ProviderDeleteResult,
    ProviderProfile,
    ProviderUpdateResult,
)


class IdentityProviderAdapter(ABC):
    """
    Managed identity provider holding the login principal for each technical user.

    Every call may raise ProviderUnavailableError. Callers treat that as a soft
    failure: the stored principal is authoritative.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    @abstractmethod
    async def create_user(self, profile: ProviderProfile) -> ProviderCreateResult:
        """Idempotent: an existing upstream principal is updated and reported as `updated`."""

    @abstractmethod
    async def update_user(self, profile: ProviderProfile) -> ProviderUpdateResult:
        pass

    @abstractmethod
    async def delete_user(self, email: str) -> ProviderDeleteResult:
        pass
