from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base error for expected failures."""

    def __init__(self, message: str, *, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status


class AuthError(AppError):
    def __init__(self, message: str = "unauthorized"):
        super().__init__(message, http_status=401)


class ForbiddenError(AppError):
    def __init__(self, message: str = "forbidden"):
        super().__init__(message, http_status=403)


class NotFoundError(AppError):
    def __init__(self, message: str = "not found"):
        super().__init__(message, http_status=404)


class CapacityExceededError(AppError):
    """Tenant is at or over its licensed user ceiling."""

    def __init__(self, message: str, *, code: str, capacity: Any = None):
        super().__init__(message, http_status=403)
        self.code = code
        self.capacity = capacity


class NotConfiguredError(AppError):
    def __init__(self, message: str = "identity provider is not configured"):
        super().__init__(message, http_status=400)


class StoreTransactionError(AppError):
    """An atomic multi-item write was rejected; none of its operations applied."""

    def __init__(self, message: str = "store transaction failed"):
        super().__init__(message, http_status=500)


class ProviderUnavailableError(Exception):
    """
    Transient identity-provider or notification failure.

    Never mapped to an HTTP response: callers catch it and record a failed outcome.
    """
