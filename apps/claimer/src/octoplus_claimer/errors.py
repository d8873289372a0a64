"""Error taxonomy shared by the claimer services."""

from __future__ import annotations


class ClaimerError(RuntimeError):
    """Base exception for voucher claim failures."""


class ConfigurationError(ClaimerError):
    """Raised when account credentials or runtime configuration are missing or malformed."""


class RemoteError(ClaimerError):
    """Raised when an Octoplus API call fails or returns an error payload."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class StorageError(ClaimerError):
    """Raised when the account state table cannot be read or written."""


class NotificationError(ClaimerError):
    """Raised when a voucher email cannot be rendered or delivered."""


__all__ = [
    "ClaimerError",
    "ConfigurationError",
    "NotificationError",
    "RemoteError",
    "StorageError",
]
