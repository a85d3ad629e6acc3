"""Custom exceptions for GitHub asset synchronization."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from .models import RateLimitInfo


class AssetSyncError(Exception):
    """Base exception for all ghassets errors."""


class ConfigError(AssetSyncError):
    """Raised when the workspace configuration is missing or invalid."""


class CorruptStateError(AssetSyncError):
    """Raised when the persisted manifest cannot be read or parsed.

    The manifest store recovers from this internally; it never reaches
    callers of the sync engine.
    """


class DownloadError(AssetSyncError):
    """Raised when fetched content cannot be decoded or written locally."""


class RemoteAPIError(AssetSyncError):
    """Base exception for errors reported by the remote repository API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        rate_limit: RateLimitInfo | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.rate_limit = rate_limit


class AuthenticationError(RemoteAPIError):
    """Raised when no valid session or token is available."""


class PermissionDeniedError(RemoteAPIError):
    """Raised when the token lacks access to a repository."""


class NotFoundError(RemoteAPIError):
    """Raised when a repository, branch or path does not exist."""


class RateLimitError(RemoteAPIError):
    """Raised when the API rate limit has been exhausted."""

    @property
    def reset_at(self) -> datetime | None:
        """Local time at which the rate limit resets, if known."""
        if self.rate_limit is None:
            return None
        return self.rate_limit.reset_at


class NetworkError(RemoteAPIError):
    """Raised when the API could not be reached."""


class InvalidResponseError(RemoteAPIError):
    """Raised when the API returns a payload that cannot be parsed."""
