"""ghassets - keep shared GitHub-hosted assets in sync with a local workspace."""

from .api import GitHubClient
from .auth import TokenProvider
from .config import Settings, load_settings
from .exceptions import (
    AssetSyncError,
    AuthenticationError,
    ConfigError,
    CorruptStateError,
    DownloadError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteAPIError,
)
from .models import (
    RateLimitInfo,
    RemoteFileContent,
    RemoteNode,
    RemoteTree,
    RepositoryConfig,
)

__version__ = "0.1.0"

__all__ = [
    "GitHubClient",
    "TokenProvider",
    "Settings",
    "load_settings",
    "AssetSyncError",
    "AuthenticationError",
    "ConfigError",
    "CorruptStateError",
    "DownloadError",
    "InvalidResponseError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "RemoteAPIError",
    "RateLimitInfo",
    "RemoteFileContent",
    "RemoteNode",
    "RemoteTree",
    "RepositoryConfig",
]
