"""Utility functions for ghassets."""

import base64
import binascii
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

from .exceptions import DownloadError

# =============================================================================
# Constants
# =============================================================================

DEFAULT_API_URL: str = "https://api.github.com"
DEFAULT_HTML_URL: str = "https://github.com"

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds
DEFAULT_TIMEOUT: float = 30.0  # seconds

USER_AGENT: str = "ghassets"


# =============================================================================
# Content decoding
# =============================================================================


def decode_base64_content(content: str) -> bytes:
    """Decode base64 file content returned by the contents API.

    GitHub wraps the encoded content at 60 characters, so embedded
    newlines are removed before decoding.

    Args:
        content: Base64 encoded string, possibly containing newlines

    Returns:
        Decoded bytes

    Raises:
        DownloadError: If the content is not valid base64

    Examples:
        >>> decode_base64_content("aGVs\\nbG8=")
        b'hello'
    """
    cleaned = content.replace("\n", "").replace("\r", "")
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DownloadError(f"Invalid base64 content: {e}") from e


# =============================================================================
# Timestamps
# =============================================================================


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written to the manifest.

    Args:
        timestamp_str: Timestamp such as ``2026-01-01T00:00:00Z``

    Returns:
        Timezone-aware datetime, or None if parsing fails
    """
    if not timestamp_str:
        return None
    if timestamp_str.endswith("Z"):
        timestamp_str = timestamp_str[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(timestamp_str)
    except ValueError:
        return None


# =============================================================================
# URLs
# =============================================================================


def encode_path(path: str) -> str:
    """URL-encode each segment of a repository path, keeping separators."""
    return "/".join(quote(part, safe="") for part in path.split("/"))


def build_html_url(
    html_base_url: str, owner: str, repo: str, branch: str, remote_path: str
) -> str:
    """Build the web URL of a file on the repository host.

    Examples:
        >>> build_html_url("https://github.com", "org", "r", "main", "a\\\\b.md")
        'https://github.com/org/r/blob/main/a/b.md'
    """
    file_path = remote_path.replace("\\", "/")
    base = html_base_url.rstrip("/")
    return f"{base}/{owner}/{repo}/blob/{branch}/{file_path}"
