"""Data models for repository configuration and GitHub API responses.

API payloads are parsed into these records at the client boundary, so the
rest of the package never handles loosely-typed JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

from .exceptions import ConfigError, InvalidResponseError

NodeType = Literal["blob", "tree", "commit"]

DEFAULT_BRANCH = "main"


@dataclass(frozen=True)
class RepositoryConfig:
    """Identity of one remote source repository.

    Instances are normalized on construction through :meth:`from_dict`:
    ``path`` never has leading or trailing slashes, ``branch`` defaults to
    ``main`` and ``label`` defaults to ``owner/repo``.
    """

    owner: str
    repo: str
    branch: str = DEFAULT_BRANCH
    path: str = ""
    label: str = ""

    @property
    def repo_id(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RepositoryConfig":
        """Create a normalized RepositoryConfig from raw configuration.

        Args:
            data: Raw mapping with ``owner``, ``repo`` and optional
                ``branch``, ``path`` and ``label`` keys

        Returns:
            Normalized RepositoryConfig

        Raises:
            ConfigError: If owner or repo is missing or not a string
        """
        owner = data.get("owner")
        repo = data.get("repo")
        if not isinstance(owner, str) or not owner.strip():
            raise ConfigError("Repository owner is required")
        if not isinstance(repo, str) or not repo.strip():
            raise ConfigError("Repository name is required")

        owner = owner.strip()
        repo = repo.strip()
        branch = str(data.get("branch") or "").strip() or DEFAULT_BRANCH
        path = str(data.get("path") or "").strip().strip("/")
        label = str(data.get("label") or "").strip() or f"{owner}/{repo}"

        return cls(owner=owner, repo=repo, branch=branch, path=path, label=label)

    def to_dict(self) -> dict[str, str]:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "branch": self.branch,
            "path": self.path,
            "label": self.label,
        }


@dataclass(frozen=True)
class RateLimitInfo:
    """Rate limit snapshot taken from ``x-ratelimit-*`` response headers."""

    limit: int
    remaining: int
    reset: int
    """Unix timestamp at which the quota resets"""

    @property
    def reset_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset)

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["RateLimitInfo"]:
        """Parse rate limit headers.

        Args:
            headers: Response headers (case-insensitive mapping)

        Returns:
            RateLimitInfo, or None when the headers are absent or invalid
        """
        limit = headers.get("x-ratelimit-limit")
        remaining = headers.get("x-ratelimit-remaining")
        reset = headers.get("x-ratelimit-reset")
        if not (limit and remaining and reset):
            return None
        try:
            return cls(limit=int(limit), remaining=int(remaining), reset=int(reset))
        except ValueError:
            return None


def _require_str(data: Mapping[str, Any], key: str, kind: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise InvalidResponseError(f"Invalid {kind}: missing or non-string '{key}'")
    return value


@dataclass(frozen=True)
class RemoteNode:
    """One entry from a recursive tree listing.

    Identity is ``(path, sha)``; the sha changes whenever content changes.
    """

    path: str
    sha: str
    type: NodeType = "blob"
    size: Optional[int] = None

    @property
    def is_blob(self) -> bool:
        return self.type == "blob"

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @classmethod
    def from_dict(cls, data: Any) -> "RemoteNode":
        """Parse a tree entry.

        Raises:
            InvalidResponseError: If the entry is not a well-formed node
        """
        if not isinstance(data, Mapping):
            raise InvalidResponseError(f"Invalid tree node: {data!r}")
        path = _require_str(data, "path", "tree node")
        sha = _require_str(data, "sha", "tree node")
        node_type = data.get("type")
        if node_type not in ("blob", "tree", "commit"):
            raise InvalidResponseError(
                f"Invalid tree node type for '{path}': {node_type!r}"
            )
        size = data.get("size")
        if size is not None and not isinstance(size, int):
            size = None
        return cls(path=path, sha=sha, type=node_type, size=size)


@dataclass(frozen=True)
class RemoteTree:
    """Result of a recursive tree listing."""

    sha: str
    tree: list[RemoteNode] = field(default_factory=list)
    truncated: bool = False

    @classmethod
    def from_api_response(cls, data: Any) -> "RemoteTree":
        """Parse a ``git/trees`` API response.

        Raises:
            InvalidResponseError: If the payload is malformed
        """
        if not isinstance(data, Mapping):
            raise InvalidResponseError("Invalid tree response: expected an object")
        sha = _require_str(data, "sha", "tree response")
        raw_tree = data.get("tree")
        if not isinstance(raw_tree, list):
            raise InvalidResponseError("Invalid tree response: 'tree' is not a list")
        return cls(
            sha=sha,
            tree=[RemoteNode.from_dict(item) for item in raw_tree],
            truncated=bool(data.get("truncated", False)),
        )


@dataclass(frozen=True)
class RemoteFileContent:
    """File content returned by the ``contents`` API (base64 encoded)."""

    path: str
    sha: str
    content: str
    encoding: str = "base64"
    name: str = ""
    size: int = 0
    html_url: str = ""

    @classmethod
    def from_api_response(cls, data: Any) -> "RemoteFileContent":
        """Parse a ``contents`` API response for a single file.

        Raises:
            InvalidResponseError: If the payload is not a base64 file
        """
        if not isinstance(data, Mapping):
            # Directory listings come back as arrays
            raise InvalidResponseError("Invalid file content: expected a file object")
        path = _require_str(data, "path", "file content")
        sha = _require_str(data, "sha", "file content")
        content = data.get("content")
        if not isinstance(content, str):
            raise InvalidResponseError(f"Invalid file content for '{path}'")
        encoding = data.get("encoding") or "base64"
        if encoding != "base64":
            raise InvalidResponseError(
                f"Unsupported content encoding for '{path}': {encoding}"
            )
        size = data.get("size")
        return cls(
            path=path,
            sha=sha,
            content=content,
            encoding=encoding,
            name=str(data.get("name") or path.rsplit("/", 1)[-1]),
            size=size if isinstance(size, int) else 0,
            html_url=str(data.get("html_url") or ""),
        )
