"""Destination resolution and path filtering.

Remote paths always use forward slashes; local paths produced here are
workspace-relative POSIX strings, which is also how they are keyed in the
manifest.
"""

import fnmatch
import posixpath
from dataclasses import dataclass, field
from typing import Optional, Sequence


@dataclass(frozen=True)
class DestinationRule:
    """Route remote paths matching ``pattern`` under ``destination``."""

    pattern: str
    destination: str


@dataclass(frozen=True)
class DestinationMapping:
    """Where downloaded assets are placed inside the workspace."""

    default: str = ".github"
    rules: Sequence[DestinationRule] = field(default_factory=tuple)

    def roots(self) -> list[str]:
        """All destination roots, default first."""
        roots = [_normalize(self.default)]
        roots.extend(_normalize(rule.destination) for rule in self.rules)
        return roots


def _normalize(path: str) -> str:
    return path.replace("\\", "/").strip("/")


def _is_under(path: str, root: str) -> bool:
    return path == root or path.startswith(root + "/")


def resolve_destination(
    remote_path: str, mapping: Optional[DestinationMapping] = None
) -> str:
    """Map a remote path to its workspace-relative local path.

    A path that already lies under a destination root is returned as-is,
    which keeps the function idempotent and avoids ``.github/.github/...``.
    Otherwise the first rule whose glob matches picks the root, falling
    back to the default destination.

    Args:
        remote_path: Path of the file (or bundle directory) in the repository
        mapping: Destination mapping (defaults to ``.github``)

    Returns:
        Local path relative to the workspace root

    Examples:
        >>> resolve_destination("agents/reviewer.md")
        '.github/agents/reviewer.md'
        >>> resolve_destination(".github/agents/reviewer.md")
        '.github/agents/reviewer.md'
    """
    mapping = mapping or DestinationMapping()
    posix_path = _normalize(remote_path)

    for root in mapping.roots():
        if _is_under(posix_path, root):
            return posix_path

    for rule in mapping.rules:
        if _glob_match(posix_path, _normalize(rule.pattern)):
            return posixpath.join(_normalize(rule.destination), posix_path)

    return posixpath.join(_normalize(mapping.default), posix_path)


def is_allowed_extension(file_name: str, extensions: Sequence[str]) -> bool:
    """Check a file's extension against the allow-list, ignoring case.

    Files without an extension are never allowed.

    Examples:
        >>> is_allowed_extension("README.MD", [".md"])
        True
        >>> is_allowed_extension("Dockerfile", [".md"])
        False
    """
    ext = posixpath.splitext(posixpath.basename(file_name.replace("\\", "/")))[1]
    if not ext:
        return False
    ext = ext.lower()
    return any(allowed.lower() == ext for allowed in extensions)


def _match_segments(parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    if not pattern_parts:
        return not parts
    head = pattern_parts[0]
    if head == "**":
        # zero or more whole segments
        return any(
            _match_segments(parts[i:], pattern_parts[1:])
            for i in range(len(parts) + 1)
        )
    return (
        bool(parts)
        and fnmatch.fnmatchcase(parts[0], head)
        and _match_segments(parts[1:], pattern_parts[1:])
    )


def _glob_match(path: str, pattern: str) -> bool:
    """Match a POSIX path against a glob, one segment at a time.

    ``*``, ``?`` and ``[...]`` never cross a ``/``; ``**`` spans any number
    of directories, including none.
    """
    parts = path.split("/")
    # Slash-less patterns match any single segment, like .gitignore
    if "/" not in pattern and pattern != "**":
        return any(fnmatch.fnmatchcase(part, pattern) for part in parts)
    return _match_segments(parts, pattern.split("/"))


def is_excluded(path: str, patterns: Sequence[str]) -> bool:
    """Check whether a repository path matches any exclude pattern.

    Supports ``**`` wildcards, base-name patterns such as ``*.tmp`` or
    ``drafts`` (matched against every path segment) and exact paths.

    Examples:
        >>> is_excluded("agents/drafts/new.md", ["drafts"])
        True
        >>> is_excluded("agents/new.md", [])
        False
    """
    if not patterns:
        return False
    posix_path = _normalize(path)
    for pattern in patterns:
        normalized = _normalize(pattern)
        if normalized.startswith("./"):
            normalized = normalized[2:]
        if normalized and _glob_match(posix_path, normalized):
            return True
    return False
