"""Content addressing for single files and multi-file bundles."""

import hashlib
import logging
import posixpath
import re
from pathlib import Path
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

HASH_PREFIX = "sha256:"

# Not a real digest: marks a bundle with unreadable members so that it never
# compares equal to a hash stored in the manifest.
MISSING_FILES_HASH = "sha256:missing-files"

_BUNDLE_PREFIX_RE = re.compile(r"^(.*/)?skills/[^/]+/")


class PathWithSha(Protocol):
    path: str
    sha: str


def compute_hash(content: bytes) -> str:
    """Hash raw bytes as ``sha256:<hex>``.

    Examples:
        >>> compute_hash(b"")
        'sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return HASH_PREFIX + hashlib.sha256(content).hexdigest()


def compute_file_hash(file_path: Path) -> str:
    """Hash a local file in chunks.

    Raises:
        OSError: If the file cannot be read
    """
    sha = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha.update(chunk)
    return HASH_PREFIX + sha.hexdigest()


def combined_remote_hash(members: Iterable[PathWithSha]) -> str:
    """Give a bundle one identity from all of its ``(path, sha)`` pairs.

    Members are sorted by path, so input order does not matter, while any
    added, removed, renamed or changed member yields a different hash.
    """
    ordered = sorted(members, key=lambda m: m.path)
    combined = "\n".join(f"{m.path}:{m.sha}" for m in ordered)
    return compute_hash(combined.encode("utf-8"))


def bundle_relative_path(remote_path: str) -> str:
    """Strip everything up to and including the ``skills/<name>/`` segment.

    Examples:
        >>> bundle_relative_path("team/skills/lint/scripts/run.sh")
        'scripts/run.sh'
    """
    return _BUNDLE_PREFIX_RE.sub("", remote_path, count=1)


def combined_local_hash(
    workspace_root: Path, bundle_local_path: str, member_remote_paths: Iterable[str]
) -> str:
    """Hash the local copies of every bundle member.

    Args:
        workspace_root: Workspace directory
        bundle_local_path: Workspace-relative directory of the bundle
        member_remote_paths: Remote paths of all bundle members

    Returns:
        Combined hash, or :data:`MISSING_FILES_HASH` if any member is
        missing or unreadable
    """
    relative_paths = sorted(bundle_relative_path(p) for p in member_remote_paths)

    lines: list[str] = []
    for relative_path in relative_paths:
        local_file = workspace_root / posixpath.join(bundle_local_path, relative_path)
        try:
            digest = hashlib.sha256(local_file.read_bytes()).hexdigest()
        except OSError as e:
            logger.debug(f"Bundle member unreadable, combined hash unavailable: {e}")
            return MISSING_FILES_HASH
        lines.append(f"{relative_path}:{digest}")

    return compute_hash("\n".join(lines).encode("utf-8"))
