"""Classification of remote tree nodes into regular files and bundles.

A bundle (a "skill") is every file below ``<prefix>skills/<name>/``. It is
only treated as one asset when one of its members is a ``SKILL.md`` file;
otherwise its members are ordinary files again.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from ..models import RemoteNode
from .patterns import is_allowed_extension

logger = logging.getLogger(__name__)

BUNDLE_MANIFEST_NAME = "SKILL.md"

_BUNDLE_RE = re.compile(r"^(.+/)?skills/([^/]+)/")


@dataclass(frozen=True)
class RegularFile:
    """A node outside any ``skills/<name>/`` directory."""

    node: RemoteNode


@dataclass
class BundleCandidate:
    """All nodes sharing one ``<prefix>skills/<name>`` directory."""

    path: str
    """Remote directory of the bundle, e.g. ``team/skills/lint``"""

    name: str
    members: list[RemoteNode] = field(default_factory=list)

    @property
    def manifest_member(self) -> Optional[RemoteNode]:
        """The member whose base name is ``SKILL.md`` (any case)."""
        for node in self.members:
            if node.name.lower() == BUNDLE_MANIFEST_NAME.lower():
                return node
        return None

    @property
    def is_valid(self) -> bool:
        return self.manifest_member is not None


Classified = Union[RegularFile, BundleCandidate]


def bundle_directory(remote_path: str) -> Optional[tuple[str, str]]:
    """Return ``(bundle_path, bundle_name)`` if the path lies inside a bundle.

    Examples:
        >>> bundle_directory("team/skills/lint/SKILL.md")
        ('team/skills/lint', 'lint')
        >>> bundle_directory("agents/reviewer.md") is None
        True
    """
    match = _BUNDLE_RE.match(remote_path)
    if not match:
        return None
    prefix = match.group(1) or ""
    name = match.group(2)
    return f"{prefix}skills/{name}", name


def classify_nodes(nodes: Sequence[RemoteNode]) -> list[Classified]:
    """Tag every node as a regular file or as part of a bundle candidate.

    Bundle candidates appear once, at the position of their first member.
    Validity is not checked here; see :func:`group_nodes`.
    """
    classified: list[Classified] = []
    candidates: dict[str, BundleCandidate] = {}

    for node in nodes:
        location = bundle_directory(node.path)
        if location is None:
            classified.append(RegularFile(node))
            continue
        bundle_path, name = location
        candidate = candidates.get(bundle_path)
        if candidate is None:
            candidate = BundleCandidate(path=bundle_path, name=name)
            candidates[bundle_path] = candidate
            classified.append(candidate)
        candidate.members.append(node)

    return classified


@dataclass
class GroupedNodes:
    """Outcome of grouping: valid bundles and regular files."""

    bundles: list[BundleCandidate] = field(default_factory=list)
    files: list[RemoteNode] = field(default_factory=list)


def group_nodes(nodes: Sequence[RemoteNode], extensions: Sequence[str]) -> GroupedNodes:
    """Group blob nodes into assets.

    Valid bundles keep every member regardless of extension. Members of an
    invalid bundle and all other files pass through the extension filter.

    Args:
        nodes: Blob nodes, already path- and depth-scoped
        extensions: Allowed file extensions for regular files

    Returns:
        GroupedNodes with bundles and regular files
    """
    grouped = GroupedNodes()
    fallback: list[RemoteNode] = []

    for item in classify_nodes(nodes):
        if isinstance(item, RegularFile):
            if is_allowed_extension(item.node.name, extensions):
                grouped.files.append(item.node)
        elif item.is_valid:
            logger.debug(
                f"Detected bundle '{item.name}' at {item.path} "
                f"with {len(item.members)} file(s)"
            )
            grouped.bundles.append(item)
        else:
            logger.debug(
                f"No {BUNDLE_MANIFEST_NAME} in {item.path}, treating "
                f"{len(item.members)} file(s) as regular"
            )
            fallback.extend(
                node
                for node in item.members
                if is_allowed_extension(node.name, extensions)
            )

    grouped.files.extend(fallback)
    return grouped
