"""Presentation tree built from sync results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from ..models import RepositoryConfig
from .comparator import Asset

if TYPE_CHECKING:
    from .engine import SyncResult


class TreeNodeType(str, Enum):
    """Kinds of nodes in the presentation tree."""

    REPOSITORY = "repository"
    FOLDER = "folder"
    FILE = "file"
    BUNDLE = "bundle"
    ERROR = "error"
    MESSAGE = "message"


@dataclass
class AssetTreeNode:
    """Node of the ``repository -> folder -> file|bundle`` hierarchy."""

    type: TreeNodeType
    label: str
    remote_path: str = ""
    repo_config: Optional[RepositoryConfig] = None
    asset: Optional[Asset] = None
    children: list["AssetTreeNode"] = field(default_factory=list)
    error_message: Optional[str] = None

    def walk(self):
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


def _relative_path(asset: Asset, base_path: str) -> str:
    if base_path and asset.remote_path.startswith(base_path + "/"):
        return asset.remote_path[len(base_path) + 1 :]
    return asset.remote_path


def _repository_node(result: "SyncResult") -> AssetTreeNode:
    repo_config = result.repo_config
    root = AssetTreeNode(
        type=TreeNodeType.REPOSITORY,
        label=repo_config.label,
        repo_config=repo_config,
    )
    folders: dict[str, AssetTreeNode] = {"": root}

    for asset in sorted(result.assets, key=lambda a: a.remote_path):
        parts = _relative_path(asset, repo_config.path).split("/")
        leaf_label = parts.pop()

        parent = root
        current = ""
        for part in parts:
            current = f"{current}/{part}" if current else part
            folder = folders.get(current)
            if folder is None:
                folder = AssetTreeNode(
                    type=TreeNodeType.FOLDER,
                    label=part,
                    remote_path=current,
                    repo_config=repo_config,
                )
                folders[current] = folder
                parent.children.append(folder)
            parent = folder

        # Bundles are single leaves; their members are never expanded
        parent.children.append(
            AssetTreeNode(
                type=TreeNodeType.BUNDLE if asset.is_bundle else TreeNodeType.FILE,
                label=leaf_label,
                remote_path=asset.remote_path,
                repo_config=repo_config,
                asset=asset,
            )
        )

    return root


def build_asset_tree(
    results: Sequence["SyncResult"], has_repositories: bool = True
) -> list[AssetTreeNode]:
    """Convert per-repository results into a presentation tree.

    Args:
        results: Results of the last sync, in configuration order
        has_repositories: Whether any repository is configured

    Returns:
        One root node per repository (an error node for failed ones), or a
        single message node when nothing is configured
    """
    if not has_repositories:
        return [
            AssetTreeNode(
                type=TreeNodeType.MESSAGE,
                label="No repositories configured",
                error_message="Add repositories to .ghassets.json to get started.",
            )
        ]

    roots: list[AssetTreeNode] = []
    for result in results:
        if result.error:
            roots.append(
                AssetTreeNode(
                    type=TreeNodeType.ERROR,
                    label=result.repo_config.label,
                    repo_config=result.repo_config,
                    error_message=result.error,
                )
            )
        else:
            roots.append(_repository_node(result))
    return roots
