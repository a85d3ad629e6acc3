"""Status derivation for remote assets against the manifest and local files."""

import logging
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..models import RemoteNode, RepositoryConfig
from .grouping import BUNDLE_MANIFEST_NAME, BundleCandidate, group_nodes
from .hashing import (
    bundle_relative_path,
    combined_local_hash,
    combined_remote_hash,
    compute_file_hash,
)
from .manifest import ManifestEntry, ManifestStore
from .patterns import DestinationMapping, resolve_destination

logger = logging.getLogger(__name__)


class AssetStatus(str, Enum):
    """Synchronization status of an asset. Derived, never persisted."""

    NOT_INSTALLED = "not-installed"
    """No manifest entry, or the local copy was deleted"""

    UP_TO_DATE = "up-to-date"
    """Manifest remote identity matches the current remote identity"""

    UPDATE_AVAILABLE = "update-available"
    """Remote changed, local content unchanged since last sync"""

    LOCALLY_MODIFIED = "locally-modified"
    """Remote changed and local content drifted: a conflict"""

    @property
    def has_update(self) -> bool:
        return self in (AssetStatus.UPDATE_AVAILABLE, AssetStatus.LOCALLY_MODIFIED)


@dataclass
class Asset:
    """One reconciled unit: a single file or a bundle."""

    remote_path: str
    """Remote file path, or the bundle directory for bundles"""

    remote_sha: str
    """Blob sha, or the combined sha of all members for bundles"""

    file_name: str
    repo_config: RepositoryConfig
    local_path: str
    """Workspace-relative destination (a directory for bundles)"""

    status: AssetStatus = AssetStatus.NOT_INSTALLED
    is_bundle: bool = False
    bundle_files: list[str] = field(default_factory=list)
    """Remote paths of all bundle members"""

    @property
    def manifest_key(self) -> str:
        """Manifest key holding this asset's identity."""
        if self.is_bundle:
            return bundle_manifest_key(self.local_path)
        return self.local_path

    def member_local_path(self, member_remote_path: str) -> str:
        """Local path of a bundle member."""
        return posixpath.join(self.local_path, bundle_relative_path(member_remote_path))

    def status_probe_path(self) -> str:
        """Local file whose existence decides whether the asset is installed."""
        if not self.is_bundle:
            return self.local_path
        for member in self.bundle_files:
            if posixpath.basename(member).lower() == BUNDLE_MANIFEST_NAME.lower():
                return self.member_local_path(member)
        return bundle_manifest_key(self.local_path)


def bundle_manifest_key(bundle_local_path: str) -> str:
    """Key of the synthetic entry holding a bundle's combined identity."""
    return f"{bundle_local_path}/{BUNDLE_MANIFEST_NAME}"


def determine_status(
    entry: Optional[ManifestEntry],
    local_exists: bool,
    remote_sha: str,
    current_local_hash: Callable[[], str],
) -> AssetStatus:
    """Derive an asset status.

    The local hash is only computed when the remote identity moved.

    Args:
        entry: Manifest entry for the asset, if any
        local_exists: Whether the local file (bundle: its SKILL.md) exists
        remote_sha: Current remote identity
        current_local_hash: Callable returning the current local content hash

    Returns:
        Derived AssetStatus
    """
    if entry is None or not local_exists:
        return AssetStatus.NOT_INSTALLED
    if entry.remote_sha == remote_sha:
        return AssetStatus.UP_TO_DATE
    if current_local_hash() == entry.local_content_hash:
        return AssetStatus.UPDATE_AVAILABLE
    return AssetStatus.LOCALLY_MODIFIED


class StatusReconciler:
    """Turns a repository's remote nodes into statused assets.

    Reads the manifest snapshot and the local filesystem; never writes.
    """

    def __init__(
        self,
        manifest: ManifestStore,
        workspace_root: Path,
        destination: Optional[DestinationMapping] = None,
        extensions: Sequence[str] = (),
    ):
        """Initialize the reconciler.

        Args:
            manifest: Loaded manifest store
            workspace_root: Workspace directory
            destination: Destination mapping for local paths
            extensions: Allowed extensions for regular files
        """
        self.manifest = manifest
        self.workspace_root = workspace_root
        self.destination = destination or DestinationMapping()
        self.extensions = list(extensions)

    def compute_statuses(
        self, repo_config: RepositoryConfig, nodes: Sequence[RemoteNode]
    ) -> list[Asset]:
        """Group remote nodes and derive the status of each asset.

        Args:
            repo_config: Repository the nodes belong to
            nodes: Filtered blob nodes of that repository

        Returns:
            Bundles first, then regular files
        """
        entries = self.manifest.get_all()
        grouped = group_nodes(nodes, self.extensions)

        assets = [
            self._bundle_asset(repo_config, bundle, entries)
            for bundle in grouped.bundles
        ]
        assets.extend(
            self._file_asset(repo_config, node, entries) for node in grouped.files
        )

        logger.debug(
            f"{repo_config.repo_id}: {len(assets)} asset(s) "
            f"({len(grouped.bundles)} bundle(s))"
        )
        return assets

    def _file_asset(
        self,
        repo_config: RepositoryConfig,
        node: RemoteNode,
        entries: dict[str, ManifestEntry],
    ) -> Asset:
        asset = Asset(
            remote_path=node.path,
            remote_sha=node.sha,
            file_name=node.name,
            repo_config=repo_config,
            local_path=resolve_destination(node.path, self.destination),
        )
        local_file = self.workspace_root / asset.local_path
        asset.status = determine_status(
            entries.get(asset.manifest_key),
            local_file.is_file(),
            asset.remote_sha,
            lambda: self._file_hash(local_file),
        )
        return asset

    def _bundle_asset(
        self,
        repo_config: RepositoryConfig,
        bundle: BundleCandidate,
        entries: dict[str, ManifestEntry],
    ) -> Asset:
        asset = Asset(
            remote_path=bundle.path,
            remote_sha=combined_remote_hash(bundle.members),
            file_name=bundle.name,
            repo_config=repo_config,
            local_path=resolve_destination(bundle.path, self.destination),
            is_bundle=True,
            bundle_files=[node.path for node in bundle.members],
        )
        probe = self.workspace_root / asset.status_probe_path()
        asset.status = determine_status(
            entries.get(asset.manifest_key),
            probe.is_file(),
            asset.remote_sha,
            lambda: combined_local_hash(
                self.workspace_root, asset.local_path, asset.bundle_files
            ),
        )
        return asset

    @staticmethod
    def _file_hash(local_file: Path) -> str:
        try:
            return compute_file_hash(local_file)
        except OSError as e:
            # Unreadable counts as drifted
            logger.warning(f"Cannot hash {local_file}: {e}")
            return ""
