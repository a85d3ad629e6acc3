"""Asset mutations: download, update, skip and remove.

Every mutation changes local files and manifest entries together and ends
with a single ``ManifestStore.save()``. Callers must run mutations one at a
time, because concurrent saves of the whole manifest would race.
"""

import difflib
import logging
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from ..models import RemoteFileContent, RemoteNode
from ..utils import decode_base64_content, utc_now_iso
from .comparator import Asset
from .hashing import (
    combined_local_hash,
    combined_remote_hash,
    compute_file_hash,
    compute_hash,
)
from .manifest import ManifestEntry, ManifestSource, ManifestStore

if TYPE_CHECKING:
    from ..api import GitHubClient

logger = logging.getLogger(__name__)


class UpdateOutcome(str, Enum):
    """Result of a non-forced update."""

    UPDATED = "updated"
    """Local content replaced with the remote version"""

    CONFLICT = "conflict"
    """Local edits detected; nothing was changed"""


class AssetOperations:
    """Applies caller-chosen mutations to individual assets."""

    def __init__(
        self,
        client: "GitHubClient",
        manifest: ManifestStore,
        workspace_root: Path,
    ):
        """Initialize asset operations.

        Args:
            client: GitHub API client used to fetch content
            manifest: Loaded manifest store
            workspace_root: Workspace directory
        """
        self.client = client
        self.manifest = manifest
        self.workspace_root = workspace_root

    async def download(self, asset: Asset) -> None:
        """Download an asset and record a fresh manifest entry."""
        await self._install(asset, preserve_installed_at=False)

    async def force_update(self, asset: Asset) -> None:
        """Overwrite local content with the remote version.

        Local edits are discarded. ``installed_at`` of existing entries is
        kept; ``updated_at`` is refreshed.
        """
        await self._install(asset, preserve_installed_at=True)

    async def update(self, asset: Asset) -> UpdateOutcome:
        """Update an asset unless its local content drifted.

        Returns:
            ``UPDATED`` after a successful update, ``CONFLICT`` when local
            edits were found (in which case nothing is touched)
        """
        if self.has_local_changes(asset):
            logger.info(f"Conflict: {asset.local_path} has local changes")
            return UpdateOutcome.CONFLICT
        await self.force_update(asset)
        return UpdateOutcome.UPDATED

    def skip(self, asset: Asset) -> bool:
        """Accept the current remote identity without touching local files.

        Used to keep local edits while silencing the update notice until the
        remote changes again.

        Returns:
            True if a manifest entry was updated, False if the asset has none
        """
        entry = self.manifest.get(asset.manifest_key)
        if entry is None:
            logger.debug(f"Nothing to skip for {asset.local_path}: not installed")
            return False

        self.manifest.set(
            asset.manifest_key,
            replace(entry, remote_sha=asset.remote_sha, updated_at=utc_now_iso()),
        )
        self.manifest.save()
        logger.debug(f"Skipped update of {asset.local_path} at {asset.remote_sha}")
        return True

    def remove(self, asset: Asset) -> None:
        """Delete local files and manifest entries of an asset.

        Files that are already gone are ignored.
        """
        if asset.is_bundle:
            for member in asset.bundle_files:
                local_path = asset.member_local_path(member)
                (self.workspace_root / local_path).unlink(missing_ok=True)
                self.manifest.remove(local_path)
            self.manifest.remove(asset.manifest_key)
            self._prune_empty_dirs(self.workspace_root / asset.local_path)
        else:
            (self.workspace_root / asset.local_path).unlink(missing_ok=True)
            self.manifest.remove(asset.local_path)

        self.manifest.save()
        logger.debug(f"Removed {asset.local_path}")

    def has_local_changes(self, asset: Asset) -> bool:
        """Check whether the local copy differs from the last synced content.

        An asset without a manifest entry or without local files has no
        local changes.
        """
        entry = self.manifest.get(asset.manifest_key)
        if entry is None:
            return False
        if not (self.workspace_root / asset.status_probe_path()).is_file():
            return False
        return self.current_local_hash(asset) != entry.local_content_hash

    def current_local_hash(self, asset: Asset) -> str:
        if asset.is_bundle:
            return combined_local_hash(
                self.workspace_root, asset.local_path, asset.bundle_files
            )
        try:
            return compute_file_hash(self.workspace_root / asset.local_path)
        except OSError:
            return ""

    async def diff(self, asset: Asset) -> str:
        """Unified diff from the local copy to the remote version.

        Returns:
            Diff text; empty when both sides are identical
        """
        if asset.is_bundle:
            pairs = [
                (member, asset.member_local_path(member))
                for member in asset.bundle_files
            ]
        else:
            pairs = [(asset.remote_path, asset.local_path)]

        chunks: list[str] = []
        for remote_path, local_path in sorted(pairs):
            remote = await self._fetch(asset, remote_path)
            remote_text = decode_base64_content(remote.content).decode(
                "utf-8", errors="replace"
            )
            local_file = self.workspace_root / local_path
            local_text = (
                local_file.read_bytes().decode("utf-8", errors="replace")
                if local_file.is_file()
                else ""
            )
            chunks.extend(
                difflib.unified_diff(
                    local_text.splitlines(keepends=True),
                    remote_text.splitlines(keepends=True),
                    fromfile=f"local/{local_path}",
                    tofile=f"remote/{remote_path}",
                )
            )
        return "".join(chunks)

    async def _fetch(self, asset: Asset, remote_path: str) -> RemoteFileContent:
        repo = asset.repo_config
        return await self.client.get_file_content(
            repo.owner, repo.repo, remote_path, repo.branch
        )

    def _new_entry(
        self,
        asset: Asset,
        key: str,
        source_path: str,
        remote_sha: str,
        local_hash: str,
        now: str,
        preserve_installed_at: bool,
    ) -> ManifestEntry:
        existing = self.manifest.get(key) if preserve_installed_at else None
        return ManifestEntry(
            source=ManifestSource.for_repository(asset.repo_config, source_path),
            remote_sha=remote_sha,
            local_content_hash=local_hash,
            installed_at=existing.installed_at if existing else now,
            updated_at=now,
        )

    def _write(self, local_path: str, content: bytes) -> None:
        target = self.workspace_root / local_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def _install(self, asset: Asset, preserve_installed_at: bool) -> None:
        if asset.is_bundle:
            await self._install_bundle(asset, preserve_installed_at)
            return

        remote = await self._fetch(asset, asset.remote_path)
        content = decode_base64_content(remote.content)
        self._write(asset.local_path, content)

        self.manifest.set(
            asset.local_path,
            self._new_entry(
                asset,
                key=asset.local_path,
                source_path=asset.remote_path,
                remote_sha=remote.sha,
                local_hash=compute_hash(content),
                now=utc_now_iso(),
                preserve_installed_at=preserve_installed_at,
            ),
        )
        self.manifest.save()
        logger.debug(f"Downloaded {asset.remote_path} -> {asset.local_path}")

    async def _install_bundle(self, asset: Asset, preserve_installed_at: bool) -> None:
        if not asset.bundle_files:
            return

        # Fetch every member before touching disk or manifest, so a failed
        # fetch leaves no partially installed bundle behind.
        fetched: list[tuple[str, RemoteFileContent, bytes]] = []
        for member in asset.bundle_files:
            remote = await self._fetch(asset, member)
            fetched.append((member, remote, decode_base64_content(remote.content)))

        now = utc_now_iso()
        staged: dict[str, ManifestEntry] = {}
        for member, remote, content in fetched:
            local_path = asset.member_local_path(member)
            self._write(local_path, content)
            staged[local_path] = self._new_entry(
                asset,
                key=local_path,
                source_path=member,
                remote_sha=remote.sha,
                local_hash=compute_hash(content),
                now=now,
                preserve_installed_at=preserve_installed_at,
            )

        synthetic = self._new_entry(
            asset,
            key=asset.manifest_key,
            source_path=asset.remote_path,
            remote_sha=combined_remote_hash(
                RemoteNode(path=m, sha=r.sha) for m, r, _ in fetched
            ),
            local_hash=combined_local_hash(
                self.workspace_root, asset.local_path, asset.bundle_files
            ),
            now=now,
            preserve_installed_at=preserve_installed_at,
        )

        for local_path, entry in staged.items():
            self.manifest.set(local_path, entry)
        self.manifest.set(asset.manifest_key, synthetic)
        self.manifest.save()
        logger.debug(
            f"Downloaded bundle {asset.remote_path} ({len(fetched)} file(s)) "
            f"-> {asset.local_path}"
        )

    def _prune_empty_dirs(self, directory: Path) -> None:
        if not directory.is_dir():
            return
        subdirs = sorted(
            (p for p in directory.rglob("*") if p.is_dir()),
            key=lambda p: len(p.parts),
            reverse=True,
        )
        for child in subdirs:
            if not any(child.iterdir()):
                child.rmdir()
        if not any(directory.iterdir()):
            directory.rmdir()

