"""Sync engine orchestrating reconciliation across repositories."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Sequence

from ..exceptions import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RemoteAPIError,
)
from ..models import RepositoryConfig
from .comparator import Asset, AssetStatus, StatusReconciler
from .manifest import ManifestStore
from .operations import AssetOperations, UpdateOutcome
from .scanner import RemoteScanner
from .tree import AssetTreeNode, build_asset_tree

if TYPE_CHECKING:
    from ..api import GitHubClient
    from ..config import Settings

logger = logging.getLogger(__name__)


class SyncErrorType(str, Enum):
    """Classification of a failed repository sync."""

    AUTH = "auth"
    NOT_FOUND = "not-found"
    RATE_LIMIT = "rate-limit"
    NETWORK = "network"
    UNKNOWN = "unknown"


@dataclass
class SyncResult:
    """Outcome of reconciling one repository."""

    repo_config: RepositoryConfig
    assets: list[Asset] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[SyncErrorType] = None
    reset_at: Optional[datetime] = None
    """When a rate-limited repository can be retried"""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class UpdateReport:
    """Outcome of updating several assets."""

    updated: list[Asset] = field(default_factory=list)
    conflicts: list[Asset] = field(default_factory=list)


def classify_error(error: BaseException) -> SyncErrorType:
    """Map an exception raised during a repository sync to an error type."""
    if isinstance(error, AuthenticationError):
        return SyncErrorType.AUTH
    if isinstance(error, NotFoundError):
        return SyncErrorType.NOT_FOUND
    if isinstance(error, RateLimitError):
        return SyncErrorType.RATE_LIMIT
    if isinstance(error, RemoteAPIError):
        return SyncErrorType.NETWORK
    return SyncErrorType.UNKNOWN


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _failed_result(repo_config: RepositoryConfig, error: BaseException) -> SyncResult:
    return SyncResult(
        repo_config=repo_config,
        error=_error_message(error),
        error_type=classify_error(error),
        reset_at=error.reset_at if isinstance(error, RateLimitError) else None,
    )


SyncListener = Callable[[list[SyncResult]], None]


class SyncEngine:
    """Reconciles all configured repositories and applies asset mutations.

    Examples:
        >>> engine = SyncEngine(client, settings, Path("."))
        >>> results = await engine.sync()
        >>> print(f"{engine.get_update_count()} updates available")
    """

    def __init__(
        self,
        client: "GitHubClient",
        settings: "Settings",
        workspace_root: Path,
        manifest: Optional[ManifestStore] = None,
    ):
        """Initialize the sync engine.

        Args:
            client: GitHub API client
            settings: Workspace settings (repositories and filters)
            workspace_root: Workspace directory
            manifest: Manifest store (defaults to the workspace manifest)
        """
        self.client = client
        self.settings = settings
        self.workspace_root = workspace_root
        self.manifest = manifest or ManifestStore(workspace_root)
        self.scanner = RemoteScanner(
            client,
            max_depth=settings.max_depth,
            exclude_patterns=settings.exclude_patterns,
        )
        self.reconciler = StatusReconciler(
            self.manifest,
            workspace_root,
            destination=settings.destination,
            extensions=settings.file_extensions,
        )
        self.operations = AssetOperations(client, self.manifest, workspace_root)

        self._syncing = False
        self._results: list[SyncResult] = []
        self._listeners: list[SyncListener] = []

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def results(self) -> list[SyncResult]:
        """Results of the last completed sync."""
        return list(self._results)

    def on_sync(self, listener: SyncListener) -> None:
        """Register a callback invoked with the results of every sync."""
        self._listeners.append(listener)

    async def sync(self, silent: bool = False) -> list[SyncResult]:
        """Reconcile every configured repository concurrently.

        A call made while another sync is running returns the previous
        results immediately without waiting. A failing repository is
        reported in its SyncResult and never affects the others.

        Args:
            silent: Background check; never prompt for credentials

        Returns:
            One SyncResult per configured repository, in configuration order
        """
        if self._syncing:
            logger.debug("Sync already in progress, returning previous results")
            return self._results
        self._syncing = True

        try:
            if not self.manifest.is_loaded():
                self.manifest.load()

            repositories = list(self.settings.repositories)
            outcomes = await asyncio.gather(
                *(self._sync_repository(repo, silent) for repo in repositories),
                return_exceptions=True,
            )

            results: list[SyncResult] = []
            for repo_config, outcome in zip(repositories, outcomes):
                if isinstance(outcome, BaseException):
                    results.append(_failed_result(repo_config, outcome))
                else:
                    results.append(outcome)

            self._results = results
            logger.debug(
                f"Synced {len(results)} repositories, "
                f"{sum(1 for r in results if not r.ok)} failed"
            )
            for listener in self._listeners:
                listener(results)
            return results
        finally:
            self._syncing = False

    async def _sync_repository(
        self, repo_config: RepositoryConfig, silent: bool
    ) -> SyncResult:
        try:
            nodes = await self.scanner.fetch_remote_tree(repo_config, silent=silent)
            assets = self.reconciler.compute_statuses(repo_config, nodes)
        except Exception as e:
            logger.warning(f"Sync failed for {repo_config.repo_id}: {e}")
            return _failed_result(repo_config, e)
        return SyncResult(repo_config=repo_config, assets=assets)

    def get_all_assets(self) -> list[Asset]:
        return [asset for result in self._results for asset in result.assets]

    def count_by_status(self, status: AssetStatus) -> int:
        return len(self.collect_by_status(status))

    def collect_by_status(self, status: AssetStatus) -> list[Asset]:
        return [asset for asset in self.get_all_assets() if asset.status == status]

    def get_update_count(self) -> int:
        """Number of assets with a pending remote change."""
        return sum(1 for asset in self.get_all_assets() if asset.status.has_update)

    def build_tree(self) -> list[AssetTreeNode]:
        return build_asset_tree(
            self._results, has_repositories=bool(self.settings.repositories)
        )

    def find_asset(self, path: str) -> Optional[Asset]:
        """Find an asset of the last sync by remote or local path."""
        normalized = path.replace("\\", "/")
        if normalized.startswith("./"):
            normalized = normalized[2:]
        normalized = normalized.strip("/")
        for asset in self.get_all_assets():
            if normalized in (asset.remote_path, asset.local_path):
                return asset
        return None

    # Mutations re-run reconciliation afterwards so results stay current.

    async def download(self, asset: Asset) -> None:
        await self.operations.download(asset)
        await self.sync()

    async def force_update(self, asset: Asset) -> None:
        await self.operations.force_update(asset)
        await self.sync()

    async def update(self, asset: Asset) -> UpdateOutcome:
        outcome = await self.operations.update(asset)
        if outcome == UpdateOutcome.UPDATED:
            await self.sync()
        return outcome

    async def skip(self, asset: Asset) -> bool:
        skipped = self.operations.skip(asset)
        await self.sync()
        return skipped

    async def remove(self, asset: Asset) -> None:
        self.operations.remove(asset)
        await self.sync()

    def _select(
        self, statuses: Sequence[AssetStatus], repo_config: Optional[RepositoryConfig]
    ) -> list[Asset]:
        return [
            asset
            for asset in self.get_all_assets()
            if asset.status in statuses
            and (
                repo_config is None
                or asset.repo_config.repo_id == repo_config.repo_id
            )
        ]

    async def download_all(
        self, repo_config: Optional[RepositoryConfig] = None
    ) -> list[Asset]:
        """Download every not-installed asset, one after another.

        Args:
            repo_config: Limit to one repository

        Returns:
            Downloaded assets
        """
        targets = self._select([AssetStatus.NOT_INSTALLED], repo_config)
        for asset in targets:
            await self.operations.download(asset)
        if targets:
            await self.sync()
        return targets

    async def update_all(
        self, repo_config: Optional[RepositoryConfig] = None, force: bool = False
    ) -> UpdateReport:
        """Update every asset with a pending remote change, one after another.

        Args:
            repo_config: Limit to one repository
            force: Overwrite local edits instead of reporting conflicts

        Returns:
            UpdateReport listing updated and conflicting assets
        """
        report = UpdateReport()
        targets = self._select(
            [AssetStatus.UPDATE_AVAILABLE, AssetStatus.LOCALLY_MODIFIED], repo_config
        )
        for asset in targets:
            if force:
                await self.operations.force_update(asset)
                report.updated.append(asset)
            elif await self.operations.update(asset) == UpdateOutcome.UPDATED:
                report.updated.append(asset)
            else:
                report.conflicts.append(asset)
        if report.updated:
            await self.sync()
        return report
