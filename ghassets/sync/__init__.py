"""Reconciliation engine for ghassets - one-way sync of remote assets."""

from .comparator import Asset, AssetStatus, StatusReconciler, determine_status
from .engine import SyncEngine, SyncErrorType, SyncResult, UpdateReport, classify_error
from .grouping import BundleCandidate, RegularFile, classify_nodes, group_nodes
from .hashing import (
    MISSING_FILES_HASH,
    combined_local_hash,
    combined_remote_hash,
    compute_file_hash,
    compute_hash,
)
from .manifest import ManifestEntry, ManifestSource, ManifestStore
from .operations import AssetOperations, UpdateOutcome
from .patterns import (
    DestinationMapping,
    DestinationRule,
    is_allowed_extension,
    is_excluded,
    resolve_destination,
)
from .scanner import RemoteScanner
from .tree import AssetTreeNode, TreeNodeType, build_asset_tree

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncErrorType",
    "UpdateReport",
    "classify_error",
    "Asset",
    "AssetStatus",
    "StatusReconciler",
    "determine_status",
    "BundleCandidate",
    "RegularFile",
    "classify_nodes",
    "group_nodes",
    "MISSING_FILES_HASH",
    "compute_hash",
    "compute_file_hash",
    "combined_remote_hash",
    "combined_local_hash",
    "ManifestEntry",
    "ManifestSource",
    "ManifestStore",
    "AssetOperations",
    "UpdateOutcome",
    "DestinationMapping",
    "DestinationRule",
    "is_allowed_extension",
    "is_excluded",
    "resolve_destination",
    "RemoteScanner",
    "AssetTreeNode",
    "TreeNodeType",
    "build_asset_tree",
]
