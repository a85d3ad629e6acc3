"""Persistent provenance records for synchronized files.

The manifest maps each workspace-relative local path to where it came from
and what it looked like when it was last synchronized. It is the baseline
for three-way status derivation, so it is loaded once, held in memory and
rewritten in full after every mutation.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..exceptions import CorruptStateError
from ..models import RepositoryConfig

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"
MANIFEST_FILE_NAME = ".ghassets-manifest.json"


@dataclass(frozen=True)
class ManifestSource:
    """Remote location a local file was downloaded from."""

    owner: str
    repo: str
    branch: str
    path: str

    @classmethod
    def for_repository(
        cls, repo_config: RepositoryConfig, remote_path: str
    ) -> "ManifestSource":
        return cls(
            owner=repo_config.owner,
            repo=repo_config.repo,
            branch=repo_config.branch,
            path=remote_path,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "owner": self.owner,
            "repo": self.repo,
            "branch": self.branch,
            "path": self.path,
        }


@dataclass(frozen=True)
class ManifestEntry:
    """Provenance of exactly one local path."""

    source: ManifestSource
    """Where the content came from"""

    remote_sha: str
    """Remote identity at last sync (combined hash for bundles)"""

    local_content_hash: str
    """Local content hash at last sync (combined hash for bundles)"""

    installed_at: str
    """ISO timestamp of the first download"""

    updated_at: str
    """ISO timestamp of the last download, update or skip"""

    def to_dict(self) -> dict[str, Any]:
        """Convert entry to its on-disk representation."""
        return {
            "source": self.source.to_dict(),
            "remoteSha": self.remote_sha,
            "localContentHash": self.local_content_hash,
            "installedAt": self.installed_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ManifestEntry":
        """Create an entry from its on-disk representation.

        Unknown keys are ignored.

        Raises:
            CorruptStateError: If a required field is missing or malformed
        """
        try:
            source = data["source"]
            entry = cls(
                source=ManifestSource(
                    owner=source["owner"],
                    repo=source["repo"],
                    branch=source["branch"],
                    path=source["path"],
                ),
                remote_sha=data["remoteSha"],
                local_content_hash=data["localContentHash"],
                installed_at=data["installedAt"],
                updated_at=data["updatedAt"],
            )
        except (KeyError, TypeError) as e:
            raise CorruptStateError(f"Invalid manifest entry: {e!r}") from e
        for value in (entry.remote_sha, entry.local_content_hash, entry.source.path):
            if not isinstance(value, str):
                raise CorruptStateError(f"Invalid manifest entry value: {value!r}")
        return entry


class ManifestStore:
    """Owns the manifest file of one workspace.

    Only the asset mutator writes through this store; reconciliation only
    reads. Writers must not overlap calls to :meth:`save`, since each call
    rewrites the whole file.
    """

    def __init__(self, workspace_root: Path, file_name: str = MANIFEST_FILE_NAME):
        """Initialize the store.

        Args:
            workspace_root: Workspace directory holding the manifest file
            file_name: Manifest file name inside the workspace
        """
        self.workspace_root = workspace_root
        self.manifest_file = workspace_root / file_name
        self.version = MANIFEST_VERSION
        self._assets: dict[str, ManifestEntry] = {}
        self._loaded = False

    def load(self) -> None:
        """Load the manifest from disk.

        A missing, unreadable or structurally invalid file resets the store
        to an empty manifest; this method never raises.
        """
        try:
            self.version, self._assets = self._read()
            logger.debug(
                f"Loaded manifest with {len(self._assets)} entries "
                f"from {self.manifest_file}"
            )
        except FileNotFoundError:
            logger.debug(f"No manifest found at {self.manifest_file}")
            self._reset()
        except (OSError, CorruptStateError) as e:
            logger.warning(f"Resetting manifest {self.manifest_file}: {e}")
            self._reset()
        self._loaded = True

    def _reset(self) -> None:
        self.version = MANIFEST_VERSION
        self._assets = {}

    def _read(self) -> tuple[str, dict[str, ManifestEntry]]:
        raw = self.manifest_file.read_bytes()
        try:
            data = json.loads(raw.decode("utf-8"))
        except (ValueError, RecursionError) as e:
            raise CorruptStateError(f"Malformed JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("assets"), dict):
            raise CorruptStateError("Missing 'assets' map")

        assets: dict[str, ManifestEntry] = {}
        for local_path, raw_entry in data["assets"].items():
            try:
                assets[local_path] = ManifestEntry.from_dict(raw_entry)
            except CorruptStateError as e:
                logger.warning(f"Dropping manifest entry {local_path}: {e}")

        version = data.get("version")
        return (version if isinstance(version, str) else MANIFEST_VERSION), assets

    def is_loaded(self) -> bool:
        return self._loaded

    def get(self, local_path: str) -> Optional[ManifestEntry]:
        return self._assets.get(local_path)

    def set(self, local_path: str, entry: ManifestEntry) -> None:
        self._assets[local_path] = entry

    def remove(self, local_path: str) -> None:
        self._assets.pop(local_path, None)

    def has(self, local_path: str) -> bool:
        return local_path in self._assets

    def get_all(self) -> dict[str, ManifestEntry]:
        """Return a copy of all entries.

        Entries are immutable, so a shallow copy of the mapping is enough to
        keep callers from altering the store.
        """
        return dict(self._assets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "assets": {
                path: self._assets[path].to_dict() for path in sorted(self._assets)
            },
        }

    def save(self) -> None:
        """Write the manifest atomically.

        The file is pretty-printed with sorted keys and a trailing newline,
        written to a temporary file in the workspace and then moved over the
        manifest.

        Raises:
            OSError: If the manifest cannot be written
        """
        content = json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        self.workspace_root.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.manifest_file.name}.", dir=self.workspace_root
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, self.manifest_file)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Saved manifest with {len(self._assets)} entries")
