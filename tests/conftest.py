"""Shared fixtures for ghassets tests."""

import asyncio
import base64
import hashlib
from pathlib import Path
from typing import Optional, Union
from unittest.mock import AsyncMock

import pytest

from ghassets.api import GitHubClient
from ghassets.models import RemoteFileContent, RemoteNode, RemoteTree, RepositoryConfig


def blob_sha(content: bytes) -> str:
    """Git-style blob sha of content."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


class FakeGitHub:
    """In-memory stand-in for the repositories behind a GitHubClient.

    ``repos`` maps ``owner/repo`` to either a ``{path: content}`` dict or an
    exception raised by every request for that repository. Tests mutate it
    between syncs to simulate remote changes.
    """

    def __init__(self):
        self.repos: dict[str, Union[dict[str, bytes], Exception]] = {}
        self.fail_paths: dict[str, Exception] = {}
        self.client = AsyncMock(spec=GitHubClient)
        self.client.get_tree.side_effect = self._get_tree
        self.client.get_file_content.side_effect = self._get_file_content

    def add_repo(
        self, repo_id: str, files: Optional[dict[str, bytes]] = None
    ) -> RepositoryConfig:
        owner, repo = repo_id.split("/")
        self.repos[repo_id] = dict(files or {})
        return RepositoryConfig.from_dict({"owner": owner, "repo": repo})

    def files(self, repo_id: str) -> dict[str, bytes]:
        files = self.repos[repo_id]
        assert isinstance(files, dict)
        return files

    async def _get_tree(self, owner, repo, branch, silent=False):
        await asyncio.sleep(0)
        files = self.repos[f"{owner}/{repo}"]
        if isinstance(files, Exception):
            raise files
        return RemoteTree(
            sha="root",
            tree=[
                RemoteNode(path=path, sha=blob_sha(content), size=len(content))
                for path, content in files.items()
            ],
        )

    async def _get_file_content(self, owner, repo, path, branch):
        if path in self.fail_paths:
            raise self.fail_paths[path]
        content = self.files(f"{owner}/{repo}")[path]
        return RemoteFileContent(
            path=path,
            sha=blob_sha(content),
            content=base64.encodebytes(content).decode("ascii"),
            name=path.rsplit("/", 1)[-1],
            size=len(content),
        )


@pytest.fixture
def github():
    """Provide a fake GitHub backend with a mocked client."""
    return FakeGitHub()


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Provide an empty workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root
