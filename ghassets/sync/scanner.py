"""Remote tree scanning for sync operations."""

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from ..models import RemoteNode, RepositoryConfig
from .patterns import is_excluded

if TYPE_CHECKING:
    from ..api import GitHubClient

logger = logging.getLogger(__name__)


def node_depth(path: str, base_path: str) -> int:
    """Number of directories between ``base_path`` and the node.

    Examples:
        >>> node_depth("agents/a.md", "")
        1
        >>> node_depth("agents/a.md", "agents")
        0
    """
    relative = path[len(base_path) + 1 :] if base_path else path
    return relative.count("/")


def is_in_scope(path: str, base_path: str) -> bool:
    """Check whether a node lies under the repository's configured root."""
    if not base_path:
        return True
    return path == base_path or path.startswith(base_path + "/")


class RemoteScanner:
    """Lists and filters the remote files of configured repositories.

    Examples:
        >>> scanner = RemoteScanner(client, max_depth=3, exclude_patterns=["drafts"])
        >>> nodes = await scanner.fetch_remote_tree(repo_config)
    """

    def __init__(
        self,
        client: "GitHubClient",
        max_depth: int = 3,
        exclude_patterns: Optional[Sequence[str]] = None,
    ):
        """Initialize the scanner.

        Args:
            client: GitHub API client
            max_depth: Maximum directory depth below the repository root path
            exclude_patterns: Glob patterns of remote paths to ignore
        """
        self.client = client
        self.max_depth = max_depth
        self.exclude_patterns = list(exclude_patterns or [])

    def filter_nodes(
        self, repo_config: RepositoryConfig, nodes: Sequence[RemoteNode]
    ) -> list[RemoteNode]:
        """Keep blobs inside the root path, depth limit and exclude patterns."""
        base_path = repo_config.path
        result: list[RemoteNode] = []

        for node in nodes:
            if not node.is_blob:
                continue
            if not is_in_scope(node.path, base_path):
                continue
            if node_depth(node.path, base_path) > self.max_depth:
                continue
            if is_excluded(node.path, self.exclude_patterns):
                logger.debug(f"Excluded: {node.path}")
                continue
            result.append(node)

        return result

    async def fetch_remote_tree(
        self, repo_config: RepositoryConfig, silent: bool = False
    ) -> list[RemoteNode]:
        """Fetch the recursive tree of a repository and filter it.

        Args:
            repo_config: Repository to list
            silent: Never prompt for credentials (background checks)

        Returns:
            Filtered blob nodes
        """
        tree = await self.client.get_tree(
            repo_config.owner, repo_config.repo, repo_config.branch, silent=silent
        )
        if tree.truncated:
            logger.warning(
                f"Tree listing for {repo_config.repo_id}@{repo_config.branch} "
                "was truncated; some files may be missing"
            )
        nodes = self.filter_nodes(repo_config, tree.tree)
        logger.debug(
            f"{repo_config.repo_id}: {len(nodes)} of {len(tree.tree)} node(s) in scope"
        )
        return nodes
