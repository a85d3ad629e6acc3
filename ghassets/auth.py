"""Token resolution for GitHub API access."""

import logging
import os
import subprocess
from typing import Callable, Mapping, Optional
from urllib.parse import urlparse

from .config import TOKEN_ENV_VARS
from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

SIGN_IN_MESSAGE = (
    "GitHub authentication is required. Set GITHUB_TOKEN, pass --token, "
    "or sign in with 'gh auth login'."
)


class TokenProvider:
    """Resolves a GitHub token from the available sources.

    Sources are tried in order: an explicit token, environment variables
    (``GHASSETS_TOKEN``, ``GITHUB_TOKEN``, ``GH_TOKEN``), the GitHub CLI
    (``gh auth token``) and finally an interactive prompt. The prompt is
    never used for silent requests, so background checks fail with
    :class:`AuthenticationError` instead of blocking on input.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        enterprise_url: str = "",
        environ: Optional[Mapping[str, str]] = None,
        use_gh_cli: bool = True,
        prompt: Optional[Callable[[], str]] = None,
    ):
        """Initialize the token provider.

        Args:
            token: Explicit token (command line or configuration)
            enterprise_url: GitHub Enterprise URL, used as ``gh`` hostname
            environ: Environment mapping (defaults to ``os.environ``)
            use_gh_cli: Whether to ask the GitHub CLI for a token
            prompt: Callable asking the user for a token interactively
        """
        self._explicit = token
        self.enterprise_url = enterprise_url
        self.environ = os.environ if environ is None else environ
        self.use_gh_cli = use_gh_cli
        self.prompt = prompt
        self._cached: Optional[str] = None

    def get_token(self, silent: bool = False) -> str:
        """Return a token, resolving and caching it on first use.

        Args:
            silent: Never prompt interactively

        Raises:
            AuthenticationError: If no token is available
        """
        if self._cached:
            return self._cached

        token = self._explicit or self._from_environment() or self._from_gh_cli()
        if not token and not silent and self.prompt is not None:
            token = self.prompt().strip()
        if not token:
            raise AuthenticationError(SIGN_IN_MESSAGE, status_code=401)

        self._cached = token
        return token

    def invalidate(self) -> None:
        """Forget the cached token after the server rejected it."""
        self._cached = None

    def _from_environment(self) -> Optional[str]:
        for name in TOKEN_ENV_VARS:
            value = self.environ.get(name, "").strip()
            if value:
                logger.debug(f"Using token from ${name}")
                return value
        return None

    def _from_gh_cli(self) -> Optional[str]:
        if not self.use_gh_cli:
            return None
        command = ["gh", "auth", "token"]
        if self.enterprise_url:
            hostname = urlparse(self.enterprise_url).netloc or self.enterprise_url
            command.extend(["--hostname", hostname])
        try:
            completed = subprocess.run(
                command, capture_output=True, text=True, timeout=10, check=True
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"GitHub CLI token unavailable: {e}")
            return None
        token = completed.stdout.strip()
        if token:
            logger.debug("Using token from GitHub CLI")
        return token or None
