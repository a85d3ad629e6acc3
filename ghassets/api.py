"""Async API client for the GitHub REST API."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    AuthenticationError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteAPIError,
)
from .models import RateLimitInfo, RemoteFileContent, RemoteTree
from .utils import (
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    USER_AGENT,
    encode_path,
)

if TYPE_CHECKING:
    from .auth import TokenProvider


class GitHubClient:
    """Client for the parts of the GitHub API used by the sync engine.

    Examples:
        >>> async with GitHubClient(TokenProvider()) as client:
        ...     tree = await client.get_tree("org", "assets", "main")
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        api_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the GitHub API client.

        Args:
            token_provider: Source of the access token
            api_url: API root (``https://api.github.com`` by default)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.token_provider = token_provider
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token_lock: asyncio.Lock | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Accept": "application/vnd.github.v3+json",
                    "User-Agent": USER_AGENT,
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get_token(self, silent: bool) -> str:
        """Resolve the access token in a worker thread.

        Lookups may run the gh CLI or prompt, so they stay off the event loop.
        Concurrent requests wait for the first lookup and then hit the
        provider's cache.
        """
        if self._token_lock is None:
            self._token_lock = asyncio.Lock()
        async with self._token_lock:
            return await asyncio.to_thread(self.token_provider.get_token, silent=silent)

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Only transient failures are retried: network errors and 5xx server
        errors. Rate limits are not retried since the quota resets only
        after the reset time reported by the server.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        if isinstance(exception, NetworkError):
            return True
        if isinstance(exception, RemoteAPIError) and exception.status_code:
            return 500 <= exception.status_code < 600
        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return max(0.0, base_delay + jitter)

    def _error_from_response(
        self, response: httpx.Response, path: str
    ) -> RemoteAPIError:
        """Translate an error response into a typed exception.

        Args:
            response: Non-successful HTTP response
            path: Requested endpoint, for messages

        Returns:
            Exception to raise
        """
        status_code = response.status_code
        rate_limit = RateLimitInfo.from_headers(response.headers)

        if status_code == 401:
            return AuthenticationError(
                "Authentication failed. Please re-authenticate with GitHub.",
                status_code,
                rate_limit,
            )
        if status_code == 429 or (
            status_code == 403 and rate_limit is not None and rate_limit.exhausted
        ):
            message = "GitHub API rate limit exceeded."
            if rate_limit is not None:
                message += f" Resets at {rate_limit.reset_at:%H:%M:%S}."
            return RateLimitError(message, status_code, rate_limit)
        if status_code == 403:
            return PermissionDeniedError(
                "Access forbidden. Check your token permissions.",
                status_code,
                rate_limit,
            )
        if status_code == 404:
            return NotFoundError(
                f"Repository or path not found: {path}", status_code, rate_limit
            )

        error_msg = f"GitHub API error ({status_code})"
        try:
            error_data = response.json()
            if isinstance(error_data, dict) and error_data.get("message"):
                error_msg = f"{error_msg}: {error_data['message']}"
        except ValueError:
            if response.text:
                error_msg = f"{error_msg}: {response.text[:200]}"
        return RemoteAPIError(error_msg, status_code, rate_limit)

    async def _request(
        self, method: str, path: str, silent: bool = False, **kwargs: Any
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            path: API endpoint path
            silent: Never prompt for credentials
            **kwargs: Additional arguments passed to httpx

        Returns:
            Parsed JSON response

        Raises:
            RemoteAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{path.lstrip('/')}"
        token = await self._get_token(silent)
        headers = {"Authorization": f"token {token}"}
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
            except httpx.RequestError as e:
                error: RemoteAPIError = NetworkError(f"Network error: {e}")
                if self._should_retry(error, attempt):
                    await asyncio.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise InvalidResponseError(
                        f"Invalid JSON response from {path}", response.status_code
                    ) from e

            error = self._error_from_response(response, path)
            if isinstance(error, AuthenticationError):
                self.token_provider.invalidate()
            if self._should_retry(error, attempt):
                await asyncio.sleep(self._calculate_retry_delay(attempt))
                continue
            raise error

        raise RemoteAPIError("Request failed after all retry attempts")

    async def get_tree(
        self, owner: str, repo: str, branch: str, silent: bool = False
    ) -> RemoteTree:
        """List a repository tree recursively.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Branch, tag or commit sha
            silent: Never prompt for credentials

        Returns:
            Parsed RemoteTree
        """
        path = (
            f"/repos/{encode_path(owner)}/{encode_path(repo)}"
            f"/git/trees/{encode_path(branch)}"
        )
        data = await self._request(
            "GET", path, silent=silent, params={"recursive": "1"}
        )
        return RemoteTree.from_api_response(data)

    async def get_file_content(
        self, owner: str, repo: str, path: str, branch: str
    ) -> RemoteFileContent:
        """Fetch the content of one file.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path inside the repository
            branch: Branch, tag or commit sha

        Returns:
            Parsed RemoteFileContent (base64 encoded)
        """
        endpoint = (
            f"/repos/{encode_path(owner)}/{encode_path(repo)}"
            f"/contents/{encode_path(path)}"
        )
        data = await self._request("GET", endpoint, params={"ref": branch})
        return RemoteFileContent.from_api_response(data)
