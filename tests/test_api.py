"""Unit tests for the GitHub API client."""

import asyncio
import base64
import threading
from unittest.mock import Mock

import httpx
import pytest

from ghassets.api import GitHubClient
from ghassets.auth import TokenProvider
from ghassets.exceptions import (
    AuthenticationError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteAPIError,
)

TREE_RESPONSE = {
    "sha": "root",
    "truncated": False,
    "tree": [
        {"path": "agents", "type": "tree", "sha": "t1"},
        {"path": "agents/a.md", "type": "blob", "sha": "b1", "size": 5},
    ],
}


def file_response(path, content):
    return {
        "path": path,
        "name": path.rsplit("/", 1)[-1],
        "sha": "b1",
        "size": len(content),
        "encoding": "base64",
        "content": base64.encodebytes(content).decode("ascii"),
        "html_url": f"https://github.com/org/assets/blob/main/{path}",
    }


class Recorder:
    """MockTransport handler replaying a list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request):
        self.requests.append(request)
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler, token_provider=None, **kwargs):
    provider = token_provider or TokenProvider(token="secret", use_gh_cli=False)
    return GitHubClient(
        provider,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestGitHubClientRequests:
    """Tests for successful requests."""

    async def test_get_tree(self):
        """Test tree listing request and parsing."""
        handler = Recorder(httpx.Response(200, json=TREE_RESPONSE))
        client = make_client(handler)

        tree = await client.get_tree("org", "assets", "main")
        await client.aclose()

        (request,) = handler.requests
        assert request.url.path == "/repos/org/assets/git/trees/main"
        assert request.url.params["recursive"] == "1"
        assert request.headers["Authorization"] == "token secret"
        assert request.headers["Accept"] == "application/vnd.github.v3+json"
        assert [n.path for n in tree.tree] == ["agents", "agents/a.md"]
        assert tree.tree[1].is_blob
        assert not tree.truncated

    async def test_get_file_content(self):
        """Test file content request with an encoded path."""
        handler = Recorder(
            httpx.Response(200, json=file_response("my agents/a.md", b"hello"))
        )
        client = make_client(handler)

        content = await client.get_file_content(
            "org", "assets", "my agents/a.md", "dev"
        )

        (request,) = handler.requests
        assert request.url.raw_path.startswith(
            b"/repos/org/assets/contents/my%20agents/a.md"
        )
        assert request.url.params["ref"] == "dev"
        assert content.sha == "b1"
        assert base64.b64decode(content.content) == b"hello"

    async def test_enterprise_api_url(self):
        """Test requests go to a custom API root."""
        handler = Recorder(httpx.Response(200, json=TREE_RESPONSE))
        client = make_client(handler, api_url="https://ghe.example.com/api/v3/")

        await client.get_tree("org", "assets", "main")

        (request,) = handler.requests
        assert str(request.url).startswith(
            "https://ghe.example.com/api/v3/repos/org/assets/git/trees/main"
        )

    async def test_silent_token_lookup(self):
        """Test the silent flag reaches the token provider."""
        provider = Mock()
        provider.get_token.return_value = "secret"
        client = make_client(
            Recorder(httpx.Response(200, json=TREE_RESPONSE)), token_provider=provider
        )

        await client.get_tree("org", "assets", "main", silent=True)

        provider.get_token.assert_called_once_with(silent=True)

    async def test_token_resolved_off_event_loop(self):
        """Test token lookups run in a worker thread, one at a time."""
        loop_thread = threading.get_ident()
        lookup_threads = []

        def get_token(silent=False):
            lookup_threads.append(threading.get_ident())
            return "secret"

        provider = Mock()
        provider.get_token.side_effect = get_token
        client = make_client(
            Recorder(httpx.Response(200, json=TREE_RESPONSE)), token_provider=provider
        )

        await asyncio.gather(
            client.get_tree("org", "assets", "main"),
            client.get_tree("org", "skills", "main"),
        )

        assert len(lookup_threads) == 2
        assert loop_thread not in lookup_threads

    async def test_context_manager_closes_client(self):
        """Test the async context manager releases the http client."""
        async with make_client(Recorder(httpx.Response(200, json=TREE_RESPONSE))) as c:
            await c.get_tree("org", "assets", "main")
            http_client = c._client
        assert http_client.is_closed


class TestGitHubClientErrors:
    """Tests for status code mapping and retries."""

    async def test_not_found(self):
        """Test 404 raises NotFoundError without retrying."""
        handler = Recorder(httpx.Response(404, json={"message": "Not Found"}))
        client = make_client(handler)

        with pytest.raises(NotFoundError) as exc_info:
            await client.get_tree("org", "missing", "main")

        assert exc_info.value.status_code == 404
        assert len(handler.requests) == 1

    async def test_unauthorized_invalidates_token(self):
        """Test 401 raises AuthenticationError and drops the cached token."""
        provider = Mock()
        provider.get_token.return_value = "expired"
        client = make_client(
            Recorder(httpx.Response(401, json={"message": "Bad credentials"})),
            token_provider=provider,
        )

        with pytest.raises(AuthenticationError):
            await client.get_tree("org", "assets", "main")

        provider.invalidate.assert_called_once()

    async def test_rate_limited(self):
        """Test 403 with exhausted quota raises RateLimitError."""
        handler = Recorder(
            httpx.Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={
                    "x-ratelimit-limit": "60",
                    "x-ratelimit-remaining": "0",
                    "x-ratelimit-reset": "1900000000",
                },
            )
        )
        client = make_client(handler)

        with pytest.raises(RateLimitError) as exc_info:
            await client.get_tree("org", "assets", "main")

        assert exc_info.value.rate_limit.remaining == 0
        assert exc_info.value.reset_at is not None
        assert len(handler.requests) == 1

    async def test_too_many_requests(self):
        """Test 429 raises RateLimitError."""
        client = make_client(Recorder(httpx.Response(429)))
        with pytest.raises(RateLimitError):
            await client.get_tree("org", "assets", "main")

    async def test_forbidden(self):
        """Test 403 with remaining quota raises PermissionDeniedError."""
        handler = Recorder(
            httpx.Response(
                403,
                headers={
                    "x-ratelimit-limit": "5000",
                    "x-ratelimit-remaining": "4999",
                    "x-ratelimit-reset": "1900000000",
                },
            )
        )
        client = make_client(handler)

        with pytest.raises(PermissionDeniedError):
            await client.get_tree("org", "private", "main")

    async def test_server_error_retried(self):
        """Test 5xx responses are retried until success."""
        handler = Recorder(
            httpx.Response(502),
            httpx.Response(503),
            httpx.Response(200, json=TREE_RESPONSE),
        )
        client = make_client(handler)

        tree = await client.get_tree("org", "assets", "main")

        assert len(tree.tree) == 2
        assert len(handler.requests) == 3

    async def test_server_error_exhausts_retries(self):
        """Test persistent 5xx raises RemoteAPIError after all attempts."""
        handler = Recorder(httpx.Response(500, json={"message": "oops"}))
        client = make_client(handler, max_retries=2)

        with pytest.raises(RemoteAPIError, match="oops") as exc_info:
            await client.get_tree("org", "assets", "main")

        assert exc_info.value.status_code == 500
        assert len(handler.requests) == 3

    async def test_network_error(self):
        """Test transport failures raise NetworkError after retries."""
        handler = Recorder(httpx.ConnectError("connection refused"))
        client = make_client(handler, max_retries=1)

        with pytest.raises(NetworkError):
            await client.get_tree("org", "assets", "main")

        assert len(handler.requests) == 2

    async def test_invalid_json(self):
        """Test non-JSON success bodies raise InvalidResponseError."""
        client = make_client(Recorder(httpx.Response(200, text="<html>")))
        with pytest.raises(InvalidResponseError):
            await client.get_tree("org", "assets", "main")

    async def test_malformed_payload(self):
        """Test payloads failing validation raise InvalidResponseError."""
        client = make_client(Recorder(httpx.Response(200, json={"sha": "x"})))
        with pytest.raises(InvalidResponseError):
            await client.get_tree("org", "assets", "main")

    async def test_directory_instead_of_file(self):
        """Test a directory listing is rejected as file content."""
        client = make_client(Recorder(httpx.Response(200, json=[])))
        with pytest.raises(InvalidResponseError):
            await client.get_file_content("org", "assets", "agents", "main")


class TestRetryPolicy:
    """Tests for retry helpers."""

    def test_should_retry(self):
        """Test which errors are retried."""
        client = make_client(Recorder(httpx.Response(200)), max_retries=3)

        assert client._should_retry(NetworkError("x"), 0)
        assert client._should_retry(RemoteAPIError("x", 503), 2)
        assert not client._should_retry(RemoteAPIError("x", 503), 3)
        assert not client._should_retry(NotFoundError("x", 404), 0)
        assert not client._should_retry(RateLimitError("x", 429), 0)
        assert not client._should_retry(AuthenticationError("x", 401), 0)

    def test_retry_delay_backoff(self):
        """Test exponential backoff with bounded jitter."""
        client = GitHubClient(TokenProvider(token="t", use_gh_cli=False))

        for attempt in range(4):
            base = client.retry_delay * 2**attempt
            delay = client._calculate_retry_delay(attempt)
            assert 0.75 * base <= delay <= 1.25 * base
