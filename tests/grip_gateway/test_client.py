"""
Unit tests for GatewayClient.

Tests cover:
- Client initialization with various configurations
- Low-level _fetch behaviour and exception mapping
- Credential attachment
- Envelope unwrapping and failure classification
- Session invalidation on 401
- Context manager usage
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch
import httpx

from grip_gateway import (
    ErrorKind,
    GatewayClient,
    MemoryCredentialStore,
    RequestEnvelope,
    RetryPolicy,
)
from grip_gateway.client import (
    GENERIC_ERROR_MESSAGE,
    INVALID_RESPONSE_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    TIMEOUT_ERROR_MESSAGE,
)
from grip_gateway.exceptions import (
    ConfigurationError,
    GatewayError,
    HTTPError,
    NetworkError,
)


BASE_URL = "https://api.test.com/api"


def _client(credential: str | None = None, **kwargs) -> GatewayClient:
    return GatewayClient(MemoryCredentialStore(credential), base_url=BASE_URL, **kwargs)


def _response(status: int, json=None, content: bytes | None = None) -> httpx.Response:
    request = httpx.Request("GET", BASE_URL)
    if content is not None:
        return httpx.Response(status, content=content, request=request)
    return httpx.Response(status, json=json, request=request)


class TestGatewayClientInitialization:
    """Tests for GatewayClient initialization."""

    def test_init_with_defaults(self):
        """Test client initialization with default values."""
        client = GatewayClient(MemoryCredentialStore())

        assert client.base_url == "http://localhost:3001/api"
        assert client.proxy is None
        assert client.retry_policy is None
        assert isinstance(client.client, httpx.AsyncClient)
        assert client.client.headers["Accept"] == "application/json"
        assert client.client.headers["Content-Type"] == "application/json"
        assert "GripSession" in client.client.headers["User-Agent"]

    def test_init_strips_trailing_slash(self):
        """Test base URL trailing slash is removed."""
        client = GatewayClient(MemoryCredentialStore(), base_url="https://api.test.com/api/")

        assert client.base_url == "https://api.test.com/api"

    def test_init_with_proxy(self):
        """Test client initialization with proxy."""
        client = _client(proxy="proxy.example.com:8080")

        assert client.proxy == "proxy.example.com:8080"

    def test_init_with_proxy_invalid(self):
        """Test client initialization with invalid proxy."""
        with pytest.raises(ConfigurationError):
            _client(proxy=1)  # type: ignore

    def test_init_with_custom_timeout(self):
        """Test client initialization with custom timeout."""
        client = _client(timeout=30.0)

        assert client.client.timeout.read == 30.0

    def test_no_authorization_header_on_shared_client(self):
        """The credential is attached per call, never to the shared client."""
        client = _client("secret")

        assert "Authorization" not in client.client.headers

    def test_session_invalidated_signal_created(self):
        client = _client()

        assert client.session_invalidated.name == "session_invalidated"
        assert len(client.session_invalidated) == 0


class TestGatewayClientFetchMethod:
    """Tests for the _fetch method."""

    @pytest.mark.asyncio
    async def test_fetch_get_success(self):
        """Test successful GET request."""
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(200, {"success": True, "data": {"id": 1}})

            result = await client._fetch("GET", "/auth/profile")

            assert result == {"success": True, "data": {"id": 1}}
            mock_request.assert_called_once_with(
                "GET",
                "https://api.test.com/api/auth/profile",
                params=None,
                json=None,
                headers=None,
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_post_with_payload(self):
        """Test POST request with payload."""
        client = _client()
        payload = {"email": "a@b.com", "password": "pw"}

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(201, {"success": True})

            await client._fetch("POST", "/auth/login", payload=payload)

            mock_request.assert_called_once_with(
                "POST",
                "https://api.test.com/api/auth/login",
                params=None,
                json=payload,
                headers=None,
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_empty_body_returns_none(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(204, content=b"")

            assert await client._fetch("DELETE", "/thing") is None

        await client.close()

    @pytest.mark.asyncio
    async def test_fetch_non_json_body_returns_text(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(200, content=b"<html>ok</html>")

            assert await client._fetch("GET", "/") == "<html>ok</html>"

        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_on_404(self):
        """Test HTTPError raised on 404 response."""
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(404, {"success": False, "message": "Not found"})

            with pytest.raises(HTTPError) as exc_info:
                await client._fetch("GET", "/missing")

            assert exc_info.value.status_code == 404
            assert exc_info.value.response_body == {"success": False, "message": "Not found"}
            assert "404" in exc_info.value.message

        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_raises_network_error(self):
        """Test timeout exception handling."""
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ReadTimeout("Request timeout")

            with pytest.raises(NetworkError) as exc_info:
                await client._fetch("GET", "/slow")

            assert exc_info.value.timed_out is True

        await client.close()

    @pytest.mark.asyncio
    async def test_connect_error_raises_network_error(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ConnectError("Connection refused")

            with pytest.raises(NetworkError) as exc_info:
                await client._fetch("GET", "/")

            assert exc_info.value.timed_out is False

        await client.close()

    @pytest.mark.asyncio
    async def test_proxy_error_raises_network_error(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ProxyError("Proxy refused")

            with pytest.raises(NetworkError) as exc_info:
                await client._fetch("GET", "/")

            assert "Proxy" in exc_info.value.message

        await client.close()

    @pytest.mark.asyncio
    async def test_unexpected_error_raises_gateway_error(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = RuntimeError("boom")

            with pytest.raises(GatewayError) as exc_info:
                await client._fetch("GET", "/")

            assert not isinstance(exc_info.value, NetworkError)

        await client.close()


class TestGatewayClientCredentials:
    """Tests for bearer credential attachment."""

    @pytest.mark.asyncio
    async def test_bearer_attached_when_present(self):
        client = _client("tok-1")

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": True, "data": {}}

            await client.get("/auth/profile")

            mock_fetch.assert_called_once_with(
                "GET",
                "/auth/profile",
                payload=None,
                headers={"Authorization": "Bearer tok-1"},
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_no_header_without_credential(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": True}

            await client.post("/auth/login", {"email": "a@b.com"})

            mock_fetch.assert_called_once_with(
                "POST", "/auth/login", payload={"email": "a@b.com"}, headers=None
            )

        await client.close()

    @pytest.mark.asyncio
    async def test_credential_read_when_call_is_issued(self):
        """Clearing the store after issuing keeps the captured credential."""
        client = _client("tok-1")

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": True}

            pending = client.post("/auth/logout")
            client.credentials.clear()
            await pending

            assert mock_fetch.call_args.kwargs["headers"] == {
                "Authorization": "Bearer tok-1"
            }

        await client.close()

    @pytest.mark.asyncio
    async def test_request_with_envelope(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": True}

            await client.request(
                RequestEnvelope(method="PUT", path="/auth/profile", body={"bio": "hi"})
            )

            mock_fetch.assert_called_once_with(
                "PUT", "/auth/profile", payload={"bio": "hi"}, headers=None
            )

        await client.close()


class TestGatewayClientEnvelopes:
    """Tests for unwrapping and failure classification."""

    @pytest.mark.asyncio
    async def test_success_envelope_unwrapped(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {
                "success": True,
                "data": {"id": 7},
                "message": "Fetched",
            }

            response = await client.get("/auth/profile")

        assert response.ok is True
        assert response.data == {"id": 7}
        assert response.message == "Fetched"
        assert response.error_kind is None
        await client.close()

    @pytest.mark.asyncio
    async def test_success_false_in_2xx_is_rejected(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": False, "message": "Email taken"}

            response = await client.post("/auth/signup", {})

        assert response.ok is False
        assert response.error_kind is ErrorKind.REQUEST_REJECTED
        assert response.message == "Email taken"
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_body_is_success(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = None

            response = await client.delete("/thing")

        assert response.ok is True
        assert response.data is None
        await client.close()

    @pytest.mark.asyncio
    async def test_non_envelope_body_is_server_error(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = "<html>proxy page</html>"

            response = await client.get("/auth/profile")

        assert response.error_kind is ErrorKind.SERVER_ERROR
        assert response.message == INVALID_RESPONSE_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,kind",
        [
            (400, ErrorKind.REQUEST_REJECTED),
            (403, ErrorKind.REQUEST_REJECTED),
            (404, ErrorKind.REQUEST_REJECTED),
            (429, ErrorKind.RATE_LIMITED),
            (500, ErrorKind.SERVER_ERROR),
            (503, ErrorKind.SERVER_ERROR),
        ],
    )
    async def test_status_classification(self, status, kind):
        client = _client("tok")

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(status, {"success": False})

            response = await client.get("/anything")

        assert response.ok is False
        assert response.error_kind is kind
        # Only a 401 touches the credential
        assert client.credentials.get() == "tok"
        await client.close()

    @pytest.mark.asyncio
    async def test_server_message_preferred(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(
                400, {"success": False, "message": "Invalid credentials"}
            )

            response = await client.post("/auth/login", {})

        assert response.message == "Invalid credentials"
        await client.close()

    @pytest.mark.asyncio
    async def test_generic_messages_without_server_message(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(502, content=b"Bad Gateway")
            server = await client.get("/x")

            mock_request.return_value = _response(422, content=b"")
            rejected = await client.get("/x")

        assert server.message == SERVER_ERROR_MESSAGE
        assert rejected.message == GENERIC_ERROR_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_error(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ReadTimeout("slow")

            response = await client.get("/x")

        assert response.error_kind is ErrorKind.NETWORK_ERROR
        assert response.message == TIMEOUT_ERROR_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    async def test_unreachable_becomes_network_error(self):
        client = _client()

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.side_effect = httpx.ConnectError("refused")

            response = await client.get("/x")

        assert response.error_kind is ErrorKind.NETWORK_ERROR
        assert response.message == NETWORK_ERROR_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    async def test_healthcheck(self):
        client = _client()

        with patch.object(client, "_fetch", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = {"success": True, "message": "OK"}

            response = await client.healthcheck()

            mock_fetch.assert_called_once_with("GET", "/health", payload=None, headers=None)

        assert response.ok is True
        await client.close()


class TestGatewayClientInvalidation:
    """Tests for the 401 path."""

    @pytest.mark.asyncio
    async def test_401_clears_store_and_emits_before_resolving(self):
        client = _client("stale")
        seen = []

        def listener(message):
            # Store must already be empty when listeners run
            seen.append((message, client.credentials.get()))

        client.session_invalidated.connect(listener)

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(
                401, {"success": False, "message": "Token expired"}
            )

            response = await client.get("/auth/profile")

        assert response.error_kind is ErrorKind.UNAUTHORIZED
        assert response.message == "Token expired"
        assert seen == [("Token expired", None)]
        assert client.credentials.get() is None
        await client.close()

    @pytest.mark.asyncio
    async def test_401_default_message(self):
        client = _client("stale")

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(401, content=b"")

            response = await client.get("/auth/profile")

        assert response.message == SESSION_EXPIRED_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_call(self):
        client = _client("stale")
        client.session_invalidated.connect(Mock(side_effect=RuntimeError("ui gone")))

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(401, {"success": False})

            response = await client.get("/auth/profile")

        assert response.error_kind is ErrorKind.UNAUTHORIZED
        assert client.credentials.get() is None
        await client.close()

    @pytest.mark.asyncio
    async def test_401_is_not_retried(self):
        client = _client("stale", retry_policy=RetryPolicy(attempts=3, delay=0))

        with patch.object(
            client.client, "request", new_callable=AsyncMock
        ) as mock_request:
            mock_request.return_value = _response(401, {"success": False})

            await client.get("/auth/profile")

            assert mock_request.call_count == 1

        await client.close()


class TestGatewayClientTransport:
    """End-to-end through an httpx mock transport."""

    @pytest.mark.asyncio
    async def test_round_trip_through_transport(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"success": True, "data": {"ok": 1}})

        client = _client("tok", transport=httpx.MockTransport(handler))

        response = await client.get("/auth/profile")

        assert response.data == {"ok": 1}
        assert captured == {
            "url": "https://api.test.com/api/auth/profile",
            "auth": "Bearer tok",
        }
        await client.close()

    @pytest.mark.asyncio
    async def test_retry_policy_resends_server_errors(self):
        statuses = iter([503, 503, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            if status == 200:
                return httpx.Response(200, json={"success": True, "data": "done"})
            return httpx.Response(status)

        client = _client(
            transport=httpx.MockTransport(handler),
            retry_policy=RetryPolicy(attempts=3, delay=0),
        )

        response = await client.get("/flaky")

        assert response.ok is True
        assert response.data == "done"
        await client.close()


class TestGatewayClientContextManager:
    """Tests for context manager functionality."""

    @pytest.mark.asyncio
    async def test_context_manager(self):
        """Test using client as async context manager."""
        async with _client() as client:
            assert isinstance(client, GatewayClient)
            assert not client.client.is_closed

        assert client.client.is_closed
