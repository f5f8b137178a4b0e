"""
Gateway client: the single chokepoint for outbound API calls.

Every call goes through `GatewayClient.request`, which attaches the bearer
credential from the credential store, sends the request with httpx, and
turns whatever happened into a `ResponseEnvelope`. A 401 additionally
clears the credential store and emits `session_invalidated` before the
call resolves.
"""

from typing import Any, Awaitable
import logging

import httpx

from .credentials import CredentialStore
from .envelope import ErrorKind, RequestEnvelope, ResponseEnvelope
from .exceptions import ConfigurationError, GatewayError, HTTPError, NetworkError
from .retry import RetryPolicy
from .signals import Signal


logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
TIMEOUT_ERROR_MESSAGE = "Request timed out. Please try again."
SERVER_ERROR_MESSAGE = "Server error. Please try again later."
RATE_LIMITED_MESSAGE = "Too many requests. Please try again later."
SESSION_EXPIRED_MESSAGE = "Session expired. Please login again."
INVALID_RESPONSE_MESSAGE = "Invalid response from server. Please try again later."
GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class GatewayClient:
    """
    HTTP gateway to the Grip backend.

    The client owns every header it sends; callers only describe the call
    with a `RequestEnvelope` (method, path, body). Responses are expected in
    the backend's ``{"success": bool, "data": ..., "message": ...}`` envelope
    and are unwrapped into a `ResponseEnvelope`. The client never raises from
    `request`; transport and server errors alike come back as failed
    envelopes.

    Attributes:
        BASE_URL (str): Default base URL, overridable via the constructor.
        client (httpx.AsyncClient): The underlying httpx async client.
        credentials (CredentialStore): Source of the bearer credential.
        session_invalidated (Signal): Emitted with the server message when a
            call is rejected with 401, after the credential store is cleared.

    Example:
        >>> store = MemoryCredentialStore()
        >>> async with GatewayClient(store) as gateway:
        ...     gateway.session_invalidated.connect(lambda message: print(message))
        ...     response = await gateway.get("/auth/profile")
        ...     if response.ok:
        ...         print(response.data)
    """

    BASE_URL: str = "http://localhost:3001/api"

    def __init__(
        self,
        credentials: CredentialStore,
        base_url: str | None = None,
        proxy: str | None = None,
        timeout: float = 10.0,
        retry_policy: RetryPolicy | None = None,
        **kwargs: Any,
    ):
        """
        Initialize the gateway client.

        Args:
            credentials: Store the bearer credential is read from and cleared
                in on a 401.
            base_url: Custom base URL to override the class BASE_URL attribute.
            proxy: Proxy URL in format "host:port" or "http://host:port".
            timeout: Request timeout in seconds. Defaults to 10.0.
            retry_policy: Optional policy wrapped around dispatch. Without one
                the client never retries.
            **kwargs: Additional arguments passed to httpx.AsyncClient, e.g.
                ``transport`` or ``verify``.

        Raises:
            ConfigurationError: If proxy format is invalid.
        """
        self.credentials = credentials
        self.proxy = proxy
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.retry_policy = retry_policy
        self.session_invalidated = Signal("session_invalidated")

        if self.proxy is not None:
            try:
                proxy_url = (
                    self.proxy
                    if self.proxy.startswith("http")
                    else f"http://{self.proxy}"
                )
                kwargs["proxy"] = proxy_url
                logger.debug(f"Proxy configured: {proxy_url}")
            except Exception as e:
                raise ConfigurationError(f"Invalid proxy configuration: {e}") from e

        if "timeout" not in kwargs:
            kwargs["timeout"] = timeout

        self.client = httpx.AsyncClient(**kwargs)

        default_headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "GripSession/0.1.0",
        }
        self.client.headers.update(default_headers)

        self._dispatch = retry_policy(self._send) if retry_policy else self._send

        logger.info(f"Gateway initialized with base URL: {self.base_url}")

    def request(self, envelope: RequestEnvelope) -> Awaitable[ResponseEnvelope]:
        """
        Dispatch a call and return an awaitable resolving to its envelope.

        The credential is read when `request` is called, not when the
        returned awaitable first runs. A caller may therefore dispatch a
        call and clear the credential store right afterwards (logout does
        exactly that) and the call still carries the credential it was
        issued with.

        Args:
            envelope: Method, path and body of the call.

        Returns:
            Awaitable resolving to a `ResponseEnvelope`. It never raises.
        """
        headers = self._auth_headers()
        return self._dispatch(envelope, headers)

    def get(self, path: str) -> Awaitable[ResponseEnvelope]:
        return self.request(RequestEnvelope(method="GET", path=path))

    def post(
        self, path: str, body: dict[str, Any] | None = None
    ) -> Awaitable[ResponseEnvelope]:
        return self.request(RequestEnvelope(method="POST", path=path, body=body))

    def put(
        self, path: str, body: dict[str, Any] | None = None
    ) -> Awaitable[ResponseEnvelope]:
        return self.request(RequestEnvelope(method="PUT", path=path, body=body))

    def delete(self, path: str) -> Awaitable[ResponseEnvelope]:
        return self.request(RequestEnvelope(method="DELETE", path=path))

    def healthcheck(self) -> Awaitable[ResponseEnvelope]:
        """Ping the backend's ``/health`` endpoint."""
        return self.get("/health")

    def _auth_headers(self) -> dict[str, str]:
        credential = self.credentials.get()
        if credential:
            return {"Authorization": f"Bearer {credential}"}
        return {}

    async def _send(
        self, envelope: RequestEnvelope, headers: dict[str, str]
    ) -> ResponseEnvelope:
        """Send one call and classify the outcome."""
        try:
            body = await self._fetch(
                envelope.method,
                envelope.path,
                payload=envelope.body,
                headers=headers or None,
            )
        except HTTPError as e:
            return self._classify_http_error(e)
        except NetworkError as e:
            message = TIMEOUT_ERROR_MESSAGE if e.timed_out else NETWORK_ERROR_MESSAGE
            return ResponseEnvelope.failure(ErrorKind.NETWORK_ERROR, message)
        except GatewayError as e:
            logger.error(f"{envelope.method} {envelope.path} failed unexpectedly: {e.message}")
            return ResponseEnvelope.failure(ErrorKind.NETWORK_ERROR, GENERIC_ERROR_MESSAGE)

        return self._unwrap(body)

    async def _fetch(
        self,
        method: str,
        endpoint: str = "",
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Perform an HTTP request and return the decoded response body.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH).
            endpoint: API endpoint path (appended to the base URL).
            params: Query parameters for the request.
            payload: JSON payload for POST/PUT/PATCH requests.
            headers: Additional headers for this specific request.
            **kwargs: Additional arguments passed to httpx request method.

        Returns:
            Decoded JSON body, the raw text for a non-JSON body, or None for
            an empty body.

        Raises:
            HTTPError: If the server answers with a non-2xx status.
            NetworkError: If no response was received.
            GatewayError: On any other failure while sending.
        """
        url = f"{self.base_url}{endpoint}"

        try:
            logger.debug(f"{method} {url}")
            response = await self.client.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request timeout: {e}")
            raise NetworkError(f"Request timed out: {e}", timed_out=True) from e
        except httpx.ProxyError as e:
            logger.error(f"Proxy error: {e}")
            raise NetworkError(f"Proxy connection failed: {e}") from e
        except httpx.TransportError as e:
            logger.error(f"Transport error: {e}")
            raise NetworkError(f"Connection failed: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error: {e}")
            raise GatewayError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")
        body = self._parse_body(response)

        if not 200 <= response.status_code < 300:
            raise HTTPError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=body if isinstance(body, dict) else None,
            )

        return body

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _classify_http_error(self, error: HTTPError) -> ResponseEnvelope:
        status = error.status_code or 0
        server_message = _server_message(error.response_body)

        if status == 401:
            message = server_message or SESSION_EXPIRED_MESSAGE
            self._invalidate_session(message)
            return ResponseEnvelope.failure(ErrorKind.UNAUTHORIZED, message)

        if status == 429:
            logger.warning("Rate limited by server")
            return ResponseEnvelope.failure(
                ErrorKind.RATE_LIMITED, server_message or RATE_LIMITED_MESSAGE
            )

        if status >= 500:
            logger.error(f"Server error {status}: {server_message}")
            return ResponseEnvelope.failure(
                ErrorKind.SERVER_ERROR, server_message or SERVER_ERROR_MESSAGE
            )

        if status >= 400:
            return ResponseEnvelope.failure(
                ErrorKind.REQUEST_REJECTED, server_message or GENERIC_ERROR_MESSAGE
            )

        # 1xx/3xx that httpx did not resolve
        logger.error(f"Unexpected response status {status}")
        return ResponseEnvelope.failure(ErrorKind.SERVER_ERROR, INVALID_RESPONSE_MESSAGE)

    def _invalidate_session(self, message: str) -> None:
        """Drop the rejected credential and tell subscribers, in one step."""
        if not self.credentials.clear():
            logger.error("Failed to clear rejected credential")
        logger.warning("Credential rejected by server, session invalidated")
        self.session_invalidated.emit(message)

    @staticmethod
    def _unwrap(body: Any) -> ResponseEnvelope:
        if body is None:
            return ResponseEnvelope.success()

        if not isinstance(body, dict) or "success" not in body:
            logger.error("Response body is not a success envelope")
            return ResponseEnvelope.failure(
                ErrorKind.SERVER_ERROR, INVALID_RESPONSE_MESSAGE
            )

        if body["success"]:
            return ResponseEnvelope.success(body.get("data"), _server_message(body))

        return ResponseEnvelope.failure(
            ErrorKind.REQUEST_REJECTED, _server_message(body) or GENERIC_ERROR_MESSAGE
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self.client.aclose()
        logger.info("Gateway closed")

    async def __aenter__(self):
        """Enable use as async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Ensure client is closed when exiting context."""
        await self.close()


def _server_message(body: dict | None) -> str | None:
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return None
