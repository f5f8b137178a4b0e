"""
Custom exceptions for the grip_gateway package.

These are raised by the low-level transport layer of the gateway client.
`GatewayClient.request` converts every one of them into a
`ResponseEnvelope`, so only `ConfigurationError` (raised while the client
is being built) ever reaches application code.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str, *args, **kwargs):
        super().__init__(message, *args)
        self.message = message
        self.details = kwargs


class HTTPError(GatewayError):
    """Raised when the server answers with a non-success status code."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict | None = None,
    ):
        super().__init__(message, status_code=status_code, response_body=response_body)
        self.status_code = status_code
        self.response_body = response_body


class NetworkError(GatewayError):
    """Raised when the request never produced a response.

    Covers timeouts, refused connections, DNS failures and proxy failures.
    """

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message, timed_out=timed_out)
        self.timed_out = timed_out


class ConfigurationError(GatewayError):
    """Raised when there's an issue with client configuration."""

    pass
