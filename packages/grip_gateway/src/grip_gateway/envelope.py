"""Normalized request and response envelopes exchanged with the gateway.

Callers describe a call with a `RequestEnvelope` and always get a
`ResponseEnvelope` back: either `ok=True` with the unwrapped `data`, or
`ok=False` with an `ErrorKind` and a displayable message. Transport status
codes never leave the gateway.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator


HTTPMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class ErrorKind(str, Enum):
    """Closed set of failure classes produced by the gateway."""

    UNAUTHORIZED = "Unauthorized"
    RATE_LIMITED = "RateLimited"
    SERVER_ERROR = "ServerError"
    REQUEST_REJECTED = "RequestRejected"
    NETWORK_ERROR = "NetworkError"

    @property
    def retryable(self) -> bool:
        """Whether repeating the same call later may succeed."""
        return self in (
            ErrorKind.NETWORK_ERROR,
            ErrorKind.SERVER_ERROR,
            ErrorKind.RATE_LIMITED,
        )


class EnvelopeModel(BaseModel):
    """Base class for envelope models.

    Envelopes are values: they are frozen once built.
    """

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return self.model_dump_json(indent=2)


class RequestEnvelope(EnvelopeModel):
    """A single outbound call.

    Attributes:
        method: HTTP method.
        path: Path relative to the gateway base URL, e.g. ``/auth/login``.
        body: Optional JSON body.

    Headers are deliberately not part of the envelope; the gateway owns
    them (including the bearer credential).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: HTTPMethod
    path: str
    body: dict[str, Any] | None = None


class ResponseEnvelope(EnvelopeModel):
    """Outcome of a gateway call.

    Attributes:
        ok: True when the server reported success.
        data: Unwrapped payload of a successful call.
        error_kind: Failure class when ``ok`` is False.
        message: Server-supplied message when available, else a generic one.
    """

    ok: bool
    data: Any = None
    error_kind: ErrorKind | None = None
    message: str | None = None

    @model_validator(mode="after")
    def check_consistency(self) -> "ResponseEnvelope":
        """A failure always carries its kind; a success never does."""
        if self.ok and self.error_kind is not None:
            raise ValueError("successful envelope cannot carry an error kind")
        if not self.ok and self.error_kind is None:
            raise ValueError("failed envelope requires an error kind")
        return self

    @classmethod
    def success(cls, data: Any = None, message: str | None = None) -> "ResponseEnvelope":
        return cls(ok=True, data=data, message=message)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "ResponseEnvelope":
        return cls(ok=False, error_kind=error_kind, message=message)
