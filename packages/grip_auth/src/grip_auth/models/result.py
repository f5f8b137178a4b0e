from dataclasses import dataclass

from grip_gateway import ErrorKind, ResponseEnvelope


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of a session manager operation.

    ## Attributes:
    - `success` (bool): Whether the operation succeeded
    - `message` (str | None): Text for display, from the server when it sent one
    - `error_kind` (ErrorKind | None): Gateway failure class; None on success
      and for failures detected before any call was made
    """

    success: bool
    message: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, message: str | None = None) -> "AuthResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(
        cls, message: str, error_kind: ErrorKind | None = None
    ) -> "AuthResult":
        return cls(success=False, message=message, error_kind=error_kind)

    @classmethod
    def from_response(
        cls, response: ResponseEnvelope, fallback: str
    ) -> "AuthResult":
        """Failed result for a failed envelope, keeping the server message."""
        return cls.failed(response.message or fallback, response.error_kind)
