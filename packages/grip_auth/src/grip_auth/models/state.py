"""
Session states.

`SessionState` is a closed family of immutable values; the session manager
replaces its current state wholesale on every transition instead of
mutating flags. Every variant exposes `user` so callers can read it without
checking the variant first.

```
Unresolved ──bootstrap──▶ Anonymous | Authenticating
Authenticating ──────────▶ Authenticated | Failed | Anonymous
Authenticated / Failed ──invalidation or logout──▶ Anonymous
```
"""

from dataclasses import dataclass

from grip_gateway import ErrorKind

from .user import User


@dataclass(frozen=True)
class SessionState:
    user: User | None = None

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def is_authenticated(self) -> bool:
        return False


@dataclass(frozen=True)
class Unresolved(SessionState):
    """Startup check has not completed yet."""


@dataclass(frozen=True)
class Anonymous(SessionState):
    """No usable credential."""


@dataclass(frozen=True)
class Authenticating(SessionState):
    """A login, signup or profile call is in flight.

    `user` is the previously signed-in user, if any.
    """


@dataclass(frozen=True)
class Authenticated(SessionState):
    user: User

    @property
    def is_authenticated(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed(SessionState):
    """The last attempt failed.

    `user` is whoever was signed in before the attempt (possibly nobody).
    """

    last_error: str = "Something went wrong. Please try again."
    retryable: bool = False
    error_kind: ErrorKind | None = None
