from .result import AuthResult
from .state import (
    Anonymous,
    Authenticated,
    Authenticating,
    Failed,
    SessionState,
    Unresolved,
)
from .user import ProfileUpdate, RiskAppetite, SignupRequest, User

__all__ = [
    "AuthResult",
    "SessionState",
    "Unresolved",
    "Anonymous",
    "Authenticating",
    "Authenticated",
    "Failed",
    "User",
    "RiskAppetite",
    "SignupRequest",
    "ProfileUpdate",
]
