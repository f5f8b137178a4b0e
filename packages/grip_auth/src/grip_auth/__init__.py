from .config import GripSettings
from .credential_store import SecureCredentialStore
from .models import (
    Anonymous,
    Authenticated,
    Authenticating,
    AuthResult,
    Failed,
    ProfileUpdate,
    RiskAppetite,
    SessionState,
    SignupRequest,
    Unresolved,
    User,
)
from .session_manager import SessionManager, create_session

__all__ = [
    "GripSettings",
    "SecureCredentialStore",
    "SessionManager",
    "create_session",
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
