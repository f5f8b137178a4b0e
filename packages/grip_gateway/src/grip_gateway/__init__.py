"""
grip_gateway - API gateway client for the Grip backend.

This package provides the single HTTP chokepoint used by the session layer:
credential injection, envelope unwrapping, failure classification and the
session invalidation signal.
"""

from .client import GatewayClient
from .credentials import CredentialStore, MemoryCredentialStore
from .envelope import ErrorKind, RequestEnvelope, ResponseEnvelope
from .retry import RetryPolicy
from .signals import Signal

__version__ = "0.1.0"
__all__ = [
    "GatewayClient",
    "CredentialStore",
    "MemoryCredentialStore",
    "ErrorKind",
    "RequestEnvelope",
    "ResponseEnvelope",
    "RetryPolicy",
    "Signal",
]
