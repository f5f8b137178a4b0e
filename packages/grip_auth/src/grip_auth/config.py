"""
Settings for the Grip session layer.

Values come from environment variables (a local ``.env`` file is loaded
first with python-dotenv) and fall back to the defaults below.

## Environment Variables:
- `GRIP_API_URL`: Backend base URL (default ``http://localhost:3001/api``)
- `GRIP_API_TIMEOUT`: Request timeout in seconds (default ``10``)
- `GRIP_RETRY_ATTEMPTS`: Tries per call when retries are enabled (default ``3``)
- `GRIP_RETRY_DELAY`: First backoff delay in seconds (default ``1.0``)
- `GRIP_STORAGE_DIR`: Directory holding the stored credential
  (default ``~/.gripinvest``)
- `GRIP_CREDENTIAL_KEY`: Name of the credential slot (default ``token``)
"""

import logging
import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from .urls import GripBaseUrls


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CREDENTIAL_KEY = "token"


@dataclass(frozen=True)
class GripSettings:
    """
    Immutable configuration for the gateway and session manager.

    ## Attributes:
    - `api_url` (str): Backend base URL
    - `timeout` (float): Request timeout in seconds
    - `retry_attempts` (int): Tries per call, only used when retries are enabled
    - `retry_delay` (float): First backoff delay, only used when retries are enabled
    - `storage_dir` (str | None): Credential directory; None means the default
    - `credential_key` (str): Name of the durable credential slot
    """

    api_url: str = GripBaseUrls.LOCAL
    timeout: float = DEFAULT_TIMEOUT
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    storage_dir: str | None = None
    credential_key: str = DEFAULT_CREDENTIAL_KEY

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "GripSettings":
        """
        Build settings from environment variables.

        ## Args:
        - `load_env_file` (bool): Load a ``.env`` file first (default True).
          Variables already set in the environment take precedence.

        ## Returns:
        - `GripSettings`: Settings with defaults for anything unset or invalid
        """
        if load_env_file:
            load_dotenv(find_dotenv(usecwd=True))

        return cls(
            api_url=os.environ.get("GRIP_API_URL") or GripBaseUrls.LOCAL,
            timeout=_env_number("GRIP_API_TIMEOUT", float, DEFAULT_TIMEOUT),
            retry_attempts=_env_number(
                "GRIP_RETRY_ATTEMPTS", int, DEFAULT_RETRY_ATTEMPTS
            ),
            retry_delay=_env_number("GRIP_RETRY_DELAY", float, DEFAULT_RETRY_DELAY),
            storage_dir=os.environ.get("GRIP_STORAGE_DIR") or None,
            credential_key=os.environ.get("GRIP_CREDENTIAL_KEY")
            or DEFAULT_CREDENTIAL_KEY,
        )


def _env_number(name: str, cast: type, default: float | int):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default
