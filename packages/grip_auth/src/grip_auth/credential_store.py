import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .config import DEFAULT_CREDENTIAL_KEY


# 0o700 = Owner has read/write/execute, others have no access
DIR_PERMISSIONS = 0o700
# 0o600 = Owner has read/write, others have no access
FILE_PERMISSIONS = 0o600


class SecureCredentialStore:
    """
    # Durable Credential Store

    Keeps the single access credential of the session on disk so it survives
    process restarts. The credential is an opaque string: it is never
    parsed or validated here, only encrypted, written, read back and erased.

    ## Security Features:
    - **Encryption**: Fernet (AES-128-CBC + HMAC) protects the credential at rest
    - **File Permissions**: Directory and files are owner-only (Unix only)
    - **Key Management**: Encryption key generated on first use, stored separately

    ## Storage Structure:
    ```
    ~/.gripinvest/             # Storage directory (mode 0o700)
    ├── key.enc                # Encryption key (mode 0o600)
    └── token.enc              # Encrypted credential slot (mode 0o600)
    ```

    ## Consistency:
    There is no in-memory copy. `get` reads the file every time, so a `set`
    or `clear` is visible to the next `get` from any caller, including
    requests already in flight.

    ## Error Handling:
    Methods never raise. Read problems (missing, corrupt or undecryptable
    slot) return None; write problems return False. Everything is logged.

    ## Example:
    ```python
    store = SecureCredentialStore()
    store.set("eyJhbGc...")
    store.get()     # "eyJhbGc..."
    store.clear()
    store.get()     # None
    ```
    """

    def __init__(
        self, storage_dir: str | None = None, key: str = DEFAULT_CREDENTIAL_KEY
    ) -> None:
        """
        Initialize the credential store.

        ## Args:
        - `storage_dir` (str, optional): Directory for the slot.
          Defaults to `~/.gripinvest`.
        - `key` (str): Fixed name of the slot (default ``"token"``).

        ## Side Effects:
        - Creates the storage directory with restrictive permissions
        - Generates the encryption key if it doesn't exist
        """
        self.storage_dir = Path(storage_dir or Path.home() / ".gripinvest")
        self.storage_dir.mkdir(parents=True, exist_ok=True, mode=DIR_PERMISSIONS)

        self.key = key
        self.credential_file = self.storage_dir / f"{key}.enc"
        self.key_file = self.storage_dir / "key.enc"

        self.logger = logging.getLogger(__name__)

        self._initialize_encryption_key()

    def _initialize_encryption_key(self) -> None:
        """
        Load the Fernet key, generating and saving one on first use.

        Losing the key file makes any stored credential unreadable; `get`
        then reports the slot as empty.
        """
        if self.key_file.exists():
            with open(self.key_file, "rb") as f:
                secret = f.read()
        else:
            secret = Fernet.generate_key()

            with open(self.key_file, "wb") as f:
                f.write(secret)

            # No effect on Windows
            os.chmod(self.key_file, FILE_PERMISSIONS)

        self.cipher_suite = Fernet(secret)

    def get(self) -> str | None:
        """
        Read the stored credential.

        ## Returns:
        - `str`: The credential
        - `None`: If the slot is empty or cannot be decrypted
        """
        if not self.credential_file.exists():
            return None

        try:
            with open(self.credential_file, "rb") as f:
                encrypted_data = f.read()

            credential = self.cipher_suite.decrypt(encrypted_data).decode("utf-8")
            return credential or None

        except InvalidToken:
            self.logger.warning("Stored credential could not be decrypted; treating as absent")
            return None
        except Exception as e:
            self.logger.error(f"Failed to read credential: {e}", exc_info=True)
            return None

    def set(self, credential: str) -> bool:
        """
        Encrypt and write the credential, replacing any previous one.

        ## Returns:
        - `bool`: True if written, False if an error occurred
        """
        try:
            encrypted_data = self.cipher_suite.encrypt(credential.encode("utf-8"))

            with open(self.credential_file, "wb") as f:
                f.write(encrypted_data)

            os.chmod(self.credential_file, FILE_PERMISSIONS)

            self.logger.debug("Credential saved to encrypted storage")
            return True

        except Exception as e:
            self.logger.error(f"Failed to save credential: {e}", exc_info=True)
            return False

    def clear(self) -> bool:
        """
        Erase the stored credential. Clearing an empty slot succeeds.

        The encryption key is kept for future writes.

        ## Returns:
        - `bool`: True if the slot is now empty, False on error
        """
        try:
            if self.credential_file.exists():
                self.credential_file.unlink()
                self.logger.debug("Credential deleted from storage")
            return True

        except Exception as e:
            self.logger.error(f"Failed to delete credential: {e}", exc_info=True)
            return False

    def has_credential(self) -> bool:
        """
        Check whether the slot file exists.

        Does not verify that it decrypts; use `get` for that.
        """
        return self.credential_file.exists()
