"""
# Session Manager for the Grip API

Single source of truth for whether, and as whom, the user is signed in.

## Key Features:
- **State Machine**: immutable `SessionState` values replaced on every transition
- **Gateway Integration**: every call goes through `GatewayClient`
- **Invalidation Handling**: a 401 anywhere tears the session down at once
- **Ordering Guard**: stale completions of overlapping operations are discarded

## Usage:
```python
manager = create_session()
await manager.bootstrap()

result = await manager.login("user@example.com", "secure_password")
if result.success:
    print(manager.user.full_name)
else:
    print(result.message)
```
"""

import asyncio
import dataclasses
import logging
from typing import Any

from pydantic import ValidationError

from grip_gateway import (
    CredentialStore,
    ErrorKind,
    GatewayClient,
    ResponseEnvelope,
    RetryPolicy,
    Signal,
)

from .config import GripSettings
from .credential_store import SecureCredentialStore
from .models import (
    Anonymous,
    Authenticated,
    Authenticating,
    AuthResult,
    Failed,
    ProfileUpdate,
    SessionState,
    SignupRequest,
    Unresolved,
    User,
)
from .urls import GripAuthUrls


VALIDATION_ERROR_MESSAGE = "Please check your input and try again."
AUTHENTICATION_ERROR_MESSAGE = "Authentication failed. Please login again."
INVALID_RESPONSE_MESSAGE = "Invalid response from server. Please try again later."
STORAGE_ERROR_MESSAGE = "Could not save your session on this device."
SUPERSEDED_MESSAGE = "A newer session action has already completed."
NO_CHANGES_MESSAGE = "No profile changes to save."


class SessionManager:
    """
    # Session Manager

    Owns the authentication state of the application and every operation
    that changes it. One instance is created per application and handed to
    whatever needs it; there is no global.

    ## States:
    `Unresolved` → `bootstrap()` → `Anonymous` or `Authenticating` →
    `Authenticated` / `Failed` → ... → `Anonymous` (logout or invalidation)

    ## Invariants:
    - `Authenticated` is only entered while the credential store holds a
      credential, and every path that clears the credential leaves
      `Authenticated` in the same step.
    - Public operations never raise; they resolve to an `AuthResult`.
    - Operations are not cancellable once started. Cancelling the awaiting
      caller leaves the operation running to completion in the background.

    ## Ordering:
    Operations that change the session take an increasing sequence number.
    When an operation completes after a newer one has already completed,
    its outcome is discarded (the caller still gets its result). So
    ``login`` followed immediately by ``logout`` always ends logged out,
    whatever order the responses arrive in.

    ## Observing:
    `state_changed` is emitted with the new state after every transition.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        credentials: CredentialStore | None = None,
    ) -> None:
        """
        Initialize the session manager.

        ## Args:
        - `gateway` (GatewayClient): Client used for every backend call
        - `credentials` (CredentialStore, optional): Store written on login.
          Defaults to the gateway's own store; they must be the same store.
        """
        self.gateway = gateway
        self.credentials = credentials or gateway.credentials
        self.logger = logging.getLogger(__name__)

        self.state_changed = Signal("state_changed")

        self._state: SessionState = Unresolved()
        self._last_error: str | None = None
        self._in_flight = 0
        self._issued = 0
        self._latest_completed = 0
        self._bootstrap_task: asyncio.Future | None = None

        gateway.session_invalidated.connect(self._on_session_invalidated)

    # ------------------------------------------------------------------ #
    # Observable state
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        """True while a user is loaded and a credential is stored.

        Also true in `Authenticating`/`Failed` states that kept the user,
        e.g. after a failed profile update.
        """
        return self._state.user is not None and self.has_credential

    @property
    def has_credential(self) -> bool:
        return self.credentials.get() is not None

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def error(self) -> str | None:
        if isinstance(self._state, Failed):
            return self._state.last_error
        return self._last_error

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def bootstrap(self) -> SessionState:
        """
        Resolve the startup state. Runs once; later calls wait for the first.

        No stored credential → `Anonymous` without any network call.
        Otherwise the profile is fetched; any failure (including an
        unreachable backend) ends `Anonymous` with the credential removed.
        """
        if self._bootstrap_task is None:
            self._bootstrap_task = asyncio.ensure_future(self._bootstrap())
        await asyncio.shield(self._bootstrap_task)
        return self._state

    async def login(self, email: str, password: str) -> AuthResult:
        return await asyncio.shield(self._login(email, password))

    async def signup(self, data: SignupRequest | dict[str, Any]) -> AuthResult:
        """Register a new account. Does not sign the caller in."""
        return await asyncio.shield(self._signup(data))

    async def logout(self) -> AuthResult:
        """Sign out locally at once, then tell the server (best effort)."""
        return await asyncio.shield(self._logout())

    async def update_profile(
        self, changes: ProfileUpdate | dict[str, Any]
    ) -> AuthResult:
        """Send a partial profile and merge the sent fields on success."""
        return await asyncio.shield(self._update_profile(changes))

    async def refresh_profile(self) -> AuthResult:
        """Reload the signed-in user's profile from the server."""
        return await asyncio.shield(self._refresh_profile())

    async def change_password(
        self, current_password: str, new_password: str
    ) -> AuthResult:
        return await asyncio.shield(
            self._stateless(
                self.gateway.post(
                    GripAuthUrls.CHANGE_PASSWORD,
                    {"currentPassword": current_password, "newPassword": new_password},
                ),
                success_message="Password changed successfully!",
                fallback="Password change failed",
            )
        )

    async def forgot_password(self, email: str) -> AuthResult:
        return await asyncio.shield(
            self._stateless(
                self.gateway.post(GripAuthUrls.FORGOT_PASSWORD, {"email": email}),
                success_message="Password reset email sent!",
                fallback="Password reset failed",
            )
        )

    async def reset_password(self, token: str, otp: str, new_password: str) -> AuthResult:
        return await asyncio.shield(
            self._stateless(
                self.gateway.post(
                    GripAuthUrls.RESET_PASSWORD,
                    {"token": token, "otp": otp, "newPassword": new_password},
                ),
                success_message="Password reset successfully!",
                fallback="Password reset failed",
            )
        )

    async def verify_email(self, token: str) -> AuthResult:
        return await asyncio.shield(
            self._stateless(
                self.gateway.post(GripAuthUrls.VERIFY_EMAIL, {"token": token}),
                success_message="Email verified successfully!",
                fallback="Email verification failed",
            )
        )

    def clear_error(self) -> None:
        """Forget the last error; a `Failed` state settles to its resting state."""
        self._last_error = None
        if isinstance(self._state, Failed):
            self._transition(self._resting_state(self._state.user))

    # ------------------------------------------------------------------ #
    # Operation bodies
    # ------------------------------------------------------------------ #

    async def _bootstrap(self) -> None:
        if not self.has_credential:
            self.logger.info("No stored credential, starting anonymous")
            self._transition(Anonymous())
            return

        seq = self._begin(Authenticating(user=self._state.user))
        response = await self._await_response(self.gateway.get(GripAuthUrls.PROFILE))
        if not self._finish(seq):
            return

        user = self._parse_user(response.data) if response.ok else None
        if user is not None:
            self.logger.info("Restored session from stored credential")
            self._transition(Authenticated(user=user))
            return

        if response.ok or response.error_kind is not ErrorKind.UNAUTHORIZED:
            # Gateway only clears on 401; drop the unusable credential here
            self.logger.warning(
                f"Could not restore session ({response.message}), starting anonymous"
            )
            self.credentials.clear()
        self._transition(Anonymous())

    async def _login(self, email: str, password: str) -> AuthResult:
        prior = self._state.user
        seq = self._begin(Authenticating(user=prior))
        response = await self._await_response(
            self.gateway.post(GripAuthUrls.LOGIN, {"email": email, "password": password})
        )
        current = self._finish(seq)

        if not response.ok:
            self.logger.warning(f"Login failed: {response.message}")
            result = AuthResult.from_response(response, "Login failed")
            if current:
                self._fail(result, prior)
            return result

        session = self._parse_login(response.data)
        if session is None:
            result = AuthResult.failed(INVALID_RESPONSE_MESSAGE)
            if current:
                self._fail(result, prior)
            return result

        if not current:
            self.logger.info("Discarding login completed after a newer session action")
            return AuthResult.failed(SUPERSEDED_MESSAGE)

        credential, user = session
        if not self.credentials.set(credential):
            result = AuthResult.failed(STORAGE_ERROR_MESSAGE)
            self._fail(result, prior)
            return result

        self._transition(Authenticated(user=user))
        self.logger.info("Login successful")
        return AuthResult.ok(response.message or "Login successful!")

    async def _signup(self, data: SignupRequest | dict[str, Any]) -> AuthResult:
        try:
            request = (
                data
                if isinstance(data, SignupRequest)
                else SignupRequest.model_validate(data)
            )
        except ValidationError as e:
            self.logger.warning(f"Rejected signup data: {e.error_count()} invalid field(s)")
            return AuthResult.failed(VALIDATION_ERROR_MESSAGE)

        prior = self._state.user
        seq = self._begin(Authenticating(user=prior))
        response = await self._await_response(
            self.gateway.post(GripAuthUrls.SIGNUP, request.to_payload())
        )
        current = self._finish(seq)

        if not response.ok:
            self.logger.warning(f"Signup failed: {response.message}")
            result = AuthResult.from_response(response, "Registration failed")
            if current:
                self._fail(result, prior)
            return result

        if current:
            self._transition(self._resting_state(prior))
        return AuthResult.ok(
            "Registration successful! Please check your email for verification."
        )

    async def _logout(self) -> AuthResult:
        # Issue the call first so it still carries the credential
        pending = self.gateway.post(GripAuthUrls.LOGOUT) if self.has_credential else None

        seq = self._begin()
        self._finish(seq)
        if not self.credentials.clear():
            self.logger.error("Failed to clear stored credential during logout")
        self._last_error = None
        self._transition(Anonymous())
        self.logger.info("Logged out")

        if pending is not None:
            response = await self._await_response(pending)
            if not response.ok:
                self.logger.warning(f"Server logout failed (ignored): {response.message}")

        return AuthResult.ok("Logged out successfully")

    async def _update_profile(self, changes: ProfileUpdate | dict[str, Any]) -> AuthResult:
        user = self._state.user
        if user is None or not self.has_credential:
            return AuthResult.failed(AUTHENTICATION_ERROR_MESSAGE)

        try:
            update = (
                changes
                if isinstance(changes, ProfileUpdate)
                else ProfileUpdate.model_validate(changes)
            )
        except ValidationError as e:
            self.logger.warning(f"Rejected profile update: {e.error_count()} invalid field(s)")
            return AuthResult.failed(VALIDATION_ERROR_MESSAGE)

        payload = update.to_payload()
        if not payload:
            return AuthResult.failed(NO_CHANGES_MESSAGE)

        seq = self._begin(Authenticating(user=user))
        response = await self._await_response(
            self.gateway.put(GripAuthUrls.PROFILE, payload)
        )
        current = self._finish(seq)

        if not response.ok:
            self.logger.warning(f"Profile update failed: {response.message}")
            result = AuthResult.from_response(response, "Profile update failed")
            if current:
                self._fail(result, user)
            return result

        if current:
            base = self._state.user or user
            self._transition(Authenticated(user=self._merge(base, payload, response.data)))
        return AuthResult.ok(response.message or "Profile updated successfully!")

    async def _refresh_profile(self) -> AuthResult:
        user = self._state.user
        if user is None or not self.has_credential:
            return AuthResult.failed(AUTHENTICATION_ERROR_MESSAGE)

        seq = self._begin(Authenticating(user=user))
        response = await self._await_response(self.gateway.get(GripAuthUrls.PROFILE))
        current = self._finish(seq)

        if not response.ok:
            result = AuthResult.from_response(response, "Could not load profile")
            if current:
                self._fail(result, user)
            return result

        fresh = self._parse_user(response.data)
        if fresh is None:
            result = AuthResult.failed(INVALID_RESPONSE_MESSAGE)
            if current:
                self._fail(result, user)
            return result

        if current:
            self._transition(Authenticated(user=fresh))
        return AuthResult.ok()

    async def _stateless(
        self,
        call: Any,
        success_message: str,
        fallback: str,
    ) -> AuthResult:
        """Run a call that does not change who is signed in."""
        self._last_error = None
        response = await self._await_response(call)

        if response.ok:
            return AuthResult.ok(response.message or success_message)

        self.logger.warning(f"{fallback}: {response.message}")
        self._last_error = response.message or fallback
        return AuthResult.from_response(response, fallback)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def _on_session_invalidated(self, message: str | None = None) -> None:
        self.logger.warning("Session invalidated by server")
        self._transition(Anonymous())

    def _transition(self, state: SessionState) -> None:
        """Replace the current state and notify listeners.

        A state carrying a user is only accepted while a credential is
        stored; otherwise it is downgraded so a dead session never shows a
        user.
        """
        if state.user is not None and not self.has_credential:
            if isinstance(state, Authenticated):
                self.logger.warning("No stored credential, refusing authenticated state")
                state = Anonymous()
            else:
                state = dataclasses.replace(state, user=None)

        previous = self._state
        self._state = state
        if previous.name != state.name:
            self.logger.debug(f"Session state: {previous.name} -> {state.name}")
        self.state_changed.emit(state)

    def _fail(self, result: AuthResult, user: User | None) -> None:
        if result.error_kind is ErrorKind.UNAUTHORIZED and user is not None:
            # The invalidation signal has already ended this session
            return
        kind = result.error_kind
        self._transition(
            Failed(
                user=user,
                last_error=result.message or "Something went wrong. Please try again.",
                retryable=kind.retryable if kind is not None else False,
                error_kind=kind,
            )
        )

    def _resting_state(self, user: User | None) -> SessionState:
        if user is not None and self.has_credential:
            return Authenticated(user=user)
        return Anonymous()

    def _begin(self, state: SessionState | None = None) -> int:
        self._issued += 1
        if state is not None:
            self._transition(state)
        return self._issued

    def _finish(self, seq: int) -> bool:
        """Record completion; False if a newer operation already completed."""
        if seq < self._latest_completed:
            self.logger.debug(f"Discarding stale result of session operation #{seq}")
            return False
        self._latest_completed = seq
        return True

    async def _await_response(self, call: Any) -> ResponseEnvelope:
        self._in_flight += 1
        try:
            return await call
        finally:
            self._in_flight -= 1

    # ------------------------------------------------------------------ #
    # Payload helpers
    # ------------------------------------------------------------------ #

    def _parse_user(self, data: Any) -> User | None:
        try:
            return User.model_validate(data)
        except ValidationError as e:
            self.logger.error(f"Malformed user payload: {e.error_count()} invalid field(s)")
            return None

    def _parse_login(self, data: Any) -> tuple[str, User] | None:
        try:
            credential = data["tokens"]["accessToken"]
            user = User.model_validate(data["user"])
        except (KeyError, TypeError, ValidationError) as e:
            self.logger.error(f"Malformed login payload: {type(e).__name__}")
            return None

        if not isinstance(credential, str) or not credential:
            self.logger.error("Login payload carries no access token")
            return None
        return credential, user

    def _merge(self, user: User, sent: dict[str, Any], echoed: Any) -> User:
        """Merge the sent fields, preferring the server's echoed values."""
        echoed = echoed if isinstance(echoed, dict) else {}
        changes = {key: echoed.get(key, value) for key, value in sent.items()}
        try:
            return user.merged(changes)
        except ValidationError:
            self.logger.warning("Server echoed invalid profile fields, keeping sent values")
            return user.merged(sent)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def close(self) -> None:
        self.gateway.session_invalidated.disconnect(self._on_session_invalidated)
        await self.gateway.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_session(
    settings: GripSettings | None = None,
    credentials: CredentialStore | None = None,
    retry: bool = False,
    **gateway_kwargs: Any,
) -> SessionManager:
    """
    Build a gateway and session manager wired to one credential store.

    ## Args:
    - `settings` (GripSettings, optional): Defaults to `GripSettings.from_env()`
    - `credentials` (CredentialStore, optional): Defaults to a
      `SecureCredentialStore` in `settings.storage_dir`
    - `retry` (bool): Wrap dispatch in a `RetryPolicy` built from the
      settings' retry values. Off by default.
    - `**gateway_kwargs`: Passed to `GatewayClient` (e.g. ``proxy``, ``transport``)

    ## Returns:
    - `SessionManager`: Not yet bootstrapped
    """
    settings = settings or GripSettings.from_env()
    store = credentials or SecureCredentialStore(
        settings.storage_dir, key=settings.credential_key
    )
    policy = (
        RetryPolicy(attempts=settings.retry_attempts, delay=settings.retry_delay)
        if retry
        else None
    )
    gateway = GatewayClient(
        store,
        base_url=settings.api_url,
        timeout=settings.timeout,
        retry_policy=policy,
        **gateway_kwargs,
    )
    return SessionManager(gateway, store)
