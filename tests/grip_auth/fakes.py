"""Test doubles for the session layer."""

import asyncio
from dataclasses import dataclass
from typing import Any

from grip_gateway.exceptions import HTTPError, NetworkError


ADA = {
    "id": 1,
    "firstName": "Ada",
    "lastName": "Lovelace",
    "email": "ada@example.com",
    "riskAppetite": "moderate",
}


def ok(data: Any = None, message: str | None = None) -> dict:
    body = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    return body


def login_body(token: str = "T1", user: dict = ADA) -> dict:
    return ok({"user": user, "tokens": {"accessToken": token}}, "Login successful")


def http_error(status: int, message: str | None = None) -> HTTPError:
    body = {"success": False}
    if message is not None:
        body["message"] = message
    return HTTPError(f"Request failed with status {status}", status, body)


def unreachable() -> NetworkError:
    return NetworkError("Connection failed: refused")


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@dataclass
class Call:
    method: str
    path: str
    payload: dict | None
    headers: dict | None

    @property
    def bearer(self) -> str | None:
        return (self.headers or {}).get("Authorization")


class FakeBackend:
    """
    Scripted stand-in for the HTTP layer under GatewayClient._fetch.

    Each route holds a queue of outcomes: a response body, an exception to
    raise, or an `asyncio.Future` resolving to either, which lets a test
    decide when a call completes.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[Call] = []

    def respond(self, method: str, path: str, *outcomes: Any) -> None:
        self.routes.setdefault((method, path), []).extend(outcomes)

    def hold(self, method: str, path: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self.respond(method, path, future)
        return future

    def calls_to(self, path: str) -> list[Call]:
        return [call for call in self.calls if call.path == path]

    async def fetch(
        self,
        method: str,
        endpoint: str = "",
        params: dict | None = None,
        payload: dict | None = None,
        headers: dict | None = None,
        **kwargs: Any,
    ) -> Any:
        self.calls.append(Call(method, endpoint, payload, headers))
        queue = self.routes.get((method, endpoint))
        if not queue:
            raise AssertionError(f"Unexpected call: {method} {endpoint}")

        outcome = queue.pop(0)
        if isinstance(outcome, asyncio.Future):
            outcome = await outcome
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


