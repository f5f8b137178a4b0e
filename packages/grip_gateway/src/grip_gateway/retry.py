"""
Opt-in retry policy for gateway dispatch.

The gateway never retries on its own. A `RetryPolicy` is a decorator that
can be wrapped around the gateway's dispatch coroutine when an application
wants retries; it re-sends the same call, with exponential backoff, while
the envelope's error kind is one it was told to retry.

`Unauthorized` is never retried: by the time it is classified the
credential has already been cleared and the session invalidated.
"""

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Iterable

from .envelope import ErrorKind, ResponseEnvelope


logger = logging.getLogger(__name__)

DEFAULT_RETRY_ON = frozenset({ErrorKind.NETWORK_ERROR, ErrorKind.SERVER_ERROR})

Dispatch = Callable[..., Awaitable[ResponseEnvelope]]


class RetryPolicy:
    """
    Retry failed gateway calls with exponential backoff.

    ## Parameters:
    - `attempts` (int): Total number of tries, including the first one.
    - `delay` (float): Seconds to wait before the second try. Each further
      wait doubles: ``delay * 2 ** (attempt - 2)``.
    - `retry_on` (Iterable[ErrorKind]): Error kinds worth retrying.
      Defaults to `NetworkError` and `ServerError`.

    ## Example:
    ```python
    policy = RetryPolicy(attempts=3, delay=1.0)
    gateway = GatewayClient(base_url=..., credentials=store, retry_policy=policy)
    ```
    """

    def __init__(
        self,
        attempts: int = 3,
        delay: float = 1.0,
        retry_on: Iterable[ErrorKind] = DEFAULT_RETRY_ON,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        if delay < 0:
            raise ValueError("delay must not be negative")

        self.attempts = attempts
        self.delay = delay
        self.retry_on = frozenset(retry_on) - {ErrorKind.UNAUTHORIZED}

    def backoff(self, attempt: int) -> float:
        """Seconds to wait before the given attempt (1-based)."""
        if attempt <= 1:
            return 0.0
        return self.delay * (2 ** (attempt - 2))

    def should_retry(self, response: ResponseEnvelope) -> bool:
        return not response.ok and response.error_kind in self.retry_on

    def __call__(self, dispatch: Dispatch) -> Dispatch:
        @functools.wraps(dispatch)
        async def wrapper(*args, **kwargs) -> ResponseEnvelope:
            response = await dispatch(*args, **kwargs)

            for attempt in range(2, self.attempts + 1):
                if not self.should_retry(response):
                    break

                wait = self.backoff(attempt)
                logger.info(
                    f"Retrying after {response.error_kind.value} "
                    f"(attempt {attempt}/{self.attempts}, waiting {wait}s)"
                )
                await asyncio.sleep(wait)
                response = await dispatch(*args, **kwargs)

            return response

        return wrapper

    def __repr__(self) -> str:
        kinds = sorted(kind.value for kind in self.retry_on)
        return f"RetryPolicy(attempts={self.attempts}, delay={self.delay}, retry_on={kinds})"
