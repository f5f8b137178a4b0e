"""
In-process signals used to broadcast session events.

A `Signal` keeps a registry of listeners and calls them synchronously, in
registration order, when `emit` is called. Because dispatch is synchronous,
everything a listener does has happened by the time `emit` returns; the
gateway relies on this to tear the session down before the request that
observed a 401 resolves.

Listeners may be coroutine functions. Their coroutine is scheduled on the
running loop and not awaited, so presentation code can subscribe with an
``async def`` handler (e.g. to navigate to the login screen) without
blocking the emitter.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable


logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Signal:
    """
    Named, synchronous event broadcaster.

    ## Example:
    ```python
    invalidated = Signal("session_invalidated")

    def on_invalidated(reason: str) -> None:
        print(f"logged out: {reason}")

    invalidated.connect(on_invalidated)
    invalidated.emit("token expired")
    ```
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()

    def connect(self, listener: Listener) -> Listener:
        """
        Register a listener. Connecting the same callable twice is a no-op.

        Returns the listener so the method can be used as a decorator.
        """
        if listener not in self._listeners:
            self._listeners.append(listener)
        return listener

    def disconnect(self, listener: Listener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listeners(self) -> tuple[Listener, ...]:
        return tuple(self._listeners)

    def emit(self, *args: Any, **kwargs: Any) -> None:
        """
        Call every listener with the given arguments.

        A listener that raises is logged and skipped; the remaining
        listeners still run and the emitter never sees the exception.
        """
        # Snapshot so listeners may disconnect themselves while running
        for listener in list(self._listeners):
            try:
                result = listener(*args, **kwargs)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.error(
                    f"Listener {listener!r} for signal '{self.name}' failed: {e}",
                    exc_info=True,
                )

    def _schedule(self, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"Async listener for signal '{self.name}' dropped: no running event loop"
            )
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Async listener for signal '{self.name}' failed: {error}",
                exc_info=error,
            )

    def __len__(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"Signal({self.name!r}, listeners={len(self._listeners)})"
