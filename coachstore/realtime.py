"""
Realtime subscription handles.

Each `Subscription` owns an asyncio queue and one task draining it, so a slow
or failing callback only delays its own subscription. Backends push raw
`Change` notifications into the queue from the event loop; the drain task
turns each into a `RealtimeUpdate` (via the `render` coroutine supplied by the
client) and invokes the callback.

`unsubscribe()` is idempotent and synchronous. Once it returns, nothing more
is delivered, including changes that were already queued.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from coachstore.domain.results import RealtimeUpdate
from coachstore.infrastructure.backend import CancelWatch, Change
from coachstore.utils.logging import get_logger

UpdateCallback = Callable[[RealtimeUpdate], Union[None, Awaitable[None]]]
# Called with None for the initial snapshot, then with every Change
Renderer = Callable[[Optional[Change]], Awaitable[Optional[RealtimeUpdate]]]

_INITIAL = object()


class Subscription:
    """
    Handle returned by `DocumentStoreClient.subscribe_to_*`.

    Parameters
    ----------
    callback : callable
        Receives each `RealtimeUpdate`; may be sync or async.
    render : coroutine function
        Builds the update delivered for a change (None = initial snapshot).
    name : str
        Used in logs, e.g. "sports/abc123" or "sports:*".
    on_close : callable, optional
        Called once with this handle when it is unsubscribed.
    """

    def __init__(
        self,
        callback: UpdateCallback,
        render: Renderer,
        name: str,
        logger: Optional[logging.Logger] = None,
        on_close: Optional[Callable[["Subscription"], None]] = None,
    ) -> None:
        self.name = name
        self._on_close = on_close
        self._callback = callback
        self._render = render
        self._log = logger or get_logger(__name__)
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._cancel_watch: Optional[CancelWatch] = None
        self._closed = False
        self.delivered = 0
        self._task = asyncio.create_task(self._drain(), name=f"subscription:{name}")

    @property
    def active(self) -> bool:
        return not self._closed

    def attach(self, cancel_watch: CancelWatch) -> None:
        self._cancel_watch = cancel_watch

    def push(self, change: Change) -> None:
        """Enqueue a backend change; ignored after unsubscribe."""
        if not self._closed:
            self._queue.put_nowait(change)

    def push_initial(self) -> None:
        if not self._closed:
            self._queue.put_nowait(_INITIAL)

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if self._closed:
                    continue
                update = await self._render(None if item is _INITIAL else item)
                if update is None or self._closed:
                    continue
                result = self._callback(update)
                if inspect.isawaitable(result):
                    await result
                self.delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("Subscription callback failed", extra={"subscription": self.name})
            finally:
                self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait until every change pushed so far has been delivered."""
        # let backend call_soon fan-out land in the queue first
        await asyncio.sleep(0)
        if self._closed:
            return
        await self._queue.join()

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cancel_watch is not None:
            self._cancel_watch()
            self._cancel_watch = None
        self._task.cancel()
        if self._on_close is not None:
            self._on_close(self)
            self._on_close = None
        self._log.debug("Unsubscribed", extra={"subscription": self.name})

    __call__ = unsubscribe


__all__ = ["Renderer", "Subscription", "UpdateCallback"]
