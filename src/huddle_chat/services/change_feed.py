# src/huddle_chat/services/change_feed.py
"""In-process change feed for table insert/update events.

The store publishes one ``ChangeEvent`` per committed row change. Each
subscription owns a queue drained by its own task, so a channel delivers
events in the order they were published while separate channels run
independently of each other.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kinds of row change a subscription can receive."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change, carrying the new row values."""

    table: str
    type: ChangeType
    new: Mapping[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], Awaitable[None] | None]


class Subscription:
    """Handle for one live channel; call ``release`` to stop delivery."""

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        callback: ChangeCallback,
        where: Mapping[str, Any] | None,
        events: frozenset[ChangeType],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.table = table
        self.where = dict(where or {})
        self.events = events
        self._feed = feed
        self._callback = callback
        self._loop = loop
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._released = False
        self._pending = 0
        self._task = loop.create_task(self._pump())

    @property
    def released(self) -> bool:
        """Return True once ``release`` has been called."""
        return self._released

    @property
    def pending(self) -> int:
        """Return the number of queued or in-flight events."""
        return self._pending

    def matches(self, event: ChangeEvent) -> bool:
        """Return True if the event passes this channel's table, type and column filters."""
        if event.table != self.table or event.type not in self.events:
            return False
        return all(event.new.get(column) == value for column, value in self.where.items())

    def offer(self, event: ChangeEvent) -> None:
        """Queue an event for delivery; safe to call from any thread."""
        if self._released:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._enqueue(event)
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, event)
        except RuntimeError:
            logger.debug("Dropping %s event for closed loop on %s", event.type.value, self.table)

    def _enqueue(self, event: ChangeEvent) -> None:
        if not self._released:
            self._pending += 1
            self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if self._released:
                    continue
                result = self._callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as err:
                logger.error(
                    "Change callback failed for %s %s: %s",
                    self.table,
                    event.type.value,
                    err,
                    exc_info=True,
                )
            finally:
                self._pending -= 1
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    def release(self) -> None:
        """Stop delivery. Calling it again is a no-op."""
        if self._released:
            return
        self._released = True
        self._feed._discard(self)
        while not self._queue.empty():
            self._queue.get_nowait()
            self._pending -= 1
            self._queue.task_done()
        self._task.cancel()


class ChangeFeed:
    """Fan-out hub connecting store writes to live subscriptions."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        where: Mapping[str, Any] | None = None,
        events: Iterable[ChangeType] = (ChangeType.INSERT, ChangeType.UPDATE),
    ) -> Subscription:
        """Open a channel for ``table`` changes matching ``where`` column equality.

        Must be called from inside a running event loop; callbacks run on it.
        """
        loop = asyncio.get_running_loop()
        subscription = Subscription(self, table, callback, where, frozenset(events), loop)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s changes where %s", table, subscription.where or "*")
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        """Deliver ``event`` to every matching subscription."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if subscription.matches(event):
                subscription.offer(event)

    async def drain(self) -> None:
        """Wait until every open channel has handled its queued events.

        Callbacks may publish further events to other channels, so this repeats
        until all channels are idle at the same time.
        """
        while True:
            with self._lock:
                subscriptions = list(self._subscriptions)
            await asyncio.gather(*(subscription.join() for subscription in subscriptions))
            if not any(subscription.pending for subscription in subscriptions):
                return

    def close(self) -> None:
        """Release every open subscription."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.release()

    @property
    def subscription_count(self) -> int:
        """Return the number of open channels."""
        with self._lock:
            return len(self._subscriptions)

    def _discard(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
