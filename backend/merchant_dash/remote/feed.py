# Overview: In-process change-feed hub and the per-subscription client the sync engine consumes.

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Iterable, Mapping

from ..errors import TransientNetworkError
from .base import ALL_EVENTS, ChangeEvent, matches


logger = logging.getLogger(__name__)

_CLOSED = object()
_DISCONNECTED = object()


class ChangeFeedClient:
    """
    One subscription to a filtered table.

    Iterate it with ``async for``; a dropped connection raises
    TransientNetworkError from the iterator and closes the client. Events
    still queued when the client closes are discarded.
    """

    def __init__(self, hub: "ChangeFeedHub", table: str, filters: Mapping | None, event_types: Iterable[str]):
        self._hub = hub
        self.table = table
        self.filters = dict(filters or {})
        self.event_types = frozenset(event_types)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_open(self) -> bool:
        return self._queue is not None and not self._closed

    def open(self) -> "ChangeFeedClient":
        if self._closed:
            raise RuntimeError("Change feed client already closed")
        if self._queue is None:
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()
            self._hub._attach(self)
            logger.debug("Subscribed to %s %s", self.table, self.filters)
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._detach(self)
        if self._queue is not None:
            self._queue.put_nowait(_CLOSED)
        logger.debug("Unsubscribed from %s %s", self.table, self.filters)

    def wants(self, event: ChangeEvent) -> bool:
        return (
            event.table == self.table
            and event.operation in self.event_types
            and matches(event.record(), self.filters)
        )

    def _post(self, item) -> None:
        # Called from whichever thread committed the change
        loop = self._loop
        if loop is None or self._closed or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.debug("Dropped event for %s: event loop closed", self.table)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._queue is None:
            self.open()
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        if item is _DISCONNECTED:
            self.close()
            raise TransientNetworkError(f"Change feed for {self.table} disconnected")
        return item


class ChangeFeedHub:
    """
    Fans committed row changes out to matching subscriptions.

    Thread-safe: writers publish from worker threads, clients receive on
    their own event loop.
    """

    def __init__(self):
        self._clients: set[ChangeFeedClient] = set()
        self._lock = threading.Lock()

    def subscribe(self, table: str, filters: Mapping | None = None, event_types: Iterable[str] = ALL_EVENTS) -> ChangeFeedClient:
        return ChangeFeedClient(self, table, filters, event_types)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            clients = [c for c in self._clients if c.wants(event)]
        for client in clients:
            client._post(event)
        return len(clients)

    def drop_connections(self, table: str | None = None) -> int:
        """Simulates (or propagates) a connection loss to live subscribers."""
        with self._lock:
            clients = [c for c in self._clients if table is None or c.table == table]
        for client in clients:
            client._post(_DISCONNECTED)
        if clients:
            logger.warning("Dropped %d change feed connection(s)", len(clients))
        return len(clients)

    def _attach(self, client: ChangeFeedClient) -> None:
        with self._lock:
            self._clients.add(client)

    def _detach(self, client: ChangeFeedClient) -> None:
        with self._lock:
            self._clients.discard(client)
