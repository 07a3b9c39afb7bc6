# Overview: Applies change-feed events to a CollectionStore; owns the subscription and its resync policy.

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

from ..errors import RetriesExhaustedError, TransientNetworkError, user_message
from ..remote.base import DELETE, ChangeEvent, RemoteResult, RemoteStore, revision_of
from .collection import CollectionStore
from .entities import MERCHANT_KEY, EntitySpec


logger = logging.getLogger(__name__)


class Reconciler:
    """
    Keeps one CollectionStore in step with the remote table.

    apply() is idempotent and drops stale replays: an event whose revision
    is older than the cached row (or not newer than the revision an
    optimistic entry was derived from) changes nothing. Deleted keys are
    tombstoned so a replayed insert cannot bring them back.

    After close() every late event is discarded.
    """

    def __init__(
        self,
        remote: RemoteStore,
        spec: EntitySpec,
        merchant_id: str,
        *,
        store: CollectionStore | None = None,
        retry_attempts: int = 5,
        retry_backoff: float = 0.5,
        max_backoff: float = 10.0,
    ):
        self.remote = remote
        self.spec = spec
        self.merchant_id = merchant_id
        self.store = store or spec.make_store()
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.max_backoff = max_backoff
        self.resync_count = 0
        self._live = True
        self._feed = None
        self._task: asyncio.Task | None = None

    @property
    def live(self) -> bool:
        return self._live

    @property
    def task(self) -> asyncio.Task | None:
        return self._task

    # -------------------------------------------------------------------------
    # Bulk load
    # -------------------------------------------------------------------------

    async def load(self) -> RemoteResult:
        """
        Full fetch into the store. A failed load keeps the previous
        snapshot and sets the store's error indicator.
        """
        self.store.set_loading(True)
        try:
            result = await self.spec.fetch(self.remote, self.merchant_id)
            if not self._live:
                return result
            if not result.ok:
                logger.warning("Loading %s for merchant %s failed: %s", self.spec.name, self.merchant_id, result.message)
                self.store.set_error(user_message(result.error))
                return result
            self.store.replace_all(result.data)
            self.store.set_error(None)
            return result
        finally:
            self.store.set_loading(False)

    # -------------------------------------------------------------------------
    # Event application
    # -------------------------------------------------------------------------

    def apply(self, event: ChangeEvent) -> bool:
        """Returns True when the event changed the store."""
        if not self._live:
            return False
        key = event.key(self.spec.key_field)
        if key is None:
            logger.debug("%s: ignoring event without key: %r", self.spec.name, event)
            return False

        if event.operation == DELETE:
            return self.store.remove(key, tombstone=True) is not None

        if self.store.is_tombstoned(key):
            logger.debug("%s: ignoring %s for deleted %s", self.spec.name, event.operation, key)
            return False

        record = self.spec.normalize(event.after)
        if self._is_stale(key, record):
            logger.debug("%s: dropping stale %s for %s", self.spec.name, event.operation, key)
            return False
        return self.store.upsert(record) is not None

    def _is_stale(self, key, incoming: Mapping) -> bool:
        incoming_rev = revision_of(incoming)
        if incoming_rev is None:
            return False
        if self.store.is_unconfirmed(key):
            base = self.store.base_revision(key)
            return base is not None and incoming_rev <= base
        current_rev = revision_of(self.store.get(key))
        return current_rev is not None and incoming_rev < current_rev

    # -------------------------------------------------------------------------
    # Subscription lifecycle
    # -------------------------------------------------------------------------

    def _open_feed(self):
        self._feed = self.remote.subscribe(self.spec.table, {MERCHANT_KEY: self.merchant_id}).open()
        return self._feed

    async def start(self) -> RemoteResult:
        """
        Subscribe, load, then consume in the background. The feed is opened
        first so changes committed during the load are buffered, not lost.

        A transient load failure is returned as-is and then retried in the
        background with the same backoff as a dropped feed.
        """
        self._open_feed()
        result = await self.load()
        if self._live:
            load_failed = not result.ok and isinstance(result.error, TransientNetworkError)
            self._task = asyncio.create_task(
                self._consume(load_failed=load_failed), name=f"reconcile-{self.spec.name}-{self.merchant_id}",
            )
        return result

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_backoff * (2 ** (attempt - 1)), self.max_backoff)

    async def _consume(self, *, load_failed: bool = False) -> None:
        attempt = 0
        resync = False
        if load_failed:
            attempt = 1
            delay = self._backoff(attempt)
            logger.warning(
                "Initial load of %s for merchant %s failed; retrying in %.2fs (attempt %d/%d)",
                self.spec.name, self.merchant_id, delay, attempt, self.retry_attempts,
            )
            await asyncio.sleep(delay)
            resync = True
        while self._live:
            try:
                if resync:
                    await self._resync()
                    attempt = 0
                    resync = False
                async for event in self._feed:
                    if not self._live:
                        return
                    event = await self.spec.hydrate(self.remote, event, self.store)
                    if not self._live:
                        return
                    self.apply(event)
                if not self._live:
                    return
                raise TransientNetworkError(f"Change feed for {self.spec.table} ended")
            except TransientNetworkError as exc:
                attempt += 1
                if self._feed is not None:
                    self._feed.close()
                if attempt > self.retry_attempts:
                    error = RetriesExhaustedError(f"{self.spec.name}: gave up after {self.retry_attempts} reconnect attempts")
                    logger.error("%s", error)
                    self.store.set_error(user_message(error))
                    return
                delay = self._backoff(attempt)
                logger.warning(
                    "%s feed for merchant %s dropped (%s); resubscribing in %.2fs (attempt %d/%d)",
                    self.spec.name, self.merchant_id, exc, delay, attempt, self.retry_attempts,
                )
                await asyncio.sleep(delay)
                resync = True

    async def _resync(self) -> None:
        """
        Resubscribe and re-fetch; events missed while down only exist in the
        table. A transient load failure counts as another failed attempt.
        """
        if self._feed is not None:
            self._feed.close()
        self._open_feed()
        self.resync_count += 1
        result = await self.load()
        if not result.ok and isinstance(result.error, TransientNetworkError):
            raise result.error
        if result.ok:
            logger.info("%s for merchant %s resynchronised", self.spec.name, self.merchant_id)

    async def close(self) -> None:
        if not self._live:
            return
        self._live = False
        if self._feed is not None:
            self._feed.close()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("%s reconciler for merchant %s closed", self.spec.name, self.merchant_id)
