# Overview: Optimistic local writes with confirmation, rollback and per-key queuing.

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from ..errors import ConflictError, NotFoundError, ValidationError, user_message
from ..remote.base import REVISION_FIELD, RemoteResult, RemoteStore, revision_of
from .collection import (
    CHANGE_CONFIRM,
    CHANGE_REMOVE,
    CHANGE_REPLACE,
    CHANGE_UPSERT,
    CollectionStore,
    StoreChange,
    thaw,
)


logger = logging.getLogger(__name__)

# Outcome statuses
CONFIRMED = "confirmed"
UNCHANGED = "unchanged"
REJECTED = "rejected"
ROLLED_BACK = "rolled_back"
REVERTED = "reverted"

Transform = Callable[[dict], dict | None]
Writer = Callable[[dict, dict, "int | None"], Awaitable[RemoteResult]]


@dataclass(frozen=True)
class MutationOutcome:
    status: str
    record: dict | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status in (CONFIRMED, UNCHANGED)

    @property
    def message(self) -> str | None:
        return user_message(self.error)

    def to_dict(self) -> dict:
        return {
            "success": self.ok,
            "status": self.status,
            "record": self.record,
            "error": self.message,
        }


class OptimisticMutator:
    """
    Applies user intents to a CollectionStore ahead of the remote write.

    Protocol per call:
    1. transform the cached record into the speculative one
    2. write it to the store tagged unconfirmed
    3. issue the remote write (guarded by the cached revision)
    4. success: wait for the feed to confirm, at most confirmation_timeout
       seconds, then trust the write response; failure: restore the
       pre-mutation record

    Calls for the same key queue behind each other, so a second intent is
    computed from the outcome of the first rather than racing it.
    """

    def __init__(self, remote: RemoteStore, store: CollectionStore, table: str, *, confirmation_timeout: float = 3.0):
        self.remote = remote
        self.store = store
        self.table = table
        self.confirmation_timeout = confirmation_timeout
        self._locks: dict[Any, asyncio.Lock] = {}
        self._queued: dict[Any, int] = {}
        self._waiters: dict[Any, asyncio.Future] = {}
        self._unsubscribe = store.subscribe(self._on_store_change)

    def close(self) -> None:
        self._unsubscribe()
        for waiter in self._waiters.values():
            if not waiter.done():
                waiter.cancel()

    def in_flight(self, key) -> bool:
        return self._queued.get(key, 0) > 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def mutate(self, key, transform: Transform, *, write: Writer | None = None) -> MutationOutcome:
        async with self._key_lock(key):
            return await self._mutate(key, transform, write)

    async def delete(self, key) -> MutationOutcome:
        async with self._key_lock(key):
            return await self._delete(key)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _key_lock(self, key):
        self._queued[key] = self._queued.get(key, 0) + 1
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                yield
        finally:
            self._release_slot(key)

    def _release_slot(self, key) -> None:
        remaining = self._queued.get(key, 1) - 1
        if remaining <= 0:
            self._queued.pop(key, None)
            self._locks.pop(key, None)
        else:
            self._queued[key] = remaining

    async def _mutate(self, key, transform: Transform, write: Writer | None) -> MutationOutcome:
        current = self.store.get(key)
        if current is None:
            return MutationOutcome(REJECTED, error=NotFoundError(f"{self.store.name} {key} is not loaded"))
        previous = thaw(current)

        try:
            proposed = transform(thaw(current))
        except (ValidationError, ConflictError) as exc:
            logger.info("%s %s: intent rejected: %s", self.store.name, key, exc)
            return MutationOutcome(REJECTED, record=previous, error=exc)
        if proposed is None or proposed == previous:
            return MutationOutcome(UNCHANGED, record=previous)

        patch = {
            name: value for name, value in proposed.items()
            if name not in (self.store.key_field, REVISION_FIELD) and previous.get(name) != value
        }
        base = revision_of(previous)

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters[key] = waiter
        try:
            self.store.upsert(proposed, unconfirmed=True, base_revision=base, expected_fields=patch)
            if write is not None:
                result = await write(proposed, patch, base)
            else:
                result = await self.remote.update(
                    self.table, {self.store.key_field: key}, patch, expected_revision=base,
                )

            if not result.ok:
                self._rollback(key, previous)
                logger.warning("%s %s: write failed, rolled back: %s", self.store.name, key, result.error)
                return MutationOutcome(ROLLED_BACK, record=previous, error=result.error)

            if not waiter.done():
                try:
                    await asyncio.wait_for(asyncio.shield(waiter), self.confirmation_timeout)
                except asyncio.TimeoutError:
                    logger.debug("%s %s: no feed confirmation within %.1fs; trusting write response",
                                 self.store.name, key, self.confirmation_timeout)

            if waiter.done() and not waiter.cancelled() and waiter.result() == REVERTED:
                return MutationOutcome(
                    REVERTED,
                    record=thaw(self.store.get(key)),
                    error=ConflictError("Optimistic update reverted by a fresh load"),
                )

            if self.store.is_unconfirmed(key):
                self._confirm_from_response(key, proposed, result.data)
            return MutationOutcome(CONFIRMED, record=thaw(self.store.get(key)))
        finally:
            self._waiters.pop(key, None)

    def _confirm_from_response(self, key, proposed: dict, data) -> None:
        row = None
        if isinstance(data, list):
            row = next((r for r in data if isinstance(r, Mapping) and r.get(self.store.key_field) == key), None)
        elif isinstance(data, Mapping):
            row = data
        if row is not None and revision_of(row) is not None:
            # Keep fields the response does not carry (e.g. order items)
            self.store.upsert({**proposed, **row})
        else:
            self.store.mark_confirmed(key)

    def _rollback(self, key, previous: dict) -> None:
        # Only undo our own speculative entry; a fresh load already won
        if self.store.is_unconfirmed(key):
            self.store.upsert(previous)

    async def _delete(self, key) -> MutationOutcome:
        current = self.store.get(key)
        if current is None:
            return MutationOutcome(UNCHANGED)
        previous = thaw(current)
        self.store.remove(key, tombstone=True)
        result = await self.remote.delete(self.table, {self.store.key_field: key})
        if not result.ok:
            if key not in self.store:
                self.store.upsert(previous)
            logger.warning("%s %s: delete failed, restored: %s", self.store.name, key, result.error)
            return MutationOutcome(ROLLED_BACK, record=previous, error=result.error)
        return MutationOutcome(CONFIRMED, record=previous)

    def _on_store_change(self, store: CollectionStore, change: StoreChange) -> None:
        if not self._waiters:
            return
        if change.kind == CHANGE_REPLACE:
            for key, waiter in list(self._waiters.items()):
                if waiter.done():
                    continue
                waiter.set_result(REVERTED if key in change.reverted else CONFIRMED)
            return
        if change.kind in (CHANGE_UPSERT, CHANGE_CONFIRM, CHANGE_REMOVE) and change.confirmed:
            waiter = self._waiters.get(change.key)
            if waiter is not None and not waiter.done():
                waiter.set_result(CONFIRMED)
