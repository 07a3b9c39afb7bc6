# Overview: Dict-backed remote store with fault injection, used by tests and local demos.

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from typing import Mapping

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models._base import new_id
from ..time_utils import to_utc_z, utcnow
from .base import (
    DELETE,
    INSERT,
    REVISION_FIELD,
    UPDATE,
    ChangeEvent,
    RemoteResult,
    RemoteStore,
    WriteRecord,
    matches,
)


logger = logging.getLogger(__name__)

# Tables whose rows carry a created timestamp the store fills in
_CREATED_FIELDS = {
    "orders": "created_at",
    "notifications": "created_at",
    "merchants": "created_at",
    "payment_requests": "request_date",
}


class InMemoryRemoteStore(RemoteStore):
    """
    Remote store kept in process memory.

    Every write bumps the row's revision and publishes to the hub, the same
    contract SqlRemoteStore honours. Failures can be queued per method with
    fail_next(); publish_events=False simulates a feed that never delivers.
    """

    def __init__(self, hub=None, *, latency: float = 0.0):
        super().__init__(hub)
        self.latency = latency
        self.publish_events = True
        self.writes: list[WriteRecord] = []
        self._tables: dict[str, dict] = {}
        self._failures: dict[str, deque] = {}

    # -------------------------------------------------------------------------
    # Test and seeding helpers
    # -------------------------------------------------------------------------

    def seed(self, table: str, *records: Mapping) -> list[dict]:
        """Insert rows directly, without events or write-log entries."""
        rows = []
        for record in records:
            row = self._prepare_insert(table, record)
            self._tables.setdefault(table, {})[row["id"]] = row
            rows.append(copy.deepcopy(row))
        return rows

    def rows(self, table: str) -> list[dict]:
        return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]

    def fail_next(self, method: str, error: Exception, times: int = 1) -> None:
        queue = self._failures.setdefault(method, deque())
        for _ in range(times):
            queue.append(error)

    def write_count(self, method: str | None = None, table: str | None = None) -> int:
        return sum(
            1 for w in self.writes
            if (method is None or w.method == method) and (table is None or w.table == table)
        )

    def server_update(self, table: str, filters: Mapping, patch: Mapping) -> list[dict]:
        """A write made by some other actor (admin, dispatch) that the feed will report."""
        return self._apply_update(table, filters, patch, None)

    def server_insert(self, table: str, record: Mapping) -> dict:
        return self._apply_insert(table, record)

    # -------------------------------------------------------------------------
    # RemoteStore API
    # -------------------------------------------------------------------------

    async def fetch_all(self, table, filters=None, order_by=None, descending=False, limit=None):
        failure = await self._enter("fetch_all")
        if failure:
            return failure
        rows = [copy.deepcopy(r) for r in self._tables.get(table, {}).values() if matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return RemoteResult.success(rows)

    async def insert(self, table, record):
        failure = await self._enter("insert")
        if failure:
            return failure
        self.writes.append(WriteRecord("insert", table, payload=dict(record)))
        try:
            return RemoteResult.success(self._apply_insert(table, record))
        except (ConflictError, ValidationError) as exc:
            return RemoteResult.failure(exc)

    async def upsert(self, table, record, conflict_key="id", ignore_duplicates=False):
        failure = await self._enter("upsert")
        if failure:
            return failure
        self.writes.append(WriteRecord("upsert", table, filters={conflict_key: record.get(conflict_key)}, payload=dict(record)))
        existing = None
        if record.get(conflict_key) is not None:
            existing = next(
                (r for r in self._tables.get(table, {}).values() if r.get(conflict_key) == record[conflict_key]),
                None,
            )
        if existing is not None:
            if ignore_duplicates:
                return RemoteResult.success(copy.deepcopy(existing))
            rows = self._apply_update(table, {"id": existing["id"]}, record, None)
            return RemoteResult.success(rows[0])
        return RemoteResult.success(self._apply_insert(table, record))

    async def update(self, table, filters, patch, expected_revision=None):
        failure = await self._enter("update")
        if failure:
            return failure
        self.writes.append(WriteRecord("update", table, filters=dict(filters), payload=dict(patch)))
        try:
            return RemoteResult.success(self._apply_update(table, filters, patch, expected_revision))
        except (ConflictError, NotFoundError) as exc:
            return RemoteResult.failure(exc)

    async def delete(self, table, filters):
        failure = await self._enter("delete")
        if failure:
            return failure
        self.writes.append(WriteRecord("delete", table, filters=dict(filters)))
        rows = self._tables.get(table, {})
        doomed = [r for r in rows.values() if matches(r, filters)]
        for row in doomed:
            del rows[row["id"]]
            self._publish(ChangeEvent(table, DELETE, before=copy.deepcopy(row)))
        return RemoteResult.success(len(doomed))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _enter(self, method: str) -> RemoteResult | None:
        # Every call suspends, like a real network round trip
        await asyncio.sleep(self.latency)
        queue = self._failures.get(method)
        if queue:
            error = queue.popleft()
            logger.debug("Injected %s failure: %r", method, error)
            return RemoteResult.failure(error)
        return None

    def _prepare_insert(self, table: str, record: Mapping) -> dict:
        row = copy.deepcopy(dict(record))
        row.setdefault("id", new_id())
        row[REVISION_FIELD] = 1
        created_field = _CREATED_FIELDS.get(table)
        if created_field and not row.get(created_field):
            row[created_field] = to_utc_z(utcnow())
        return row

    def _apply_insert(self, table: str, record: Mapping) -> dict:
        rows = self._tables.setdefault(table, {})
        row = self._prepare_insert(table, record)
        if row["id"] in rows:
            raise ConflictError(f"Duplicate id {row['id']} in {table}")
        rows[row["id"]] = row
        self._publish(ChangeEvent(table, INSERT, after=copy.deepcopy(row)))
        return copy.deepcopy(row)

    def _apply_update(self, table, filters, patch, expected_revision) -> list[dict]:
        targets = [r for r in self._tables.get(table, {}).values() if matches(r, filters)]
        if not targets:
            raise NotFoundError(f"No {table} row matches {dict(filters)}")
        if expected_revision is not None and any(r.get(REVISION_FIELD) != expected_revision for r in targets):
            raise ConflictError(f"{table} row changed since revision {expected_revision}")
        updated = []
        for row in targets:
            before = copy.deepcopy(row)
            for name, value in patch.items():
                if name in ("id", REVISION_FIELD):
                    continue
                row[name] = copy.deepcopy(value)
            row[REVISION_FIELD] = before.get(REVISION_FIELD, 0) + 1
            self._publish(ChangeEvent(table, UPDATE, after=copy.deepcopy(row), before=before))
            updated.append(copy.deepcopy(row))
        return updated

    def _publish(self, event: ChangeEvent) -> None:
        if self.publish_events:
            self.hub.publish(event)
