# Overview: Fire-and-forget activity, performance and payout logging.

from __future__ import annotations

import asyncio
import json
import logging
from typing import Mapping

from ..remote.base import RemoteStore


logger = logging.getLogger(__name__)

ACTIVITY_TABLE = "merchant_activity_log"
PERFORMANCE_TABLE = "merchant_performance_log"
PAYMENT_LOG_TABLE = "payment_logs"


def _dump(details: Mapping | None) -> str | None:
    if details is None:
        return None
    return json.dumps(dict(details), default=str, sort_keys=True)


class ActivityTracker:
    """
    Schedules log inserts without making the caller wait for them.

    A failed insert is logged and dropped; it never reaches the intent that
    triggered it. drain() waits for whatever is still pending (used on
    session close and in tests).
    """

    def __init__(self, remote: RemoteStore):
        self.remote = remote
        self._pending: set[asyncio.Task] = set()
        self.failures = 0

    def track(self, table: str, record: Mapping) -> asyncio.Task:
        task = asyncio.create_task(self._insert(table, dict(record)))
        self._pending.add(task)
        task.add_done_callback(self._done)
        return task

    def activity(self, merchant_id: str, action: str, details: Mapping | None = None) -> asyncio.Task:
        return self.track(ACTIVITY_TABLE, {
            "merchant_id": merchant_id,
            "action": action,
            "details": _dump(details),
        })

    def performance(self, merchant_id: str, event_type: str, details: Mapping | None = None) -> asyncio.Task:
        return self.track(PERFORMANCE_TABLE, {
            "merchant_id": merchant_id,
            "event_type": event_type,
            "event_details": _dump(details),
        })

    def payment(self, merchant_id: str, action: str, amount: int | None = None, details: Mapping | None = None) -> asyncio.Task:
        return self.track(PAYMENT_LOG_TABLE, {
            "merchant_id": merchant_id,
            "action": action,
            "amount": amount,
            "details": _dump(details),
        })

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _insert(self, table: str, record: dict) -> bool:
        result = await self.remote.insert(table, record)
        if not result.ok:
            self.failures += 1
            logger.warning("Tracking insert into %s failed: %s", table, result.message)
            return False
        return True

    def _done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.error("Tracking task crashed", exc_info=exc)
