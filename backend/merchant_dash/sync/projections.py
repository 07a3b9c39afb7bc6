# Overview: Read models derived from collection snapshots: revenue, unread count, status buckets.

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Iterable, Mapping

from ..rules import FULFILLED_ORDER_STATUSES, ORDER_STATUSES, STOCK_STATUSES, stock_status
from ..time_utils import local_date, local_today
from .collection import CHANGE_CONFIRM, CHANGE_REPLACE, CHANGE_UPSERT, CollectionStore, Snapshot, StoreChange


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# =============================================================================
# PURE FUNCTIONS OF A SNAPSHOT
# =============================================================================

def unread_count(items: Iterable[Mapping]) -> int:
    return sum(1 for n in items if not n.get("is_read"))


def inventory_buckets(items: Iterable[Mapping]) -> dict[str, int]:
    """Counts per stock status, derived from the stock numbers on read."""
    buckets = {status: 0 for status in STOCK_STATUSES}
    for item in items:
        buckets[stock_status(item.get("current_stock") or 0, item.get("maximum_stock") or 0)] += 1
    return buckets


def order_status_counts(items: Iterable[Mapping]) -> dict[str, int]:
    counts = {status: 0 for status in ORDER_STATUSES}
    for order in items:
        status = order.get("status")
        if status in counts:
            counts[status] += 1
    return counts


def daily_earnings(items: Iterable[Mapping], tz: tzinfo, *, days: int = 7, today: date | None = None) -> list[dict]:
    """
    Fulfilled order totals per local day for the last `days` days, oldest first.
    """
    if today is None:
        today = local_today(tz)
    first = today - timedelta(days=days - 1)
    totals = {first + timedelta(days=i): 0 for i in range(days)}
    for order in items:
        if order.get("status") not in FULFILLED_ORDER_STATUSES:
            continue
        day = local_date(order.get("created_at"), tz)
        if day in totals:
            totals[day] += order.get("total_amount") or 0
    return [
        {"date": day.isoformat(), "day": day.strftime("%a"), "earnings": amount}
        for day, amount in totals.items()
    ]


def earnings_summary(series: list[dict]) -> dict:
    total = sum(d["earnings"] for d in series)
    return {
        "daily": series,
        "total": total,
        "daily_average": round(total / len(series)) if series else 0,
    }


# =============================================================================
# INCREMENTAL PROJECTIONS
# =============================================================================

class RevenueProjection:
    """
    Today's revenue: total_amount of orders created today (local calendar
    day) that reached ready or delivered.

    Built once from the loaded snapshot, then adjusted from the store's
    change stream. Each order id is counted at most once per day, so
    replayed or duplicated events cannot inflate the total. Once counted an
    order stays counted: there is no decrement path. Optimistic entries do
    not count until confirmed. The total restarts when the local day
    rolls over.
    """

    def __init__(self, store: CollectionStore, tz: tzinfo, *, clock: Clock | None = None):
        self._store = store
        self._tz = tz
        self._clock = clock
        self._day: date | None = None
        self._total = 0
        self._counted: set = set()
        self._unsubscribe = store.subscribe(self._on_change)
        self._rebuild()

    def close(self) -> None:
        self._unsubscribe()

    @property
    def counted_ids(self) -> frozenset:
        return frozenset(self._counted)

    def value(self) -> int:
        self._roll_day()
        return self._total

    def _today(self) -> date:
        return local_today(self._tz, self._clock() if self._clock else None)

    def _roll_day(self) -> bool:
        today = self._today()
        if today == self._day:
            return False
        if self._day is not None:
            logger.info("Local day changed to %s; restarting revenue total", today)
        self._rebuild(today)
        return True

    def _rebuild(self, today: date | None = None) -> None:
        self._day = today or self._today()
        self._total = 0
        self._counted = set()
        for order in self._store.snapshot().confirmed_items():
            self._consider(order)

    def _consider(self, order: Mapping) -> None:
        order_id = order.get(self._store.key_field)
        if order_id in self._counted:
            return
        if order.get("status") not in FULFILLED_ORDER_STATUSES:
            return
        if local_date(order.get("created_at"), self._tz) != self._day:
            return
        self._counted.add(order_id)
        self._total += order.get("total_amount") or 0

    def _on_change(self, store: CollectionStore, change: StoreChange) -> None:
        if self._roll_day():
            return
        if change.kind == CHANGE_REPLACE:
            for order in store.snapshot().confirmed_items():
                self._consider(order)
        elif change.kind in (CHANGE_UPSERT, CHANGE_CONFIRM) and change.confirmed and change.after is not None:
            self._consider(change.after)


class UnreadCountProjection:
    """Unread notifications, recomputed from the snapshot after every change."""

    def __init__(self, store: CollectionStore):
        self._store = store
        self._value = unread_count(store.snapshot().items)
        self._unsubscribe = store.subscribe(self._on_change)

    def close(self) -> None:
        self._unsubscribe()

    def value(self) -> int:
        return self._value

    def _on_change(self, store: CollectionStore, change: StoreChange) -> None:
        self._value = unread_count(store.snapshot().items)


class DashboardProjections:
    """The projections() surface for one merchant view."""

    def __init__(self, *, orders: CollectionStore, notifications: CollectionStore, inventory: CollectionStore,
                 tz: tzinfo, clock: Clock | None = None):
        self._orders = orders
        self._inventory = inventory
        self._tz = tz
        self.revenue = RevenueProjection(orders, tz, clock=clock)
        self.unread = UnreadCountProjection(notifications)

    def close(self) -> None:
        self.revenue.close()
        self.unread.close()

    def as_dict(self) -> dict:
        orders: Snapshot = self._orders.snapshot()
        return {
            "revenue_today": self.revenue.value(),
            "unread_count": self.unread.value(),
            "inventory_buckets": inventory_buckets(self._inventory.snapshot().items),
            "order_status_counts": order_status_counts(orders.items),
        }

    def earnings(self, days: int = 7) -> dict:
        return earnings_summary(daily_earnings(self._orders.snapshot().items, self._tz, days=days))
