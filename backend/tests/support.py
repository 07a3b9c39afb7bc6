"""
Shared helpers for the async engine tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from merchant_dash.time_utils import to_utc_z


MERCHANT = "m-1"


async def eventually(predicate, timeout: float = 1.0, interval: float = 0.005):
    """Polls predicate() on the running loop until it is truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        if predicate():
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met within %.2fs" % timeout)
        await asyncio.sleep(interval)


async def settle(rounds: int = 5):
    """Lets queued callbacks and feed deliveries run."""
    for _ in range(rounds):
        await asyncio.sleep(0.001)


class FixedClock:
    """Stand-in for "now" that tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def utc(year, month, day, hour=12, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def order_row(order_id: str, *, status: str = "pending", total: int = 5000, created: datetime | None = None,
              merchant_id: str = MERCHANT, **extra) -> dict:
    created = created or datetime.now(timezone.utc)
    return {
        "id": order_id,
        "order_id": f"ORD-{order_id}",
        "merchant_id": merchant_id,
        "customer_name": "Asha",
        "customer_phone": "255700000001",
        "status": status,
        "total_amount": total,
        "created_at": to_utc_z(created),
        **extra,
    }


def notification_row(notification_id: str, *, is_read: bool = False, merchant_id: str = MERCHANT, **extra) -> dict:
    return {
        "id": notification_id,
        "merchant_id": merchant_id,
        "title": "Hello",
        "message": "Welcome aboard",
        "type": "message",
        "is_read": is_read,
        **extra,
    }


def inventory_row(item_id: str, *, current: int, maximum: int = 100, minimum: int = 10,
                  merchant_id: str = MERCHANT, **extra) -> dict:
    return {
        "id": item_id,
        "merchant_id": merchant_id,
        "product_id": f"p-{item_id}",
        "product_name": f"Product {item_id}",
        "current_stock": current,
        "minimum_stock": minimum,
        "maximum_stock": maximum,
        **extra,
    }
