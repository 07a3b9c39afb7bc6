# Overview: Per-entity sync configuration: what to fetch, how to key, normalise and hydrate rows.

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

from ..errors import NotFoundError
from ..remote.base import DELETE, ChangeEvent, RemoteResult, RemoteStore
from ..rules import DEFAULT_MERCHANT_STATUS, stock_status
from ..time_utils import to_utc_z, utcnow
from .collection import CollectionStore


logger = logging.getLogger(__name__)

MERCHANT_KEY = "merchant_id"


class EntitySpec:
    """
    Describes one synchronised collection.

    Subclasses override normalize() for row cleanup and fetch()/hydrate()
    where a collection spans more than one remote table.
    """
    name: str = ""
    table: str = ""
    key_field: str = "id"
    order_by: str | None = None
    descending: bool = False
    # Timestamps the server may restamp on write
    stamp_fields: tuple = ()

    def __init__(self, *, limit: int | None = None):
        self.limit = limit

    def make_store(self) -> CollectionStore:
        return CollectionStore(
            self.name,
            key_field=self.key_field,
            sort_field=self.order_by,
            descending=self.descending,
            stamp_fields=self.stamp_fields,
        )

    def normalize(self, record: Mapping) -> dict:
        return dict(record)

    async def fetch(self, remote: RemoteStore, merchant_id: str) -> RemoteResult:
        result = await remote.fetch_all(
            self.table,
            {MERCHANT_KEY: merchant_id},
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
        )
        if not result.ok:
            return result
        return RemoteResult.success([self.normalize(r) for r in result.data])

    async def hydrate(self, remote: RemoteStore, event: ChangeEvent, store: CollectionStore) -> ChangeEvent:
        """Completes a feed event before it is applied; default is a no-op."""
        return event

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class OrderSpec(EntitySpec):
    """Orders, with their line items folded in from order_items."""
    name = "orders"
    table = "orders"
    order_by = "created_at"
    descending = True
    stamp_fields = ("updated_at",)

    items_table = "order_items"

    def normalize(self, record: Mapping) -> dict:
        order = dict(record)
        order["customer_name"] = order.get("customer_name") or "Customer"
        order["customer_phone"] = order.get("customer_phone") or ""
        order["total_amount"] = order.get("total_amount") or 0
        order["items"] = [self._normalize_item(i) for i in order.get("items") or ()]
        return order

    @staticmethod
    def _normalize_item(item: Mapping) -> dict:
        return {
            "product_id": item.get("product_id"),
            "product_name": item.get("product_name") or f"Product {item.get('product_id')}",
            "quantity": item.get("quantity") or 0,
        }

    async def _items_by_order(self, remote: RemoteStore, order_ids: list) -> RemoteResult:
        if not order_ids:
            return RemoteResult.success({})
        result = await remote.fetch_all(self.items_table, {"order_id": order_ids}, order_by="id")
        if not result.ok:
            return result
        items: dict = {}
        for item in result.data:
            items.setdefault(item["order_id"], []).append(item)
        return RemoteResult.success(items)

    async def fetch(self, remote: RemoteStore, merchant_id: str) -> RemoteResult:
        result = await remote.fetch_all(
            self.table,
            {MERCHANT_KEY: merchant_id},
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
        )
        if not result.ok:
            return result
        items = await self._items_by_order(remote, [o["id"] for o in result.data])
        if not items.ok:
            return items
        return RemoteResult.success([
            self.normalize({**order, "items": items.data.get(order["id"], [])})
            for order in result.data
        ])

    async def hydrate(self, remote: RemoteStore, event: ChangeEvent, store: CollectionStore) -> ChangeEvent:
        if event.operation == DELETE or event.after is None or "items" in event.after:
            return event
        key = event.after.get(self.key_field)
        cached = store.get(key)
        if cached is not None:
            return event.with_after({**event.after, "items": [dict(i) for i in cached.get("items") or ()]})

        items = await self._items_by_order(remote, [key])
        if not items.ok:
            # Applied without items; the next resync fills them in
            logger.warning("Could not load items for order %s: %s", key, items.message)
            return event.with_after({**event.after, "items": []})
        return event.with_after({**event.after, "items": items.data.get(key, [])})


class NotificationSpec(EntitySpec):
    name = "notifications"
    table = "notifications"
    order_by = "created_at"
    descending = True

    def normalize(self, record: Mapping) -> dict:
        notification = dict(record)
        notification["is_read"] = bool(notification.get("is_read"))
        notification["type"] = notification.get("type") or "message"
        return notification


class MerchantStatusSpec(EntitySpec):
    """
    The per-merchant status singleton, keyed by merchant id.

    A missing row is created on first load with an idempotent upsert;
    concurrent loads in this process share one creation attempt.
    """
    name = "status"
    table = "merchant_status"
    key_field = MERCHANT_KEY
    stamp_fields = ("updated_at",)

    def __init__(self, *, limit: int | None = None):
        super().__init__(limit=limit)
        self._creating: dict[str, asyncio.Future] = {}

    def normalize(self, record: Mapping) -> dict:
        status = {**DEFAULT_MERCHANT_STATUS, **{k: v for k, v in record.items() if v is not None}}
        return status

    async def fetch(self, remote: RemoteStore, merchant_id: str) -> RemoteResult:
        result = await super().fetch(remote, merchant_id)
        if not result.ok or result.data:
            return result
        logger.info("No status row for merchant %s; creating default", merchant_id)
        created = await self.ensure_default(remote, merchant_id)
        if not created.ok:
            return created
        return RemoteResult.success([self.normalize(created.data)])

    async def ensure_default(self, remote: RemoteStore, merchant_id: str) -> RemoteResult:
        pending = self._creating.get(merchant_id)
        if pending is None:
            pending = asyncio.ensure_future(self._create_default(remote, merchant_id))
            self._creating[merchant_id] = pending
            pending.add_done_callback(lambda _: self._creating.pop(merchant_id, None))
        return await asyncio.shield(pending)

    async def _create_default(self, remote: RemoteStore, merchant_id: str) -> RemoteResult:
        record = {MERCHANT_KEY: merchant_id, **DEFAULT_MERCHANT_STATUS, "updated_at": to_utc_z(utcnow())}
        result = await remote.upsert(self.table, record, conflict_key=MERCHANT_KEY, ignore_duplicates=True)
        if not result.ok:
            logger.error("Creating default status for merchant %s failed: %s", merchant_id, result.message)
        return result


class InventorySpec(EntitySpec):
    name = "inventory"
    table = "merchant_inventory"
    order_by = "product_name"
    stamp_fields = ("last_updated",)

    def normalize(self, record: Mapping) -> dict:
        item = dict(record)
        item["current_stock"] = item.get("current_stock") or 0
        item["minimum_stock"] = item.get("minimum_stock") or 0
        item["maximum_stock"] = item.get("maximum_stock") or 0
        item["status"] = stock_status(item["current_stock"], item["maximum_stock"])
        return item


def default_specs(*, notification_limit: int | None = 50) -> list[EntitySpec]:
    return [
        OrderSpec(),
        NotificationSpec(limit=notification_limit),
        MerchantStatusSpec(),
        InventorySpec(),
    ]


def find_spec(specs, name: str) -> EntitySpec:
    for spec in specs:
        if spec.name == name:
            return spec
    raise NotFoundError(f"Unknown collection: {name}")
