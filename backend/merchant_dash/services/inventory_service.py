# Overview: Service-layer inventory writes; stock status is derived on every write.

from __future__ import annotations

import logging

from ..errors import ValidationError
from ..remote.base import INSERT, ChangeEvent, RemoteResult
from ..rules import DEFAULT_MAXIMUM_STOCK, DEFAULT_MINIMUM_STOCK, stock_status
from ..sync.mutator import CONFIRMED, MutationOutcome
from ..sync.session import DashboardSession
from ..time_utils import to_utc_z, utcnow
from ..validation import require_fields, validate_stock_levels


logger = logging.getLogger(__name__)

INVENTORY_UPDATE = "inventory_update"
INVENTORY_CREATE = "inventory_create"


async def update_item(session: DashboardSession, item_id: str, current_stock, minimum_stock, maximum_stock) -> MutationOutcome:
    current, minimum, maximum = validate_stock_levels(current_stock, minimum_stock, maximum_stock)
    mutator = session.mutator("inventory")

    def transform(item: dict) -> dict | None:
        if (item.get("current_stock"), item.get("minimum_stock"), item.get("maximum_stock")) == (current, minimum, maximum):
            return None
        return {
            **item,
            "current_stock": current,
            "minimum_stock": minimum,
            "maximum_stock": maximum,
            "status": stock_status(current, maximum),
            "last_updated": to_utc_z(utcnow()),
        }

    outcome = await mutator.mutate(item_id, transform)
    if outcome.status == CONFIRMED:
        session.tracker.performance(session.merchant_id, INVENTORY_UPDATE, {
            "item_id": item_id,
            "product_id": outcome.record.get("product_id") if outcome.record else None,
            "current_stock": current,
            "status": stock_status(current, maximum),
        })
    return outcome


async def create_item(
    session: DashboardSession,
    payload: dict,
) -> RemoteResult:
    """
    Adds a product to the merchant's inventory; data is the stored row.

    Missing stock levels default to 0 / 10 / 100.
    """
    require_fields(payload, ("product_id", "product_name"))
    current, minimum, maximum = validate_stock_levels(
        payload.get("current_stock", 0),
        payload.get("minimum_stock", DEFAULT_MINIMUM_STOCK),
        payload.get("maximum_stock", DEFAULT_MAXIMUM_STOCK),
    )
    product_id = str(payload["product_id"]).strip()
    product_name = str(payload["product_name"]).strip()
    if not product_id or not product_name:
        raise ValidationError("product_id and product_name cannot be blank")

    reconciler = session.reconciler("inventory")
    result = await session.remote.insert(reconciler.spec.table, {
        "merchant_id": session.merchant_id,
        "product_id": product_id,
        "product_name": product_name,
        "current_stock": current,
        "minimum_stock": minimum,
        "maximum_stock": maximum,
        "status": stock_status(current, maximum),
        "last_updated": to_utc_z(utcnow()),
    })
    if not result.ok:
        logger.warning("Creating inventory item %s failed: %s", product_id, result.message)
        return result

    # Show the row now; the feed's copy of the same insert is an idempotent replay
    reconciler.apply(ChangeEvent(reconciler.spec.table, INSERT, after=result.data))
    session.tracker.performance(session.merchant_id, INVENTORY_CREATE, {"product_id": product_id})
    return result
