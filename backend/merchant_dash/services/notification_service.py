# Overview: Service-layer notification intents for merchants plus admin send, offers and broadcast.

from __future__ import annotations

import asyncio
import logging

from ..errors import ValidationError
from ..remote.base import RemoteResult, RemoteStore
from ..sync.mutator import MutationOutcome
from ..sync.session import DashboardSession
from ..validation import validate_notification, validate_offer


logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = "notifications"


def _read(notification: dict) -> dict | None:
    if notification.get("is_read"):
        return None
    return {**notification, "is_read": True}


async def mark_read(session: DashboardSession, notification_id: str) -> MutationOutcome:
    return await session.mutate("notifications", notification_id, _read)


async def mark_all_read(session: DashboardSession) -> list[MutationOutcome]:
    """
    Marks every cached unread notification read, one write per row. Each
    row confirms or rolls back on its own.
    """
    snapshot = session.store("notifications").snapshot()
    unread = [n["id"] for n in snapshot.items if not n.get("is_read")]
    if not unread:
        return []
    return list(await asyncio.gather(*(mark_read(session, nid) for nid in unread)))


async def delete_notification(session: DashboardSession, notification_id: str) -> MutationOutcome:
    return await session.mutator("notifications").delete(notification_id)


# =============================================================================
# ADMIN SIDE
# =============================================================================

async def send_notification(remote: RemoteStore, merchant_id: str, payload: dict) -> RemoteResult:
    """Validates before any remote call; ValidationError propagates to the caller."""
    if not merchant_id:
        raise ValidationError("merchant_id is required")
    cleaned = validate_notification(payload)
    result = await remote.insert(NOTIFICATIONS_TABLE, {**cleaned, "merchant_id": merchant_id, "is_read": False})
    if not result.ok:
        logger.warning("Sending notification to merchant %s failed: %s", merchant_id, result.message)
    return result


async def broadcast_notification(remote: RemoteStore, payload: dict) -> RemoteResult:
    """Sends the same notification to every registered merchant; data is the count sent."""
    cleaned = validate_notification(payload)
    merchants = await remote.fetch_all("merchants", order_by="merchant_id")
    if not merchants.ok:
        return merchants
    sent = 0
    for merchant in merchants.data:
        result = await remote.insert(
            NOTIFICATIONS_TABLE, {**cleaned, "merchant_id": merchant["merchant_id"], "is_read": False},
        )
        if not result.ok:
            logger.warning("Broadcast to merchant %s failed: %s", merchant["merchant_id"], result.message)
            continue
        sent += 1
    logger.info("Broadcast notification sent to %d of %d merchants", sent, len(merchants.data))
    return RemoteResult.success(sent)


async def send_offer(remote: RemoteStore, merchant_ids, payload: dict) -> RemoteResult:
    """
    Sends one offer to each listed merchant; data is the count sent.

    Duplicate ids are sent once. Unlike broadcast, the ids are not checked
    against the merchants table.
    """
    cleaned = validate_offer(payload)
    targets = list(dict.fromkeys(m.strip() for m in merchant_ids or () if m and m.strip()))
    if not targets:
        raise ValidationError("At least one merchant_id is required")
    sent = 0
    for merchant_id in targets:
        result = await remote.insert(NOTIFICATIONS_TABLE, {**cleaned, "merchant_id": merchant_id, "is_read": False})
        if not result.ok:
            logger.warning("Offer to merchant %s failed: %s", merchant_id, result.message)
            continue
        sent += 1
    logger.info("Offer %r sent to %d of %d merchants", cleaned["title"], sent, len(targets))
    return RemoteResult.success(sent)
