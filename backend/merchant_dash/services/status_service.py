# Overview: Service-layer merchant status intents (visibility, prep time, printing, chime).

from __future__ import annotations

import logging

from ..sync.mutator import MutationOutcome
from ..sync.session import DashboardSession
from ..time_utils import to_utc_z, utcnow
from ..validation import validate_status_updates


logger = logging.getLogger(__name__)

STORE_ONLINE = "STORE_ONLINE"
STORE_OFFLINE = "STORE_OFFLINE"


async def update_status(session: DashboardSession, updates: dict) -> MutationOutcome:
    """
    Optimistically patch the merchant's status row.

    A visibility change is also written to the activity log, after the
    remote write succeeded and without waiting for it.
    """
    cleaned = validate_status_updates(updates)
    merchant_id = session.merchant_id

    if merchant_id not in session.store("status"):
        # Load (and create if missing) the singleton before patching it
        await session.refresh("status")

    def transform(status: dict) -> dict | None:
        if all(status.get(k) == v for k, v in cleaned.items()):
            return None
        return {**status, **cleaned, "updated_at": to_utc_z(utcnow())}

    before = session.store("status").get(merchant_id)
    outcome = await session.mutate("status", merchant_id, transform)

    if outcome.ok and before is not None and "is_visible" in cleaned and before.get("is_visible") != cleaned["is_visible"]:
        action = STORE_ONLINE if cleaned["is_visible"] else STORE_OFFLINE
        session.tracker.activity(merchant_id, action, {"is_visible": cleaned["is_visible"]})
    return outcome


async def toggle_visibility(session: DashboardSession) -> MutationOutcome:
    current = session.store("status").get(session.merchant_id)
    visible = True if current is None else bool(current.get("is_visible"))
    return await update_status(session, {"is_visible": not visible})


async def update_prep_time(session: DashboardSession, minutes) -> MutationOutcome:
    return await update_status(session, {"prep_time": minutes})


async def update_auto_print(session: DashboardSession, enabled: bool) -> MutationOutcome:
    return await update_status(session, {"auto_print_receipt": enabled})


async def update_chime(session: DashboardSession, enabled: bool) -> MutationOutcome:
    return await update_status(session, {"order_chime_enabled": enabled})
