# Overview: Service-layer merchant lookup, registration and profile edits.

from __future__ import annotations

import logging

from ..errors import NotFoundError, TransientNetworkError
from ..models._base import new_id
from ..remote.base import RemoteStore
from ..validation import require_fields, validate_profile_updates


logger = logging.getLogger(__name__)

MERCHANTS_TABLE = "merchants"


async def resolve_merchant(remote: RemoteStore, user_id: str) -> dict:
    """
    Returns the merchant row for a signed-in user.

    Raises NotFoundError when the user operates no merchant, and the
    remote's own error when the lookup itself fails.
    """
    result = await remote.fetch_all(MERCHANTS_TABLE, {"user_id": user_id}, limit=1)
    if not result.ok:
        raise result.error or TransientNetworkError("Merchant lookup failed")
    if not result.data:
        raise NotFoundError(f"No merchant registered for user {user_id}")
    return result.data[0]


async def register_merchant(remote: RemoteStore, payload: dict) -> dict:
    require_fields(payload, ("user_id", "merchant_name"))
    record = {
        "user_id": str(payload["user_id"]).strip(),
        "merchant_id": str(payload.get("merchant_id") or new_id()).strip(),
        "merchant_name": str(payload["merchant_name"]).strip(),
        "merchant_email": payload.get("merchant_email"),
        "merchant_phone": payload.get("merchant_phone"),
        "merchant_location": payload.get("merchant_location"),
    }
    result = await remote.insert(MERCHANTS_TABLE, record)
    if not result.ok:
        raise result.error
    return result.data


async def update_profile(remote: RemoteStore, user_id: str, updates: dict) -> dict:
    """Edits the signed-in user's merchant profile; returns the stored row."""
    cleaned = validate_profile_updates(updates)
    result = await remote.update(MERCHANTS_TABLE, {"user_id": user_id}, cleaned)
    if not result.ok:
        raise result.error
    logger.info("Merchant profile for user %s updated: %s", user_id, ", ".join(sorted(cleaned)))
    return result.data[0]
