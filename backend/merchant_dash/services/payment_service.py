# Overview: Service-layer payout requests: submission and listing only; settlement happens elsewhere.

from __future__ import annotations

import logging

from ..remote.base import RemoteResult, RemoteStore
from ..rules import PAYMENT_PENDING
from ..sync.session import DashboardSession
from ..validation import validate_amount, validate_mpesa_phone


logger = logging.getLogger(__name__)

PAYMENT_REQUESTS_TABLE = "payment_requests"
WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"


async def submit_payment_request(session: DashboardSession, amount, mpesa_phone: str, *, merchant_name: str | None = None) -> RemoteResult:
    """
    Files a pending withdrawal request.

    Input is validated before any remote call (ValidationError propagates).
    The payment log entry is fire-and-forget.
    """
    amount = validate_amount(amount)
    phone = validate_mpesa_phone(mpesa_phone)

    result = await session.remote.insert(PAYMENT_REQUESTS_TABLE, {
        "merchant_id": session.merchant_id,
        "merchant_name": merchant_name,
        "amount": amount,
        "mpesa_phone": phone,
        "status": PAYMENT_PENDING,
    })
    if not result.ok:
        logger.warning("Payment request for merchant %s failed: %s", session.merchant_id, result.message)
        return result

    logger.info("Merchant %s requested a withdrawal of %d", session.merchant_id, amount)
    session.tracker.payment(session.merchant_id, WITHDRAWAL_REQUESTED, amount, {
        "request_id": result.data.get("id"),
        "mpesa_phone": phone,
    })
    return result


async def list_payment_requests(remote: RemoteStore, merchant_id: str, *, limit: int | None = None) -> RemoteResult:
    """Newest first."""
    return await remote.fetch_all(
        PAYMENT_REQUESTS_TABLE,
        {"merchant_id": merchant_id},
        order_by="request_date",
        descending=True,
        limit=limit,
    )
