# Overview: Service-layer order intents; the core only originates accept and complete.

from __future__ import annotations

from ..rules import ORDER_PREPARING, ORDER_READY, check_transition
from ..sync.mutator import MutationOutcome
from ..sync.session import DashboardSession
from ..time_utils import to_utc_z, utcnow


def _advance(target: str):
    def transform(order: dict) -> dict:
        check_transition(order.get("status"), target)
        return {**order, "status": target, "updated_at": to_utc_z(utcnow())}
    return transform


async def accept_order(session: DashboardSession, order_id: str) -> MutationOutcome:
    """pending -> preparing"""
    return await session.mutate("orders", order_id, _advance(ORDER_PREPARING))


async def complete_order(session: DashboardSession, order_id: str) -> MutationOutcome:
    """preparing -> ready"""
    return await session.mutate("orders", order_id, _advance(ORDER_READY))
