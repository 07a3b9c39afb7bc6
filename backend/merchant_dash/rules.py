# Overview: Domain rules for orders, notifications, inventory and payouts.

from __future__ import annotations

from .errors import InvalidTransitionError


# =============================================================================
# ORDER STATUS MACHINE
# =============================================================================

ORDER_PENDING = "pending"
ORDER_PREPARING = "preparing"
ORDER_READY = "ready"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (ORDER_PENDING, ORDER_PREPARING, ORDER_READY, ORDER_DELIVERED, ORDER_CANCELLED)
TERMINAL_ORDER_STATUSES = frozenset({ORDER_DELIVERED, ORDER_CANCELLED})

# Statuses whose orders count towards revenue
FULFILLED_ORDER_STATUSES = frozenset({ORDER_READY, ORDER_DELIVERED})

ORDER_TRANSITIONS = {
    ORDER_PENDING: frozenset({ORDER_PREPARING, ORDER_CANCELLED}),
    ORDER_PREPARING: frozenset({ORDER_READY, ORDER_CANCELLED}),
    ORDER_READY: frozenset({ORDER_DELIVERED, ORDER_CANCELLED}),
    ORDER_DELIVERED: frozenset(),
    ORDER_CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str) -> None:
    if target not in ORDER_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown order status: {target}")
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Order cannot move from {current} to {target}")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

NOTIFICATION_TYPES = frozenset({"message", "offer", "update", "alert"})


# =============================================================================
# INVENTORY
# =============================================================================

STOCK_GOOD = "good"
STOCK_WARNING = "warning"
STOCK_DANGER = "danger"
STOCK_STATUSES = (STOCK_GOOD, STOCK_WARNING, STOCK_DANGER)

DEFAULT_MINIMUM_STOCK = 10
DEFAULT_MAXIMUM_STOCK = 100


def stock_status(current_stock: int, maximum_stock: int) -> str:
    """Derive the bucket from the stock ratio; never read it back from a row."""
    if not maximum_stock or maximum_stock <= 0:
        return STOCK_DANGER
    ratio = current_stock / maximum_stock
    if ratio <= 0.25:
        return STOCK_DANGER
    if ratio <= 0.50:
        return STOCK_WARNING
    return STOCK_GOOD


# =============================================================================
# PAYOUTS
# =============================================================================

PAYMENT_PENDING = "pending"
PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = "rejected"
PAYMENT_COMPLETED = "completed"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_COMPLETED)


# =============================================================================
# MERCHANT STATUS
# =============================================================================

DEFAULT_MERCHANT_STATUS = {
    "is_visible": True,
    "prep_time": 30,
    "auto_print_receipt": False,
    "order_chime_enabled": True,
}
