# Overview: Flask API routes for the merchant dashboard; bridges requests into the sync runtime.

"""
Merchant Dashboard API Routes

Reads are served from the session's cached collections (kept current by
the change feed); writes go through the optimistic mutator and report the
outcome of the remote write.

Outcome -> HTTP:
- confirmed / unchanged: 200
- rejected: 400 (validation), 404 (unknown id) or 409 (invalid transition)
- rolled_back: 409 (stale write), 503 (connection) or 500
- reverted: 409
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, error_status, get_runtime, require_session
from ..errors import ConflictError, NotFoundError, RemoteError, TransientNetworkError, ValidationError
from ..services import (
    inventory_service,
    merchant_service,
    notification_service,
    order_service,
    payment_service,
    status_service,
)
from ..sync.mutator import MutationOutcome
from ..validation import coerce_int


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")

EARNINGS_PERIODS = {"weekly": 7, "monthly": 30}


def _run(coro):
    return get_runtime().call(coro)


def _read(func, *args):
    """Reads cached state on the loop thread, where the stores are written."""
    async def read():
        return func(*args)
    return _run(read())


def _outcome_response(outcome: MutationOutcome):
    body = outcome.to_dict()
    if outcome.ok:
        return jsonify(body), 200
    return jsonify(body), error_status(outcome.error)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# READS
# =============================================================================

@dashboard_bp.get("/merchant")
@require_session
def get_merchant_route():
    return jsonify({"merchant": g.merchant, "user": g.current_user.to_dict()}), 200


@dashboard_bp.patch("/merchant")
@require_session
def update_merchant_route():
    """Edit merchant_name, merchant_email, merchant_phone or merchant_location."""
    try:
        merchant = _run(merchant_service.update_profile(get_runtime().remote, g.current_user.id, _json_body()))
    except (ValidationError, NotFoundError, ConflictError, TransientNetworkError, RemoteError) as e:
        return error_response(e)
    return jsonify({"merchant": merchant}), 200


@dashboard_bp.get("/collections/<key>")
@require_session
def get_collection_route(key: str):
    """{items, loading, error} for orders, notifications, status or inventory."""
    try:
        return jsonify(_read(g.dashboard.use_collection, key)), 200
    except NotFoundError as e:
        return error_response(e)


@dashboard_bp.post("/collections/<key>/refresh")
@require_session
def refresh_collection_route(key: str):
    try:
        result = _run(g.dashboard.refresh(key))
    except NotFoundError as e:
        return error_response(e)
    if not result.ok:
        return error_response(result.error)
    return jsonify(_read(g.dashboard.use_collection, key)), 200


@dashboard_bp.get("/projections")
@require_session
def get_projections_route():
    return jsonify(_read(g.dashboard.projections)), 200


@dashboard_bp.get("/earnings")
@require_session
def get_earnings_route():
    period = (request.args.get("period") or "weekly").lower()
    days = EARNINGS_PERIODS.get(period)
    if days is None:
        return jsonify({"error": "period must be weekly or monthly"}), 400
    return jsonify({"period": period, **_read(g.dashboard.earnings, days)}), 200


# =============================================================================
# ORDERS
# =============================================================================

@dashboard_bp.post("/orders/<order_id>/accept")
@require_session
def accept_order_route(order_id: str):
    return _outcome_response(_run(order_service.accept_order(g.dashboard, order_id)))


@dashboard_bp.post("/orders/<order_id>/complete")
@require_session
def complete_order_route(order_id: str):
    return _outcome_response(_run(order_service.complete_order(g.dashboard, order_id)))


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@dashboard_bp.post("/notifications/<notification_id>/read")
@require_session
def mark_read_route(notification_id: str):
    return _outcome_response(_run(notification_service.mark_read(g.dashboard, notification_id)))


@dashboard_bp.post("/notifications/read-all")
@require_session
def mark_all_read_route():
    outcomes = _run(notification_service.mark_all_read(g.dashboard))
    failed = [o for o in outcomes if not o.ok]
    return jsonify({
        "success": not failed,
        "updated": len(outcomes) - len(failed),
        "failed": [o.to_dict() for o in failed],
    }), 200


@dashboard_bp.delete("/notifications/<notification_id>")
@require_session
def delete_notification_route(notification_id: str):
    return _outcome_response(_run(notification_service.delete_notification(g.dashboard, notification_id)))


# =============================================================================
# MERCHANT STATUS
# =============================================================================

@dashboard_bp.patch("/status")
@require_session
def update_status_route():
    """
    Request body: any of is_visible, prep_time, auto_print_receipt,
    order_chime_enabled.
    """
    try:
        data = _json_body()
        return _outcome_response(_run(status_service.update_status(g.dashboard, data)))
    except ValidationError as e:
        return error_response(e)


@dashboard_bp.post("/status/toggle-visibility")
@require_session
def toggle_visibility_route():
    return _outcome_response(_run(status_service.toggle_visibility(g.dashboard)))


# =============================================================================
# INVENTORY
# =============================================================================

@dashboard_bp.put("/inventory/<item_id>")
@require_session
def update_inventory_route(item_id: str):
    """Request body: current_stock, minimum_stock, maximum_stock."""
    try:
        data = _json_body()
        outcome = _run(inventory_service.update_item(
            g.dashboard,
            item_id,
            data.get("current_stock"),
            data.get("minimum_stock"),
            data.get("maximum_stock"),
        ))
    except ValidationError as e:
        return error_response(e)
    return _outcome_response(outcome)


@dashboard_bp.post("/inventory")
@require_session
def create_inventory_route():
    """Request body: product_id, product_name and optional stock levels."""
    try:
        result = _run(inventory_service.create_item(g.dashboard, _json_body()))
    except ValidationError as e:
        return error_response(e)
    if not result.ok:
        return error_response(result.error)
    return jsonify({"item": result.data}), 201


# =============================================================================
# PAYOUTS
# =============================================================================

@dashboard_bp.get("/payment-requests")
@require_session
def list_payment_requests_route():
    try:
        limit = request.args.get("limit")
        limit = coerce_int("limit", limit) if limit is not None else None
    except ValidationError as e:
        return error_response(e)
    result = _run(payment_service.list_payment_requests(get_runtime().remote, g.merchant["merchant_id"], limit=limit))
    if not result.ok:
        return error_response(result.error)
    return jsonify({"payment_requests": result.data}), 200


@dashboard_bp.post("/payment-requests")
@require_session
def submit_payment_request_route():
    """Request body: amount, mpesa_phone."""
    try:
        data = _json_body()
        result = _run(payment_service.submit_payment_request(
            g.dashboard,
            data.get("amount"),
            data.get("mpesa_phone"),
            merchant_name=g.merchant.get("merchant_name"),
        ))
    except ValidationError as e:
        return error_response(e)
    if not result.ok:
        return error_response(result.error)
    return jsonify({"payment_request": result.data}), 201
