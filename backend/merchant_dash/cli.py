# Overview: Flask CLI command groups for bootstrap and admin-side writes.

# backend/merchant_dash/cli.py
# Commands Legend (run from the backend directory):
# - flask dashboard init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - flask dashboard reset-db --yes
#   DEV/TEST only: drop and recreate all tables.
# - flask dashboard create-merchant --user-id u1 --name "Mama Lishe"
#   Register a merchant for an authenticated user id.
# - flask dashboard create-user --email owner@example.com [--merchant-name "Mama Lishe"]
#   Create a dashboard login (password is prompted), optionally with its merchant.
# - flask orders create --merchant-id m1 --customer "Asha" --item p1:Chips:2 --total 5000
#   Insert an incoming order (what the customer app would do).
# - flask orders set-status <order id> delivered
#   Dispatch/admin transition (ready -> delivered, cancellations).
# - flask notifications send --merchant-id m1 --title "Hi" --message "..." [--type offer]
# - flask notifications send-offer --merchant-id m1 --merchant-id m2 --title "Eid" --description "10% off"
# - flask notifications broadcast --title "Hi" --message "..." [--type update]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ConflictError, ValidationError
from .extensions import db
from .rules import ORDER_PENDING, check_transition
from .services import merchant_service, notification_service
from .time_utils import to_utc_z, utcnow
from .validation import coerce_int


def _runtime():
    return current_app.extensions["merchant_dash"]


def _fail(message: str):
    raise click.ClickException(message)


# =============================================================================
# DASHBOARD
# =============================================================================

@click.group('dashboard')
def dashboard_group():
    """Database bootstrap and merchant registration."""


@dashboard_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("PASS Tables created")


@dashboard_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: drop all tables and recreate the schema."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@dashboard_group.command('create-merchant')
@click.option('--user-id', required=True)
@click.option('--name', 'merchant_name', required=True)
@click.option('--merchant-id', default=None, help='Defaults to a generated id')
@click.option('--email', default=None)
@click.option('--phone', default=None)
@click.option('--location', default=None)
@with_appcontext
def create_merchant(user_id, merchant_name, merchant_id, email, phone, location):
    try:
        merchant = _runtime().call(merchant_service.register_merchant(_runtime().remote, {
            "user_id": user_id,
            "merchant_id": merchant_id,
            "merchant_name": merchant_name,
            "merchant_email": email,
            "merchant_phone": phone,
            "merchant_location": location,
        }))
    except (ValueError, RuntimeError, ConnectionError) as e:
        _fail(str(e))
    click.echo(f"PASS Created merchant {merchant['merchant_name']} (merchant_id: {merchant['merchant_id']})")


@dashboard_group.command('create-user')
@click.option('--email', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--merchant-name', default=None, help='Also register a merchant operated by this user')
@click.option('--phone', default=None)
@click.option('--location', default=None)
@with_appcontext
def create_user(email, password, merchant_name, phone, location):
    """Create a dashboard login, optionally with its merchant."""
    runtime = _runtime()
    try:
        user = runtime.auth.register(email, password)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created user {user.email} (id: {user.id})")

    if not merchant_name:
        return
    try:
        merchant = runtime.call(merchant_service.register_merchant(runtime.remote, {
            "user_id": user.id,
            "merchant_name": merchant_name,
            "merchant_email": user.email,
            "merchant_phone": phone,
            "merchant_location": location,
        }))
    except (ValueError, RuntimeError, ConnectionError) as e:
        runtime.auth.remove(user.id)
        _fail(f"{e} (user {user.email} removed)")
    click.echo(f"PASS Created merchant {merchant['merchant_name']} (merchant_id: {merchant['merchant_id']})")


# =============================================================================
# ORDERS
# =============================================================================

@click.group('orders')
def orders_group():
    """Order writes made outside the merchant dashboard."""


def _parse_item(raw: str) -> dict:
    parts = raw.split(":")
    if len(parts) != 3:
        raise ValidationError(f"item must be product_id:name:quantity, got {raw!r}")
    quantity = coerce_int("quantity", parts[2])
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    return {"product_id": parts[0], "product_name": parts[1], "quantity": quantity}


async def _create_order(remote, merchant_id, customer, phone, total, items):
    order = await remote.insert("orders", {
        "order_id": f"ORD-{utcnow():%Y%m%d%H%M%S}",
        "merchant_id": merchant_id,
        "customer_name": customer,
        "customer_phone": phone,
        "status": ORDER_PENDING,
        "total_amount": total,
    })
    if not order.ok:
        return order
    for item in items:
        result = await remote.insert("order_items", {**item, "order_id": order.data["id"], "merchant_id": merchant_id})
        if not result.ok:
            return result
    return order


@orders_group.command('create')
@click.option('--merchant-id', required=True)
@click.option('--customer', default='Customer')
@click.option('--phone', default='')
@click.option('--total', required=True, help='Order total in shillings')
@click.option('--item', 'items', multiple=True, help='product_id:name:quantity')
@with_appcontext
def create_order(merchant_id, customer, phone, total, items):
    try:
        total = coerce_int("total", total)
        parsed = [_parse_item(i) for i in items]
    except ValidationError as e:
        _fail(str(e))
    result = _runtime().call(_create_order(_runtime().remote, merchant_id, customer, phone, total, parsed))
    if not result.ok:
        _fail(result.message)
    click.echo(f"PASS Created order {result.data['order_id']} (id: {result.data['id']})")


async def _set_status(remote, order_id, status):
    current = await remote.fetch_all("orders", {"id": order_id}, limit=1)
    if not current.ok:
        return current
    if not current.data:
        raise ValidationError(f"Order {order_id} not found")
    order = current.data[0]
    check_transition(order["status"], status)
    return await remote.update(
        "orders", {"id": order_id},
        {"status": status, "updated_at": to_utc_z(utcnow())},
        expected_revision=order.get("version_id"),
    )


@orders_group.command('set-status')
@click.argument('order_id')
@click.argument('status')
@with_appcontext
def set_order_status(order_id, status):
    try:
        result = _runtime().call(_set_status(_runtime().remote, order_id, status.lower()))
    except ValueError as e:
        _fail(str(e))
    if not result.ok:
        _fail(result.message)
    click.echo(f"PASS Order {order_id} is now {status.lower()}")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@click.group('notifications')
def notifications_group():
    """Admin-side notifications."""


@notifications_group.command('send')
@click.option('--merchant-id', required=True)
@click.option('--title', required=True)
@click.option('--message', required=True)
@click.option('--type', 'kind', default='message')
@click.option('--admin-id', default=None)
@with_appcontext
def send_notification(merchant_id, title, message, kind, admin_id):
    payload = {"title": title, "message": message, "type": kind, "admin_id": admin_id}
    try:
        result = _runtime().call(notification_service.send_notification(_runtime().remote, merchant_id, payload))
    except ValidationError as e:
        _fail(str(e))
    if not result.ok:
        _fail(result.message)
    click.echo(f"PASS Sent notification {result.data['id']} to {merchant_id}")


@notifications_group.command('send-offer')
@click.option('--merchant-id', 'merchant_ids', multiple=True, required=True, help='Repeat for each merchant')
@click.option('--title', required=True)
@click.option('--description', required=True)
@click.option('--admin-id', default=None)
@with_appcontext
def send_offer(merchant_ids, title, description, admin_id):
    payload = {"title": title, "description": description, "admin_id": admin_id}
    try:
        result = _runtime().call(notification_service.send_offer(_runtime().remote, merchant_ids, payload))
    except ValidationError as e:
        _fail(str(e))
    if not result.ok:
        _fail(result.message)
    click.echo(f"PASS Offer sent to {result.data} merchant(s)")


@notifications_group.command('broadcast')
@click.option('--title', required=True)
@click.option('--message', required=True)
@click.option('--type', 'kind', default='update')
@click.option('--admin-id', default=None)
@with_appcontext
def broadcast_notification(title, message, kind, admin_id):
    payload = {"title": title, "message": message, "type": kind, "admin_id": admin_id}
    try:
        result = _runtime().call(notification_service.broadcast_notification(_runtime().remote, payload))
    except ValidationError as e:
        _fail(str(e))
    if not result.ok:
        _fail(result.message)
    click.echo(f"PASS Broadcast sent to {result.data} merchant(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(dashboard_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(notifications_group)
