"""
CLI tests: admin-side writes land in the database and reach open dashboard sessions.
"""

import time

from merchant_dash.extensions import db
from merchant_dash.models import Merchant, Notification, Order, OrderItem, User


def test_create_merchant(app):
    result = app.test_cli_runner().invoke(args=[
        'dashboard', 'create-merchant', '--user-id', 'u-9', '--name', 'Duka la Juma', '--merchant-id', 'm-9',
    ])

    assert result.exit_code == 0, result.output
    assert "merchant_id: m-9" in result.output
    assert Merchant.query.filter_by(user_id="u-9").one().merchant_name == "Duka la Juma"


def test_create_merchant_rejects_duplicate_user(app, merchant):
    result = app.test_cli_runner().invoke(args=[
        'dashboard', 'create-merchant', '--user-id', 'u-1', '--name', 'Again',
    ])
    assert result.exit_code != 0


def test_create_order_with_items(app, merchant):
    result = app.test_cli_runner().invoke(args=[
        'orders', 'create', '--merchant-id', 'm-1', '--customer', 'Neema',
        '--total', '12000', '--item', 'p1:Chips:1', '--item', 'p2:Soda:3',
    ])

    assert result.exit_code == 0, result.output
    order = Order.query.filter_by(customer_name="Neema").one()
    assert order.total_amount == 12000
    assert order.status == "pending"
    items = OrderItem.query.filter_by(order_id=order.id).order_by(OrderItem.id).all()
    assert [(i.product_name, i.quantity) for i in items] == [("Chips", 1), ("Soda", 3)]


def test_create_order_rejects_bad_item(app, merchant):
    result = app.test_cli_runner().invoke(args=[
        'orders', 'create', '--merchant-id', 'm-1', '--total', '100', '--item', 'p1:Chips',
    ])
    assert result.exit_code != 0
    assert "product_id:name:quantity" in result.output


def test_set_status_follows_transition_rules(app, merchant):
    runner = app.test_cli_runner()

    bad = runner.invoke(args=['orders', 'set-status', 'o1', 'delivered'])
    assert bad.exit_code != 0
    assert "cannot move from pending to delivered" in bad.output

    good = runner.invoke(args=['orders', 'set-status', 'o1', 'cancelled'])
    assert good.exit_code == 0, good.output
    db.session.expire_all()
    assert db.session.get(Order, "o1").status == "cancelled"


def test_sent_notification_reaches_open_dashboard(app, auth_client):
    assert auth_client.get('/api/dashboard/projections').get_json()["unread_count"] == 1

    result = app.test_cli_runner().invoke(args=[
        'notifications', 'send', '--merchant-id', 'm-1', '--title', 'Offer', '--message', 'Half price', '--type', 'offer',
    ])
    assert result.exit_code == 0, result.output

    # Delivered by the change feed, no refresh
    deadline = time.monotonic() + 2.0
    while time.monotonic() < deadline:
        if auth_client.get('/api/dashboard/projections').get_json()["unread_count"] == 2:
            break
        time.sleep(0.02)
    else:
        raise AssertionError("notification never reached the dashboard")


def test_send_notification_validates_type(app, merchant):
    result = app.test_cli_runner().invoke(args=[
        'notifications', 'send', '--merchant-id', 'm-1', '--title', 'x', '--message', 'y', '--type', 'spam',
    ])
    assert result.exit_code != 0
    assert Notification.query.count() == 1


def test_broadcast_reaches_every_merchant(app, merchant):
    db.session.add(Merchant(user_id="u-2", merchant_id="m-2", merchant_name="Second"))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=['notifications', 'broadcast', '--title', 'Update', '--message', 'New app'])

    assert result.exit_code == 0, result.output
    assert "2 merchant(s)" in result.output
    db.session.expire_all()
    assert Notification.query.filter_by(title="Update").count() == 2


def test_create_user_with_merchant(app):
    result = app.test_cli_runner().invoke(args=[
        'dashboard', 'create-user', '--email', 'Juma@example.com', '--password', 'correct-horse-9',
        '--merchant-name', 'Duka la Juma', '--location', 'Arusha',
    ])

    assert result.exit_code == 0, result.output
    user = User.query.filter_by(email="juma@example.com").one()
    merchant = Merchant.query.filter_by(user_id=user.id).one()
    assert (merchant.merchant_name, merchant.merchant_email) == ("Duka la Juma", "juma@example.com")
    assert app.extensions['merchant_dash'].auth.sign_in("juma@example.com", "correct-horse-9")


def test_create_user_prompts_for_password(app):
    result = app.test_cli_runner().invoke(
        args=['dashboard', 'create-user', '--email', 'solo@example.com'],
        input='correct-horse-9\ncorrect-horse-9\n',
    )

    assert result.exit_code == 0, result.output
    assert User.query.filter_by(email="solo@example.com").count() == 1
    assert Merchant.query.count() == 0


def test_create_user_rejects_short_password_and_duplicates(app):
    runner = app.test_cli_runner()

    short = runner.invoke(args=['dashboard', 'create-user', '--email', 'a@example.com', '--password', 'short'])
    assert short.exit_code != 0
    assert "at least 8 characters" in short.output

    assert runner.invoke(args=['dashboard', 'create-user', '--email', 'a@example.com', '--password', 'correct-horse-9']).exit_code == 0
    again = runner.invoke(args=['dashboard', 'create-user', '--email', 'a@example.com', '--password', 'correct-horse-9'])
    assert again.exit_code != 0
    assert User.query.count() == 1


def test_send_offer_to_listed_merchants(app, merchant):
    db.session.add(Merchant(user_id="u-2", merchant_id="m-2", merchant_name="Second"))
    db.session.add(Merchant(user_id="u-3", merchant_id="m-3", merchant_name="Third"))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=[
        'notifications', 'send-offer', '--merchant-id', 'm-1', '--merchant-id', 'm-3', '--merchant-id', 'm-1',
        '--title', 'Eid offer', '--description', '10% off delivery',
    ])

    assert result.exit_code == 0, result.output
    assert "2 merchant(s)" in result.output
    db.session.expire_all()
    offers = Notification.query.filter_by(title="Eid offer").all()
    assert sorted(n.merchant_id for n in offers) == ["m-1", "m-3"]
    assert {(n.type, n.message, n.is_read) for n in offers} == {("offer", "10% off delivery", False)}
