import unittest
from datetime import date, datetime, timedelta, timezone

from merchant_dash.remote import InMemoryRemoteStore
from merchant_dash.sync.entities import NotificationSpec, OrderSpec
from merchant_dash.sync.projections import (
    RevenueProjection,
    UnreadCountProjection,
    daily_earnings,
    earnings_summary,
    inventory_buckets,
    order_status_counts,
    unread_count,
)
from merchant_dash.sync.session import DashboardSession, SyncSettings
from merchant_dash.time_utils import to_utc_z

from support import MERCHANT, FixedClock, eventually, inventory_row, notification_row, order_row, utc


class RevenueProjectionTests(unittest.TestCase):
    def setUp(self):
        self.clock = FixedClock(utc(2026, 10, 19, 10))
        self.store = OrderSpec().make_store()

    def projection(self):
        return RevenueProjection(self.store, timezone.utc, clock=self.clock)

    def order(self, order_id, status, total=5000, created=None, version=1):
        return order_row(order_id, status=status, total=total, created=created or self.clock.now, version_id=version)

    def test_counts_only_todays_fulfilled_orders(self):
        self.store.replace_all([
            self.order("o1", "ready", 5000),
            self.order("o2", "delivered", 2500),
            self.order("o3", "pending", 9999),
            self.order("o4", "cancelled", 9999),
            self.order("o5", "delivered", 7000, created=utc(2026, 10, 18, 23)),
        ])
        self.assertEqual(self.projection().value(), 7500)

    def test_each_order_counts_once(self):
        revenue = self.projection()
        self.store.upsert(self.order("o1", "ready", version=2))
        self.store.upsert(self.order("o1", "delivered", version=3))
        self.store.replace_all([self.order("o1", "delivered", version=3)])
        self.store.upsert(self.order("o1", "delivered", version=3))

        self.assertEqual(revenue.value(), 5000)
        self.assertEqual(revenue.counted_ids, frozenset({"o1"}))

    def test_no_decrement_after_counting(self):
        revenue = self.projection()
        self.store.upsert(self.order("o1", "ready"))
        self.store.upsert(self.order("o1", "cancelled", version=2))
        self.assertEqual(revenue.value(), 5000)

    def test_unconfirmed_entries_do_not_count_until_confirmed(self):
        self.store.replace_all([self.order("o1", "preparing")])
        revenue = self.projection()

        self.store.upsert(self.order("o1", "ready"), unconfirmed=True, base_revision=1)
        self.assertEqual(revenue.value(), 0)

        self.store.mark_confirmed("o1")
        self.assertEqual(revenue.value(), 5000)

    def test_rolled_back_entry_never_counted(self):
        self.store.replace_all([self.order("o1", "preparing")])
        revenue = self.projection()
        self.store.upsert(self.order("o1", "ready"), unconfirmed=True, base_revision=1)
        self.store.upsert(self.order("o1", "preparing"))
        self.assertEqual(revenue.value(), 0)

    def test_local_day_boundary_uses_configured_zone(self):
        # 22:30 UTC on the 18th is already the 19th in East Africa (UTC+3)
        eat = timezone(timedelta(hours=3))
        self.store.replace_all([self.order("o1", "ready", created=utc(2026, 10, 18, 22, 30))])
        revenue = RevenueProjection(self.store, eat, clock=self.clock)
        self.assertEqual(revenue.value(), 5000)

    def test_day_rollover_restarts_total(self):
        self.store.replace_all([self.order("o1", "ready")])
        revenue = self.projection()
        self.assertEqual(revenue.value(), 5000)

        self.clock.advance(days=1)
        self.assertEqual(revenue.value(), 0)

        self.store.upsert(self.order("o2", "ready", 1200, created=self.clock.now))
        self.assertEqual(revenue.value(), 1200)

    def test_close_stops_following_the_store(self):
        revenue = self.projection()
        revenue.close()
        self.store.upsert(self.order("o1", "ready"))
        self.assertEqual(revenue.value(), 0)


class UnreadCountTests(unittest.TestCase):
    def test_tracks_every_change(self):
        store = NotificationSpec().make_store()
        store.replace_all([notification_row("n1"), notification_row("n2"), notification_row("n3", is_read=True)])
        unread = UnreadCountProjection(store)
        self.assertEqual(unread.value(), 2)

        store.upsert(notification_row("n1", is_read=True), unconfirmed=True)
        self.assertEqual(unread.value(), 1)
        store.remove("n2", tombstone=True)
        self.assertEqual(unread.value(), 0)
        store.upsert(notification_row("n4"))
        self.assertEqual(unread.value(), unread_count(store.snapshot().items))


class PureProjectionTests(unittest.TestCase):
    def test_inventory_buckets_are_derived_from_stock(self):
        items = [
            inventory_row("a", current=25, maximum=100),   # 0.25 -> danger
            inventory_row("b", current=50, maximum=100),   # 0.50 -> warning
            inventory_row("c", current=51, maximum=100),   # good
            inventory_row("d", current=5, maximum=0),      # no capacity -> danger
            # A stale stored status is ignored
            inventory_row("e", current=90, maximum=100, status="danger"),
        ]
        self.assertEqual(inventory_buckets(items), {"good": 2, "warning": 1, "danger": 2})

    def test_order_status_counts(self):
        counts = order_status_counts([
            order_row("o1", status="pending"),
            order_row("o2", status="ready"),
            order_row("o3", status="ready"),
        ])
        self.assertEqual(counts, {"pending": 1, "preparing": 0, "ready": 2, "delivered": 0, "cancelled": 0})

    def test_daily_earnings_series(self):
        today = date(2026, 10, 19)
        orders = [
            order_row("o1", status="delivered", total=1000, created=utc(2026, 10, 19, 9)),
            order_row("o2", status="ready", total=500, created=utc(2026, 10, 19, 11)),
            order_row("o3", status="delivered", total=300, created=utc(2026, 10, 13, 9)),
            order_row("o4", status="delivered", total=999, created=utc(2026, 10, 12, 9)),  # outside window
            order_row("o5", status="pending", total=999, created=utc(2026, 10, 19, 9)),
        ]
        series = daily_earnings(orders, timezone.utc, days=7, today=today)

        self.assertEqual(len(series), 7)
        self.assertEqual(series[0]["date"], "2026-10-13")
        self.assertEqual(series[0]["earnings"], 300)
        self.assertEqual(series[-1], {"date": "2026-10-19", "day": "Mon", "earnings": 1500})

        summary = earnings_summary(series)
        self.assertEqual(summary["total"], 1800)
        self.assertEqual(summary["daily_average"], round(1800 / 7))


class DashboardProjectionScenarioTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = FixedClock(datetime.now(timezone.utc))
        self.remote = InMemoryRemoteStore()
        self.remote.seed("orders", order_row("o1", status="pending", total=5000, created=self.clock.now))
        self.remote.seed("notifications", notification_row("n1"), notification_row("n2"))
        self.remote.seed("merchant_inventory", inventory_row("i1", current=10))
        self.session = DashboardSession(
            self.remote, MERCHANT, SyncSettings(timezone=timezone.utc), clock=self.clock,
        )
        await self.session.open()

    async def asyncTearDown(self):
        await self.session.close()

    async def test_order_becoming_ready_is_counted(self):
        self.assertEqual(self.session.projections()["revenue_today"], 0)

        self.remote.server_update("orders", {"id": "o1"}, {"status": "ready", "updated_at": to_utc_z(self.clock.now)})
        await eventually(lambda: self.session.projections()["revenue_today"] == 5000)

        projections = self.session.projections()
        self.assertEqual(projections["order_status_counts"]["pending"], 0)
        self.assertEqual(projections["order_status_counts"]["ready"], 1)
        self.assertEqual(projections["unread_count"], 2)
        self.assertEqual(projections["inventory_buckets"], {"good": 0, "warning": 0, "danger": 1})

    async def test_replayed_ready_event_is_not_double_counted(self):
        self.remote.server_update("orders", {"id": "o1"}, {"status": "ready"})
        await eventually(lambda: self.session.projections()["revenue_today"] == 5000)
        self.remote.server_update("orders", {"id": "o1"}, {"status": "delivered"})
        await eventually(lambda: self.session.store("orders").get("o1")["status"] == "delivered")

        await self.session.refresh("orders")
        self.assertEqual(self.session.projections()["revenue_today"], 5000)

    async def test_unread_count_follows_admin_notifications(self):
        self.remote.server_insert("notifications", notification_row("n3"))
        await eventually(lambda: self.session.projections()["unread_count"] == 3)
        self.remote.server_update("notifications", {"id": "n1"}, {"is_read": True})
        await eventually(lambda: self.session.projections()["unread_count"] == 2)


if __name__ == "__main__":
    unittest.main()
