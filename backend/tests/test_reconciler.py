import unittest

from merchant_dash.errors import TransientNetworkError
from merchant_dash.remote import DELETE, INSERT, UPDATE, ChangeEvent, InMemoryRemoteStore
from merchant_dash.sync.entities import NotificationSpec, OrderSpec
from merchant_dash.sync.reconciler import Reconciler

from support import MERCHANT, eventually, notification_row, order_row, settle


class ReconcilerApplyTests(unittest.IsolatedAsyncioTestCase):
    """apply() without a running feed."""

    async def asyncSetUp(self):
        self.remote = InMemoryRemoteStore()
        self.reconciler = Reconciler(self.remote, NotificationSpec(), MERCHANT)
        self.store = self.reconciler.store

    def event(self, operation, version, **fields):
        row = notification_row("n1", version_id=version, **fields)
        if operation == DELETE:
            return ChangeEvent("notifications", DELETE, before=row)
        return ChangeEvent("notifications", operation, after=row)

    async def test_apply_is_idempotent(self):
        event = self.event(INSERT, 1)
        self.assertTrue(self.reconciler.apply(event))
        version = self.store.snapshot().version

        self.assertFalse(self.reconciler.apply(event))
        self.assertFalse(self.reconciler.apply(event))
        self.assertEqual(self.store.snapshot().version, version)
        self.assertEqual(len(self.store), 1)

    async def test_stale_replay_is_dropped(self):
        self.reconciler.apply(self.event(INSERT, 1))
        self.reconciler.apply(self.event(UPDATE, 3, is_read=True))

        self.assertFalse(self.reconciler.apply(self.event(UPDATE, 2, is_read=False)))
        self.assertTrue(self.store.get("n1")["is_read"])

    async def test_update_replaces_whole_record(self):
        self.reconciler.apply(self.event(INSERT, 1, title="Old"))
        self.reconciler.apply(self.event(UPDATE, 2, title="New"))
        self.assertEqual(self.store.get("n1")["title"], "New")
        self.assertEqual(self.store.get("n1")["version_id"], 2)

    async def test_delete_tombstones_against_replayed_insert(self):
        self.reconciler.apply(self.event(INSERT, 1))
        self.assertTrue(self.reconciler.apply(self.event(DELETE, 1)))

        self.assertFalse(self.reconciler.apply(self.event(INSERT, 1)))
        self.assertFalse(self.reconciler.apply(self.event(UPDATE, 2)))
        self.assertNotIn("n1", self.store)

    async def test_delete_of_absent_id_is_noop(self):
        self.assertFalse(self.reconciler.apply(self.event(DELETE, 1)))
        self.assertEqual(len(self.store), 0)

    async def test_unconfirmed_entry_only_yields_to_newer_revision(self):
        self.reconciler.apply(self.event(INSERT, 1))
        self.store.upsert(notification_row("n1", version_id=1, is_read=True), unconfirmed=True, base_revision=1)

        # Replay of the revision the optimistic write was derived from
        self.assertFalse(self.reconciler.apply(self.event(UPDATE, 1)))
        self.assertTrue(self.store.is_unconfirmed("n1"))

        self.assertTrue(self.reconciler.apply(self.event(UPDATE, 2, is_read=True)))
        self.assertFalse(self.store.is_unconfirmed("n1"))

    async def test_events_after_close_are_discarded(self):
        await self.reconciler.close()
        self.assertFalse(self.reconciler.live)
        self.assertFalse(self.reconciler.apply(self.event(INSERT, 1)))
        self.assertEqual(len(self.store), 0)


class ReconcilerFeedTests(unittest.IsolatedAsyncioTestCase):
    """Full lifecycle against the in-memory remote and its change feed."""

    async def asyncSetUp(self):
        self.remote = InMemoryRemoteStore()
        self.remote.seed("orders", order_row("o1"))
        self.remote.seed("order_items", {"order_id": "o1", "product_id": "p1", "product_name": "Chips", "quantity": 2})
        self.reconciler = Reconciler(
            self.remote, OrderSpec(), MERCHANT, retry_attempts=2, retry_backoff=0.001, max_backoff=0.01,
        )
        self.store = self.reconciler.store

    async def asyncTearDown(self):
        await self.reconciler.close()

    async def test_load_folds_in_order_items(self):
        result = await self.reconciler.start()
        self.assertTrue(result.ok)
        order = self.store.get("o1")
        self.assertEqual(order["status"], "pending")
        self.assertEqual([dict(i) for i in order["items"]], [{"product_id": "p1", "product_name": "Chips", "quantity": 2}])

    async def test_live_update_keeps_cached_items(self):
        await self.reconciler.start()
        self.remote.server_update("orders", {"id": "o1"}, {"status": "preparing"})

        await eventually(lambda: self.store.get("o1")["status"] == "preparing")
        self.assertEqual(len(self.store.get("o1")["items"]), 1)

    async def test_live_insert_of_unseen_order_fetches_items(self):
        await self.reconciler.start()
        self.remote.seed("order_items", {"order_id": "o2", "product_id": "p9", "product_name": None, "quantity": 1})
        self.remote.server_insert("orders", order_row("o2"))

        await eventually(lambda: "o2" in self.store)
        self.assertEqual(self.store.get("o2")["items"][0]["product_name"], "Product p9")

    async def test_other_merchants_rows_are_not_delivered(self):
        await self.reconciler.start()
        self.remote.server_insert("orders", order_row("x1", merchant_id="someone-else"))
        await settle()
        self.assertNotIn("x1", self.store)

    async def test_failed_load_keeps_previous_snapshot(self):
        await self.reconciler.start()
        self.remote.fail_next("fetch_all", TransientNetworkError("timeout"))

        result = await self.reconciler.load()

        self.assertFalse(result.ok)
        self.assertIn("o1", self.store)
        self.assertEqual(self.store.error, "Connection problem, please try again")

    async def test_failed_initial_load_is_retried(self):
        self.remote.fail_next("fetch_all", TransientNetworkError("timeout"))

        result = await self.reconciler.start()

        self.assertFalse(result.ok)
        self.assertEqual(self.store.error, "Connection problem, please try again")
        await eventually(lambda: "o1" in self.store)
        self.assertIsNone(self.store.error)
        self.assertEqual(self.reconciler.resync_count, 1)

        # The resubscribed feed is live
        self.remote.server_update("orders", {"id": "o1"}, {"status": "preparing"})
        await eventually(lambda: self.store.get("o1")["status"] == "preparing")
        self.assertEqual(self.remote.hub.subscriber_count, 1)

    async def test_initial_load_gives_up_after_retries(self):
        self.remote.fail_next("fetch_all", TransientNetworkError("offline"), times=5)

        await self.reconciler.start()

        await eventually(lambda: self.reconciler.task.done())
        self.assertEqual(self.store.error, "Live updates stopped, please refresh")
        self.assertNotIn("o1", self.store)

    async def test_reconnect_refetches_and_corrects_drift(self):
        await self.reconciler.start()

        # Changes made while the connection is down never reach the feed
        self.remote.publish_events = False
        self.remote.hub.drop_connections("orders")
        self.remote.server_update("orders", {"id": "o1"}, {"status": "preparing"})
        self.remote.publish_events = True

        await eventually(lambda: self.reconciler.resync_count == 1)
        await eventually(lambda: self.store.get("o1")["status"] == "preparing")

        # And the fresh subscription is live
        self.remote.server_update("orders", {"id": "o1"}, {"status": "ready"})
        await eventually(lambda: self.store.get("o1")["status"] == "ready")

    async def test_reconnect_reverts_unconfirmed_entry(self):
        await self.reconciler.start()
        current = dict(self.store.get("o1"))
        self.store.upsert({**current, "status": "preparing"}, unconfirmed=True, base_revision=current["version_id"])

        self.remote.hub.drop_connections("orders")

        await eventually(lambda: self.reconciler.resync_count == 1)
        await eventually(lambda: not self.store.is_unconfirmed("o1"))
        self.assertEqual(self.store.get("o1")["status"], "pending")

    async def test_retries_exhausted_surfaces_error(self):
        await self.reconciler.start()
        self.remote.fail_next("fetch_all", TransientNetworkError("offline"), times=5)

        self.remote.hub.drop_connections("orders")

        await eventually(lambda: self.reconciler.task.done())
        self.assertEqual(self.store.error, "Live updates stopped, please refresh")
        self.assertIn("o1", self.store)

    async def test_close_unsubscribes(self):
        await self.reconciler.start()
        self.assertEqual(self.remote.hub.subscriber_count, 1)
        await self.reconciler.close()
        self.assertEqual(self.remote.hub.subscriber_count, 0)

        self.remote.server_update("orders", {"id": "o1"}, {"status": "preparing"})
        await settle()
        self.assertEqual(self.store.get("o1")["status"], "pending")


if __name__ == "__main__":
    unittest.main()
