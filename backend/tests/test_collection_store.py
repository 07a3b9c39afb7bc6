import unittest

from merchant_dash.sync.collection import (
    CHANGE_CONFIRM,
    CHANGE_REMOVE,
    CHANGE_REPLACE,
    CHANGE_UPSERT,
    CollectionStore,
)


class CollectionStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = CollectionStore("orders", sort_field="created_at", descending=True)
        self.changes = []
        self.store.subscribe(lambda store, change: self.changes.append(change))

    def test_snapshot_is_sorted_with_missing_sort_values_last(self):
        self.store.replace_all([
            {"id": "a", "created_at": "2026-10-01T08:00:00Z"},
            {"id": "b", "created_at": None},
            {"id": "c", "created_at": "2026-10-02T08:00:00Z"},
        ])
        self.assertEqual([i["id"] for i in self.store.snapshot()], ["c", "a", "b"])

    def test_snapshot_is_read_only_and_stable(self):
        self.store.replace_all([{"id": "a", "status": "pending", "items": [{"product_id": "p1"}]}])
        before = self.store.snapshot()

        with self.assertRaises(TypeError):
            before.items[0]["status"] = "ready"
        with self.assertRaises(TypeError):
            before.items[0]["items"][0]["product_id"] = "p2"

        self.store.upsert({"id": "a", "status": "preparing", "items": [{"product_id": "p1"}]})
        self.assertEqual(before.items[0]["status"], "pending")
        self.assertEqual(self.store.snapshot().items[0]["status"], "preparing")
        self.assertGreater(self.store.snapshot().version, before.version)

    def test_snapshot_to_dict_is_plain(self):
        self.store.replace_all([{"id": "a", "items": [{"product_id": "p1"}]}])
        body = self.store.snapshot().to_dict()
        self.assertEqual(body, {"items": [{"id": "a", "items": [{"product_id": "p1"}]}], "loading": False, "error": None})
        self.assertIsInstance(body["items"][0], dict)
        self.assertIsInstance(body["items"][0]["items"], list)

    def test_identical_upsert_is_not_a_change(self):
        self.store.upsert({"id": "a", "status": "pending"})
        self.changes.clear()
        self.assertIsNone(self.store.upsert({"id": "a", "status": "pending"}))
        self.assertEqual(self.changes, [])

    def test_remove_absent_key_is_noop(self):
        self.assertIsNone(self.store.remove("missing"))
        self.assertEqual(self.changes, [])

    def test_tombstone_survives_remove_and_clears_on_fetch(self):
        self.store.upsert({"id": "a"})
        change = self.store.remove("a", tombstone=True)
        self.assertEqual(change.kind, CHANGE_REMOVE)
        self.assertTrue(self.store.is_tombstoned("a"))

        self.store.replace_all([{"id": "a"}])
        self.assertFalse(self.store.is_tombstoned("a"))
        self.assertIn("a", self.store)

    def test_unconfirmed_entries_and_confirmation(self):
        self.store.upsert({"id": "a", "status": "pending", "version_id": 1})
        change = self.store.upsert({"id": "a", "status": "preparing", "version_id": 1}, unconfirmed=True, base_revision=1)

        self.assertEqual(change.kind, CHANGE_UPSERT)
        self.assertFalse(change.confirmed)
        self.assertTrue(self.store.is_unconfirmed("a"))
        self.assertEqual(self.store.base_revision("a"), 1)
        self.assertEqual(self.store.snapshot().confirmed_items(), ())

        change = self.store.mark_confirmed("a")
        self.assertEqual(change.kind, CHANGE_CONFIRM)
        self.assertFalse(self.store.is_unconfirmed("a"))
        self.assertIsNone(self.store.mark_confirmed("a"))

    def test_replace_all_reports_reverted_optimistic_entries(self):
        self.store.replace_all([{"id": "a", "status": "pending"}, {"id": "b", "status": "pending"}])
        self.store.upsert({"id": "a", "status": "preparing"}, unconfirmed=True)
        self.store.upsert({"id": "b", "status": "preparing"}, unconfirmed=True)

        # Fetch agrees with b's speculative state but not with a's
        change = self.store.replace_all([{"id": "a", "status": "pending"}, {"id": "b", "status": "preparing"}])

        self.assertEqual(change.kind, CHANGE_REPLACE)
        self.assertEqual(change.reverted, ("a",))
        self.assertEqual(self.store.get("a")["status"], "pending")
        self.assertFalse(self.store.is_unconfirmed("a"))
        self.assertFalse(self.store.is_unconfirmed("b"))

    def test_replace_all_with_committed_write_confirms_entry(self):
        self.store.replace_all([
            {"id": "a", "status": "pending", "note": "", "version_id": 1},
            {"id": "b", "status": "pending", "note": "", "version_id": 1},
        ])
        self.store.upsert({"id": "a", "status": "preparing", "note": "", "version_id": 1},
                          unconfirmed=True, base_revision=1, expected_fields=["status"])
        self.store.upsert({"id": "b", "status": "preparing", "note": "", "version_id": 1},
                          unconfirmed=True, base_revision=1, expected_fields=["status"])

        # a: committed, and someone else touched an unrelated field since
        # b: the load still carries the revision b was derived from
        change = self.store.replace_all([
            {"id": "a", "status": "preparing", "note": "rush", "version_id": 3},
            {"id": "b", "status": "preparing", "note": "", "version_id": 1},
        ])

        self.assertEqual(change.reverted, ("b",))
        self.assertEqual(self.store.get("a")["version_id"], 3)
        self.assertFalse(self.store.is_unconfirmed("a"))

    def test_replace_all_with_newer_but_different_value_reverts(self):
        self.store.replace_all([{"id": "a", "status": "pending", "version_id": 1}])
        self.store.upsert({"id": "a", "status": "preparing", "version_id": 1},
                          unconfirmed=True, base_revision=1, expected_fields=["status"])

        change = self.store.replace_all([{"id": "a", "status": "cancelled", "version_id": 2}])

        self.assertEqual(change.reverted, ("a",))
        self.assertEqual(self.store.get("a")["status"], "cancelled")

    def test_server_stamped_fields_do_not_revert(self):
        store = CollectionStore("status", stamp_fields=("updated_at",))
        store.replace_all([{"id": "s", "prep_time": 30, "updated_at": "2026-10-19T08:00:00Z", "version_id": 1}])
        store.upsert({"id": "s", "prep_time": 45, "updated_at": "2026-10-19T09:00:00.123456Z", "version_id": 1},
                     unconfirmed=True, base_revision=1, expected_fields=["prep_time", "updated_at"])

        change = store.replace_all([{"id": "s", "prep_time": 45, "updated_at": "2026-10-19T09:00:01Z", "version_id": 2}])

        self.assertEqual(change.reverted, ())

    def test_loading_and_error_flags(self):
        self.store.set_loading(True)
        self.assertTrue(self.store.snapshot().loading)
        self.store.set_error("Connection problem, please try again")
        self.store.set_loading(False)
        body = self.store.snapshot().to_dict()
        self.assertFalse(body["loading"])
        self.assertEqual(body["error"], "Connection problem, please try again")

    def test_failing_listener_does_not_block_others(self):
        seen = []

        def broken(store, change):
            raise RuntimeError("boom")

        store = CollectionStore("notifications")
        store.subscribe(broken)
        store.subscribe(lambda s, c: seen.append(c.kind))
        store.upsert({"id": "n1"})
        self.assertEqual(seen, [CHANGE_UPSERT])

    def test_unsubscribe(self):
        store = CollectionStore("notifications")
        seen = []
        unsubscribe = store.subscribe(lambda s, c: seen.append(c))
        unsubscribe()
        unsubscribe()
        store.upsert({"id": "n1"})
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
