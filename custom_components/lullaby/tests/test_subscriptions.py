"""
Tests for SubscriptionSet — one teardown handle per device.
"""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock

from custom_components.lullaby.subscriptions import SubscriptionSet


class TestSubscriptionSet(unittest.TestCase):

    def _opener(self):
        handles = {}

        def _open(key):
            handles[key] = MagicMock(name=f"unsubscribe_{key}")
            return handles[key]

        return _open, handles

    def test_reconcile_opens_one_handle_per_key(self):
        subs = SubscriptionSet()
        open_fn, handles = self._opener()

        subs.reconcile(["a", "b"], open_fn)

        self.assertEqual(len(subs), 2)
        self.assertEqual(sorted(subs.keys()), ["a", "b"])

    def test_reconcile_closes_removed_and_keeps_unchanged(self):
        subs = SubscriptionSet()
        open_fn, handles = self._opener()
        subs.reconcile(["a", "b"], open_fn)
        handle_a, handle_b = handles["a"], handles["b"]

        subs.reconcile(["a", "c"], open_fn)

        handle_b.assert_called_once()
        handle_a.assert_not_called()
        self.assertEqual(sorted(subs.keys()), ["a", "c"])
        self.assertIs(handles["a"], handle_a)

    def test_removed_handles_close_before_new_ones_open(self):
        subs = SubscriptionSet()
        order = []

        subs.add("old", lambda: order.append("close old"))

        def _open(key):
            order.append(f"open {key}")
            return lambda: None

        subs.reconcile(["new"], _open)

        self.assertEqual(order, ["close old", "open new"])

    def test_reconcile_deduplicates_keys(self):
        subs = SubscriptionSet()
        open_fn, handles = self._opener()

        subs.reconcile(["a", "a"], open_fn)

        self.assertEqual(len(subs), 1)

    def test_add_replaces_existing_handle(self):
        subs = SubscriptionSet()
        first, second = MagicMock(), MagicMock()

        subs.add("a", first)
        subs.add("a", second)

        first.assert_called_once()
        second.assert_not_called()
        self.assertEqual(len(subs), 1)

    def test_discard_only_closes_matching_handle(self):
        subs = SubscriptionSet()
        first, second = MagicMock(), MagicMock()
        subs.add("a", first)
        subs.add("a", second)

        # The stale handle must not tear down its replacement
        subs.discard("a", first)
        self.assertIn("a", subs)
        second.assert_not_called()

        subs.discard("a", second)
        self.assertNotIn("a", subs)
        second.assert_called_once()

    def test_close_swallows_teardown_errors(self):
        subs = SubscriptionSet()
        subs.add("a", MagicMock(side_effect=RuntimeError("already closed")))

        subs.close("a")

        self.assertEqual(len(subs), 0)

    def test_close_all(self):
        subs = SubscriptionSet()
        open_fn, handles = self._opener()
        subs.reconcile(["a", "b", "c"], open_fn)

        subs.close_all()

        self.assertEqual(len(subs), 0)
        for handle in handles.values():
            handle.assert_called_once()
