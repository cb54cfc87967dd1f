#!/usr/bin/env python3
"""
End-to-end lifecycle scenarios against the ledger, driven by a fake clock
"""

import threading
import unittest

from common.error_handling import NotYetEnded, CampaignClosed, AlreadyFinalized
from tests.ledger_case import LedgerTestCase


class TestCampaignLifecycle(LedgerTestCase):

    def _underfunded_campaign(self) -> int:
        self.clock.set(0)
        campaign_id = self.registry.create_campaign("creator", "Community garden", 10, 3600)
        self.clock.set(10)
        self.ledger.contribute(campaign_id, "alice", 4)
        self.clock.set(20)
        self.ledger.contribute(campaign_id, "bob", 4)
        return campaign_id

    def test_active_campaign_cannot_be_finalized(self):
        """Goal 10, two contributions of 4; still active at t=30"""
        campaign_id = self._underfunded_campaign()
        self.clock.set(30)

        snapshot = self.registry.get_campaign(campaign_id)
        self.assertEqual(snapshot.amount_raised, 8)
        self.assertTrue(snapshot.is_active)
        with self.assertRaises(NotYetEnded):
            self.registry.finalize_campaign(campaign_id, "alice")

    def test_underfunded_campaign_finalizes_without_goal(self):
        """At t=3601 finalize records a missed goal; contributions at t=3602 are closed"""
        campaign_id = self._underfunded_campaign()
        self.clock.set(3601)

        snapshot = self.registry.finalize_campaign(campaign_id, "alice")
        self.assertTrue(snapshot.finalized)
        self.assertFalse(snapshot.goal_reached)

        self.clock.set(3602)
        with self.assertRaises(CampaignClosed):
            self.ledger.contribute(campaign_id, "carol", 5)
        with self.assertRaises(AlreadyFinalized):
            self.registry.finalize_campaign(campaign_id, "alice")

    def test_overfunded_campaign_reaches_goal(self):
        """Goal 10, one contribution of 12; finalize at t=101 reaches the goal"""
        self.clock.set(0)
        campaign_id = self.registry.create_campaign("creator", "Robot kit", 10, 100)
        self.clock.set(50)
        self.ledger.contribute(campaign_id, "dave", 12)
        self.clock.set(101)

        snapshot = self.registry.finalize_campaign(campaign_id, "dave")
        self.assertTrue(snapshot.goal_reached)
        self.assertEqual(self.ledger.get_contribution(campaign_id, "dave"), 12)
        self.assertEqual(self.rewards.balance_of("dave"), 12 * self.issuance_ratio)

    def test_concurrent_contributions_are_not_lost(self):
        """Two simultaneous contributions of 5 both land; raised ends at exactly 10"""
        campaign_id = self.registry.create_campaign("creator", "Race", 10, 3600)
        barrier = threading.Barrier(2)
        receipts, errors = [], []

        def worker(contributor):
            barrier.wait()
            try:
                receipts.append(self.ledger.contribute(campaign_id, contributor, 5))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("alice", "bob")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(r.amount_raised for r in receipts), [5, 10])
        self.assertEqual(self.registry.get_campaign(campaign_id).amount_raised, 10)
        self.assertTrue(self.ledger.verify_conservation(campaign_id))


if __name__ == "__main__":
    unittest.main()
