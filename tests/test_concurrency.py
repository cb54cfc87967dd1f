#!/usr/bin/env python3
"""
Concurrency tests: many threads against the same ledger store
"""

import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy import select

from common.error_handling import AlreadyFinalized, CampaignClosed
from crowdfund_service.locks import KeyedLocks
from crowdfund_service.models import Campaign
from tests.ledger_case import LedgerTestCase


class TestKeyedLocks(unittest.TestCase):

    def test_same_key_same_lock(self):
        locks = KeyedLocks()
        self.assertIs(locks.get(1), locks.get(1))
        self.assertIsNot(locks.get(1), locks.get(2))
        self.assertEqual(len(locks), 2)

    def test_hold_excludes_other_threads(self):
        locks = KeyedLocks()
        counter = {"value": 0}

        def bump():
            for _ in range(200):
                with locks.hold("k"):
                    current = counter["value"]
                    counter["value"] = current + 1

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(counter["value"], 800)


class TestConcurrentLedger(LedgerTestCase):
    issuance_ratio = 2

    def test_many_contributors_many_campaigns(self):
        """Parallel contributions keep every campaign total and reward balance exact"""
        campaigns = [self.new_campaign(goal=1000, title=f"c{i}") for i in range(3)]
        contributors = ["alice", "bob", "carol", "dave"]
        jobs = [(c, who, 1 + (i % 3)) for i in range(10) for c in campaigns for who in contributors]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda job: self.ledger.contribute(*job), jobs))

        for campaign_id in campaigns:
            expected = sum(amount for c, _, amount in jobs if c == campaign_id)
            self.assertEqual(self.registry.get_campaign(campaign_id).amount_raised, expected)
            self.assertTrue(self.ledger.verify_conservation(campaign_id))

        for who in contributors:
            contributed = sum(amount for _, w, amount in jobs if w == who)
            self.assertEqual(self.rewards.balance_of(who), 2 * contributed)
            per_campaign = sum(self.ledger.get_contribution(c, who) for c in campaigns)
            self.assertEqual(per_campaign, contributed)

    def test_only_one_concurrent_finalize_wins(self):
        campaign_id = self.new_campaign(goal=5, duration=10)
        self.ledger.contribute(campaign_id, "alice", 5)
        self.clock.set(10)

        barrier = threading.Barrier(6)
        outcomes = []

        def attempt(caller):
            barrier.wait()
            try:
                outcomes.append(self.registry.finalize_campaign(campaign_id, caller))
            except AlreadyFinalized as e:
                outcomes.append(e)

        threads = [threading.Thread(target=attempt, args=(f"caller-{i}",)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(outcomes), 6)
        self.assertTrue(successes[0].goal_reached)

    def test_finalize_waits_for_in_flight_contribution(self):
        """A contribution that saw the campaign open is counted by a finalize racing it"""
        campaign_id = self.new_campaign(goal=5, duration=10)
        deadline = 10
        entered, release = threading.Event(), threading.Event()
        reads = {"count": 0}

        def clock():
            reads["count"] += 1
            if reads["count"] == 1:
                # the contribution reads the clock inside its critical section, then stalls
                entered.set()
                release.wait(5)
                return deadline - 1
            return deadline

        self.store.clock = clock
        results = {}

        def contribute():
            results["receipt"] = self.ledger.contribute(campaign_id, "alice", 5)

        def finalize():
            results["snapshot"] = self.registry.finalize_campaign(campaign_id, "bob")

        contributor = threading.Thread(target=contribute)
        contributor.start()
        self.assertTrue(entered.wait(5))
        finalizer = threading.Thread(target=finalize)
        finalizer.start()
        finalizer.join(0.3)
        self.assertTrue(finalizer.is_alive())
        release.set()
        contributor.join()
        finalizer.join()

        self.assertEqual(results["receipt"].amount_raised, 5)
        self.assertTrue(results["snapshot"].goal_reached)
        self.assertEqual(results["snapshot"].amount_raised, 5)
        with self.assertRaises(CampaignClosed):
            self.ledger.contribute(campaign_id, "carol", 1)
        self.assertEqual(self.registry.get_campaign(campaign_id).amount_raised, 5)

    def test_reads_do_not_wait_for_open_writer(self):
        """Read-only calls take no write lock, so an open write transaction does not stall them"""
        campaign_id = self.new_campaign(goal=5)
        self.ledger.contribute(campaign_id, "alice", 3)
        holding, release = threading.Event(), threading.Event()

        def writer():
            with self.store.transaction() as db:
                db.execute(select(Campaign.id)).all()
                holding.set()
                release.wait(5)

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            self.assertTrue(holding.wait(5))
            started = time.monotonic()
            self.assertEqual(self.registry.get_campaign(campaign_id).amount_raised, 3)
            self.assertEqual(self.ledger.get_contribution(campaign_id, "alice"), 3)
            self.assertEqual(self.rewards.balance_of("alice"), 6)
            self.assertEqual(self.registry.get_total_campaigns(), 1)
            elapsed = time.monotonic() - started
        finally:
            release.set()
            thread.join()
        self.assertLess(elapsed, 1.0)

    def test_concurrent_creates_keep_ids_dense(self):
        with ThreadPoolExecutor(max_workers=6) as pool:
            ids = list(pool.map(lambda i: self.new_campaign(title=f"c{i}"), range(12)))
        self.assertEqual(sorted(ids), list(range(12)))
        self.assertEqual(self.registry.get_total_campaigns(), 12)


if __name__ == "__main__":
    unittest.main()
