"""
Shared fixtures for ledger tests: a settable clock and a fresh SQLite-backed ledger per test
"""
import os
import tempfile
import unittest

from crowdfund_service.factory import create_services
from crowdfund_service.rewards import RewardIssuance


class FakeClock:
    """Ledger clock the test drives by hand (epoch seconds)"""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def set(self, now: int):
        self.now = now

    def advance(self, seconds: int):
        self.now += seconds


class LedgerTestCase(unittest.TestCase):
    issuance_ratio = 100

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.database_url = f"sqlite:///{os.path.join(self._tmpdir.name, 'ledger.db')}"
        self.clock = FakeClock(0)
        self.services = create_services(
            database_url=self.database_url,
            clock=self.clock,
            issuance=RewardIssuance(self.issuance_ratio),
        )
        self.store = self.services.store
        self.registry = self.services.registry
        self.ledger = self.services.ledger
        self.rewards = self.services.rewards

    def tearDown(self):
        self.services.close()
        self._tmpdir.cleanup()

    def new_campaign(self, goal: int = 10, duration: int = 3600, creator: str = "creator", title: str = "Campaign") -> int:
        return self.registry.create_campaign(creator, title, goal, duration)
