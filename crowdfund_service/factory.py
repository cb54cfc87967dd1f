"""
Wires the store, registry, contribution ledger and reward accounts together.
This is the only place that decides which concrete pieces the service runs with.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from common.settings import Settings, settings as default_settings
from crowdfund_service.ledger import ContributionLedger
from crowdfund_service.registry import CampaignRegistry
from crowdfund_service.rewards import RewardCreditAccount, RewardIssuance
from crowdfund_service.store import Clock, LedgerStore

logger = logging.getLogger(__name__)

@dataclass
class CrowdfundServices:
    store: LedgerStore
    registry: CampaignRegistry
    ledger: ContributionLedger
    rewards: RewardCreditAccount

    def close(self):
        self.store.close()

def create_services(
    config: Optional[Settings] = None,
    database_url: Optional[str] = None,
    clock: Optional[Clock] = None,
    issuance: Optional[RewardIssuance] = None,
) -> CrowdfundServices:
    """Open the ledger store and build the three components on top of it"""
    config = config or default_settings
    store = LedgerStore(database_url or config.database_url, clock=clock, echo=config.database_echo).open()

    issuance = issuance or RewardIssuance(config.reward_issuance_ratio)
    rewards = RewardCreditAccount(store, issuance,
                                  token_name=config.reward_token_name,
                                  token_symbol=config.reward_token_symbol)
    registry = CampaignRegistry(store)
    ledger = ContributionLedger(store, rewards)

    logger.info(f"✅ Crowdfund ledger ready (issuance ratio {issuance.ratio})")
    return CrowdfundServices(store=store, registry=registry, ledger=ledger, rewards=rewards)

__all__ = ["CrowdfundServices", "create_services"]
