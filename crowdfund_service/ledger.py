"""
Contribution Ledger

Owns per-(campaign, contributor) records and is the only writer of a
campaign's raised total and of reward balances. A contribution commits the
record, the raised total, the reward credit and its outbox event in a single
transaction, under the campaign lock and then the contributor's holder lock.
"""
import logging
from typing import List

from sqlalchemy import func, select

from common.error_handling import InvalidArgument, CampaignClosed
from common.schemas import CampaignEvent, ContributionReceipt, ContributionRecord
from common.tracing import crowdfund_tracer
from crowdfund_service.models import MAX_AMOUNT, Contribution
from crowdfund_service.registry import is_allocatable_id, load_campaign, require_identity, require_positive_int
from crowdfund_service.rewards import RewardCreditAccount
from crowdfund_service.store import LedgerStore, add_event

logger = logging.getLogger(__name__)

class ContributionLedger:
    def __init__(self, store: LedgerStore, rewards: RewardCreditAccount):
        self.store = store
        self.rewards = rewards

    def contribute(self, campaign_id: int, contributor: str, amount: int) -> ContributionReceipt:
        require_identity(contributor, "contributor")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidArgument("amount must be an integer", field="amount")

        with crowdfund_tracer.start_span("contribute") as span:
            span.add_tag("campaign.id", campaign_id)
            with self.store.campaign_locks.hold(campaign_id), self.store.holder_locks.hold(contributor):
                with self.store.transaction() as db:
                    campaign = load_campaign(db, campaign_id, for_update=True)
                    now = self.store.now()
                    if campaign.finalized or now >= campaign.deadline:
                        logger.warning(f"Rejected contribution of {amount} to closed campaign {campaign_id} from {contributor}")
                        raise CampaignClosed(
                            f"campaign {campaign_id} is closed for contributions",
                            context={"campaign_id": campaign_id, "deadline": campaign.deadline,
                                     "finalized": campaign.finalized},
                        )
                    require_positive_int(amount, "amount")
                    if campaign.amount_raised + amount > MAX_AMOUNT:
                        raise InvalidArgument(f"campaign {campaign_id} total would exceed {MAX_AMOUNT}", field="amount")

                    record = db.get(Contribution, (campaign_id, contributor), with_for_update=True)
                    if record is None:
                        record = Contribution(campaign_id=campaign_id, contributor=contributor, amount=0)
                        db.add(record)
                    record.amount += amount
                    campaign.amount_raised += amount
                    credited = self.rewards.credit(db, contributor, amount)

                    add_event(db, CampaignEvent(type="ContributionAccepted", campaign_id=campaign_id,
                                                actor=contributor, amount=amount,
                                                amount_raised=campaign.amount_raised, occurred_at=now))
                    receipt = ContributionReceipt(
                        campaign_id=campaign_id,
                        contributor=contributor,
                        amount=amount,
                        total_contribution=record.amount,
                        amount_raised=campaign.amount_raised,
                        reward_credited=credited,
                    )

        logger.info(f"Contribution {amount} to campaign {campaign_id} from {contributor}: "
                    f"raised={receipt.amount_raised} credited={receipt.reward_credited}")
        return receipt

    def get_contribution(self, campaign_id: int, contributor: str) -> int:
        """Cumulative amount `contributor` put into the campaign; 0 if none"""
        if not is_allocatable_id(campaign_id):
            return 0
        with self.store.transaction(readonly=True) as db:
            record = db.get(Contribution, (campaign_id, contributor))
            return record.amount if record else 0

    def list_contributions(self, campaign_id: int) -> List[ContributionRecord]:
        with self.store.transaction(readonly=True) as db:
            load_campaign(db, campaign_id)
            rows = db.scalars(
                select(Contribution).where(Contribution.campaign_id == campaign_id).order_by(Contribution.contributor)
            ).all()
            return [ContributionRecord(campaign_id=r.campaign_id, contributor=r.contributor, amount=r.amount)
                    for r in rows]

    def verify_conservation(self, campaign_id: int) -> bool:
        """True when the stored raised total equals the sum of the campaign's contribution records"""
        with self.store.campaign_locks.hold(campaign_id):
            with self.store.transaction(readonly=True) as db:
                campaign = load_campaign(db, campaign_id)
                recorded = db.scalar(
                    select(func.coalesce(func.sum(Contribution.amount), 0)).where(Contribution.campaign_id == campaign_id)
                )
        if recorded != campaign.amount_raised:
            logger.error(f"Conservation broken for campaign {campaign_id}: raised={campaign.amount_raised} records={recorded}")
            return False
        return True
