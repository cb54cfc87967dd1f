"""
Campaign Registry

Owns campaign records: creation, reads and the one-way finalization.
`amount_raised` lives on the campaign row but is written only by the
contribution ledger.
"""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from common.error_handling import InvalidArgument, NotFound, NotYetEnded, AlreadyFinalized
from common.schemas import CampaignSnapshot, CampaignEvent
from common.tracing import crowdfund_tracer
from crowdfund_service.models import MAX_AMOUNT, Campaign, Contribution
from crowdfund_service.store import LedgerStore, add_event

logger = logging.getLogger(__name__)

def is_active(now: int, deadline: int, finalized: bool) -> bool:
    return now < deadline and not finalized

def campaign_status(now: int, campaign: Campaign) -> str:
    if campaign.finalized:
        return "Successful" if campaign.goal_reached else "Ended"
    if now < campaign.deadline:
        return "Active"
    return "Ended (Not Finalized)"

def to_snapshot(campaign: Campaign, now: int, user_contribution: Optional[int] = None) -> CampaignSnapshot:
    return CampaignSnapshot(
        id=campaign.id,
        creator=campaign.creator,
        title=campaign.title,
        funding_goal=campaign.funding_goal,
        deadline=campaign.deadline,
        amount_raised=campaign.amount_raised,
        finalized=campaign.finalized,
        goal_reached=campaign.goal_reached,
        is_active=is_active(now, campaign.deadline, campaign.finalized),
        status=campaign_status(now, campaign),
        progress_percent=round(campaign.amount_raised * 100 / campaign.funding_goal, 2),
        created_at=campaign.created_at,
        finalized_at=campaign.finalized_at,
        finalized_by=campaign.finalized_by,
        user_contribution=user_contribution,
    )

def is_allocatable_id(campaign_id: int) -> bool:
    return 0 <= campaign_id <= MAX_AMOUNT

def load_campaign(db: Session, campaign_id: int, for_update: bool = False) -> Campaign:
    if not is_allocatable_id(campaign_id):
        raise NotFound(campaign_id)
    campaign = db.get(Campaign, campaign_id, with_for_update=for_update)
    if campaign is None:
        raise NotFound(campaign_id)
    return campaign

def require_identity(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{field} must be a non-empty identity", field=field)
    return value

def require_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{field} must be an integer", field=field)
    if value <= 0:
        raise InvalidArgument(f"{field} must be positive", field=field, context={field: value})
    if value > MAX_AMOUNT:
        raise InvalidArgument(f"{field} exceeds {MAX_AMOUNT}", field=field, context={field: value})
    return value

class CampaignRegistry:
    def __init__(self, store: LedgerStore):
        self.store = store

    def create_campaign(self, creator: str, title: str, funding_goal: int, duration_seconds: int) -> int:
        """Register a campaign and return its id (0, 1, 2, ...)"""
        require_identity(creator, "creator")
        if not isinstance(title, str) or not title.strip():
            raise InvalidArgument("title must not be empty", field="title")
        require_positive_int(funding_goal, "funding_goal")
        require_positive_int(duration_seconds, "duration_seconds")

        with crowdfund_tracer.start_span("create_campaign") as span:
            with self.store.creation_lock:
                with self.store.transaction() as db:
                    now = self.store.now()
                    if now + duration_seconds > MAX_AMOUNT:
                        raise InvalidArgument("deadline out of range", field="duration_seconds")
                    campaign_id = db.scalar(select(func.count()).select_from(Campaign))
                    db.add(Campaign(
                        id=campaign_id,
                        creator=creator,
                        title=title,
                        funding_goal=funding_goal,
                        deadline=now + duration_seconds,
                        amount_raised=0,
                        finalized=False,
                        goal_reached=False,
                        created_at=now,
                    ))
                    add_event(db, CampaignEvent(type="CampaignCreated", campaign_id=campaign_id,
                                                actor=creator, occurred_at=now))
            span.add_tag("campaign.id", campaign_id)

        logger.info(f"Campaign {campaign_id} created by {creator}: goal={funding_goal} deadline={now + duration_seconds}")
        return campaign_id

    def get_campaign(self, campaign_id: int) -> CampaignSnapshot:
        with self.store.transaction(readonly=True) as db:
            campaign = load_campaign(db, campaign_id)
            return to_snapshot(campaign, self.store.now())

    def get_total_campaigns(self) -> int:
        with self.store.transaction(readonly=True) as db:
            return db.scalar(select(func.count()).select_from(Campaign))

    def list_campaigns(self, viewer: Optional[str] = None) -> List[CampaignSnapshot]:
        """All campaigns in id order; with a viewer, each carries that identity's contribution"""
        with self.store.transaction(readonly=True) as db:
            now = self.store.now()
            campaigns = db.scalars(select(Campaign).order_by(Campaign.id)).all()
            stakes = {}
            if viewer is not None:
                rows = db.execute(
                    select(Contribution.campaign_id, Contribution.amount).where(Contribution.contributor == viewer)
                ).all()
                stakes = {campaign_id: amount for campaign_id, amount in rows}
            return [
                to_snapshot(c, now, stakes.get(c.id, 0) if viewer is not None else None)
                for c in campaigns
            ]

    def finalize_campaign(self, campaign_id: int, caller: str) -> CampaignSnapshot:
        """Settle a campaign once its deadline has passed.

        Any identity may finalize. The goal decision uses the raised total as
        of the moment the campaign's critical section is held, so every
        committed contribution counts and later ones are rejected as closed.
        """
        require_identity(caller, "caller")

        with crowdfund_tracer.start_span("finalize_campaign") as span:
            span.add_tag("campaign.id", campaign_id)
            with self.store.campaign_locks.hold(campaign_id):
                with self.store.transaction() as db:
                    campaign = load_campaign(db, campaign_id, for_update=True)
                    if campaign.finalized:
                        raise AlreadyFinalized(f"campaign {campaign_id} is already finalized",
                                               context={"campaign_id": campaign_id})
                    now = self.store.now()
                    if now < campaign.deadline:
                        raise NotYetEnded(f"campaign {campaign_id} ends at {campaign.deadline}",
                                          context={"campaign_id": campaign_id, "deadline": campaign.deadline, "now": now})

                    campaign.goal_reached = campaign.amount_raised >= campaign.funding_goal
                    campaign.finalized = True
                    campaign.finalized_at = now
                    campaign.finalized_by = caller
                    add_event(db, CampaignEvent(type="CampaignFinalized", campaign_id=campaign_id, actor=caller,
                                                amount_raised=campaign.amount_raised,
                                                goal_reached=campaign.goal_reached, occurred_at=now))
                    snapshot = to_snapshot(campaign, now)
            span.add_tag("campaign.goal_reached", snapshot.goal_reached)

        logger.info(f"Campaign {campaign_id} finalized by {caller}: raised={snapshot.amount_raised} "
                    f"goal={snapshot.funding_goal} goal_reached={snapshot.goal_reached}")
        return snapshot
