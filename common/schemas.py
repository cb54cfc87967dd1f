from pydantic import BaseModel, Field
from typing import Literal, Optional

class CreateCampaign(BaseModel):
    creator: str
    title: str
    funding_goal: int
    duration_seconds: int

class CampaignCreated(BaseModel):
    campaign_id: int

class Contribute(BaseModel):
    contributor: str
    amount: int

class FinalizeCampaign(BaseModel):
    caller: str

class CampaignSnapshot(BaseModel):
    id: int
    creator: str
    title: str
    funding_goal: int
    deadline: int
    amount_raised: int
    finalized: bool
    goal_reached: bool
    is_active: bool
    status: Literal["Active", "Ended (Not Finalized)", "Successful", "Ended"]
    progress_percent: float
    created_at: int
    finalized_at: Optional[int] = None
    finalized_by: Optional[str] = None
    user_contribution: Optional[int] = None

class ContributionReceipt(BaseModel):
    campaign_id: int
    contributor: str
    amount: int
    total_contribution: int
    amount_raised: int
    reward_credited: int

class ContributionRecord(BaseModel):
    campaign_id: int
    contributor: str
    amount: int

class RewardBalance(BaseModel):
    holder: str
    balance: int

class RewardTokenInfo(BaseModel):
    name: str
    symbol: str
    issuance_ratio: int
    total_supply: int

class CampaignEvent(BaseModel):
    type: Literal["CampaignCreated", "ContributionAccepted", "CampaignFinalized"]
    campaign_id: int
    actor: str
    amount: int = 0
    amount_raised: int = 0
    goal_reached: Optional[bool] = None
    occurred_at: int = Field(default=0, description="ledger clock, epoch seconds")
