#!/usr/bin/env python3
"""
Crowdfund Ledger Service
Request/response surface over the campaign registry, contribution ledger and reward accounts
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request

from common.error_handling import add_error_handlers
from common.schemas import (
    CampaignCreated, CampaignSnapshot, Contribute, ContributionReceipt, ContributionRecord,
    CreateCampaign, FinalizeCampaign, RewardBalance, RewardTokenInfo,
)
from common.security import LEDGER_AUDIENCE, mint_internal_jwt, verify_token
from common.settings import settings
from common.tracing import crowdfund_tracer, tracing_middleware
from crowdfund_service.factory import CrowdfundServices, create_services

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter()

def get_services(request: Request) -> CrowdfundServices:
    return request.app.state.services

async def internal_auth(request: Request, authorization: Optional[str] = Header(None)):
    if not request.app.state.require_auth:
        return
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "missing bearer token")
    token = authorization.split(" ", 1)[1]
    try:
        verify_token(token, audience=LEDGER_AUDIENCE)
    except Exception as e:
        raise HTTPException(401, f"invalid internal token: {e}")

@router.post("/campaigns", response_model=CampaignCreated, status_code=201, dependencies=[Depends(internal_auth)])
def create_campaign(body: CreateCampaign, services: CrowdfundServices = Depends(get_services)):
    campaign_id = services.registry.create_campaign(body.creator, body.title, body.funding_goal, body.duration_seconds)
    return CampaignCreated(campaign_id=campaign_id)

@router.get("/campaigns/count")
def total_campaigns(services: CrowdfundServices = Depends(get_services)):
    return {"total": services.registry.get_total_campaigns()}

@router.get("/campaigns", response_model=List[CampaignSnapshot])
def list_campaigns(viewer: Optional[str] = None, services: CrowdfundServices = Depends(get_services)):
    return services.registry.list_campaigns(viewer=viewer)

@router.get("/campaigns/{campaign_id}", response_model=CampaignSnapshot)
def get_campaign(campaign_id: int, services: CrowdfundServices = Depends(get_services)):
    return services.registry.get_campaign(campaign_id)

@router.get("/campaigns/{campaign_id}/contributions", response_model=List[ContributionRecord])
def list_contributions(campaign_id: int, services: CrowdfundServices = Depends(get_services)):
    return services.ledger.list_contributions(campaign_id)

@router.get("/campaigns/{campaign_id}/contributions/{contributor}")
def get_contribution(campaign_id: int, contributor: str, services: CrowdfundServices = Depends(get_services)):
    return {
        "campaign_id": campaign_id,
        "contributor": contributor,
        "amount": services.ledger.get_contribution(campaign_id, contributor),
    }

@router.post("/campaigns/{campaign_id}/contribute", response_model=ContributionReceipt,
             dependencies=[Depends(internal_auth)])
def contribute(campaign_id: int, body: Contribute, services: CrowdfundServices = Depends(get_services)):
    return services.ledger.contribute(campaign_id, body.contributor, body.amount)

@router.post("/campaigns/{campaign_id}/finalize", response_model=CampaignSnapshot,
             dependencies=[Depends(internal_auth)])
def finalize(campaign_id: int, body: FinalizeCampaign, services: CrowdfundServices = Depends(get_services)):
    return services.registry.finalize_campaign(campaign_id, body.caller)

@router.get("/rewards", response_model=RewardTokenInfo)
def reward_token(services: CrowdfundServices = Depends(get_services)):
    return services.rewards.token_info()

@router.get("/rewards/{holder}", response_model=RewardBalance)
def balance_of(holder: str, services: CrowdfundServices = Depends(get_services)):
    return RewardBalance(holder=holder, balance=services.rewards.balance_of(holder))

@router.get("/health")
def health(services: CrowdfundServices = Depends(get_services)):
    return {"ok": True, "service": "crowdfund", "campaigns": services.registry.get_total_campaigns()}

# Helper for callers to get an internal token (in real life, a gateway issues this)
@router.get("/mint-internal-token")
def mint():
    return {"token": mint_internal_jwt(aud=LEDGER_AUDIENCE)}

def create_app(services: Optional[CrowdfundServices] = None, require_auth: Optional[bool] = None) -> FastAPI:
    """Build the service; injected services are left open for the caller to close"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or create_services()
        logger.info("🚀 Crowdfund ledger service started")
        try:
            yield
        finally:
            if owned:
                app.state.services.close()

    app = FastAPI(title="Crowdfund Ledger Service", version="1.0.0", lifespan=lifespan)
    app.state.require_auth = settings.require_internal_auth if require_auth is None else require_auth
    add_error_handlers(app)

    @app.middleware("http")
    async def add_tracing(request: Request, call_next):
        return await tracing_middleware(request, call_next, crowdfund_tracer)

    app.include_router(router)
    return app

app = create_app()
