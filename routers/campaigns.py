from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from campaign_service import CampaignService
from deps import SessionDep, require_roles
from models import User
from schemas import Campaign, CampaignCreate

campaigns_router = APIRouter(prefix="/campaigns", tags=["campaigns"])

CampaignCreatorDep = Annotated[User, Depends(require_roles("fundraiser", "staff"))]


@campaigns_router.post("", status_code=status.HTTP_201_CREATED)
async def create_campaign(payload: CampaignCreate, db_session: SessionDep, creator: CampaignCreatorDep):
    campaign = await CampaignService.create_campaign(db_session, payload, creator)
    return {"success": True, "data": Campaign.model_validate(campaign)}


@campaigns_router.get("")
async def list_campaigns(db_session: SessionDep, status: Optional[str] = None):
    campaigns = await CampaignService.list_campaigns(db_session, status=status)
    return {"success": True, "count": len(campaigns), "data": [Campaign.model_validate(c) for c in campaigns]}


@campaigns_router.get("/{campaign_id}")
async def get_campaign(campaign_id: int, db_session: SessionDep):
    campaign = await CampaignService.get_campaign(db_session, campaign_id)
    return {"success": True, "data": Campaign.model_validate(campaign)}
