# campaign_service.py
# Fundraising campaigns; raised amount and donor count move only by atomic increments.

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

import crud
import schemas
from errors import NotFound
from models import Campaign, User

log = logging.getLogger(__name__)


class CampaignService:

    @staticmethod
    async def create_campaign(db: AsyncSession, payload: schemas.CampaignCreate, creator: User) -> Campaign:
        campaign = Campaign(
            title=payload.title.strip(),
            description=payload.description,
            category=payload.category,
            goal_amount=payload.goal_amount,
            raised_amount=Decimal("0"),
            donor_count=0,
            status="active",
            created_by=creator.id,
            end_date=payload.end_date,
        )
        db.add(campaign)
        await db.commit()
        await db.refresh(campaign)
        log.info(f"Campaign {campaign.id} created by user {creator.id}")
        return campaign

    @staticmethod
    async def list_campaigns(db: AsyncSession, status: Optional[str] = None) -> List[Campaign]:
        query = select(Campaign).order_by(Campaign.created_at.desc(), Campaign.id.desc())
        if status:
            query = query.filter(Campaign.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_campaign(db: AsyncSession, campaign_id: int) -> Campaign:
        campaign = await crud.get_campaign(db, campaign_id)
        if campaign is None:
            raise NotFound("Campaign not found")
        return campaign

    @staticmethod
    async def record_donation(db: AsyncSession, campaign_id: int, amount: Decimal) -> None:
        """
        Bump the counters inside the caller's transaction.

        Uses ``raised_amount = raised_amount + :amount`` so concurrent
        donations never lose an update.
        """
        await db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(
                raised_amount=Campaign.raised_amount + amount,
                donor_count=Campaign.donor_count + 1,
            )
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def reverse_donation(db: AsyncSession, campaign_id: int, amount: Decimal) -> None:
        """Undo a refunded donation's contribution (inside the caller's transaction)."""
        await db.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(
                raised_amount=Campaign.raised_amount - amount,
                donor_count=Campaign.donor_count - 1,
            )
            .execution_options(synchronize_session=False)
        )
