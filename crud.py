# crud.py
# Plain lookups and inserts shared by the services and routers.

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import models, schemas
from auth_utils import get_password_hash
from errors import Conflict

async def get_user(db: AsyncSession, user_id: int) -> Optional[models.User]:
    result = await db.execute(select(models.User).filter(models.User.id == user_id))
    return result.scalar_one_or_none()

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).filter(models.User.email == email.strip().lower()))
    return result.scalar_one_or_none()

async def get_users(db: AsyncSession, skip: int = 0, limit: int = 100, role: Optional[str] = None) -> List[models.User]:
    query = select(models.User).order_by(models.User.created_at.desc(), models.User.id.desc())
    if role:
        query = query.filter(models.User.role == role)
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())

async def get_pending_users(db: AsyncSession) -> List[models.User]:
    result = await db.execute(
        select(models.User)
        .filter(models.User.is_approved.is_(False), models.User.role != "admin")
        .order_by(models.User.created_at.desc(), models.User.id.desc())
    )
    return list(result.scalars().all())

async def create_user(db: AsyncSession, user: schemas.UserCreate, *, role: Optional[str] = None, is_approved: bool = False) -> models.User:
    """Create a new user. Admin accounts are always approved."""
    role = role or user.role
    db_user = models.User(
        name=user.name.strip(),
        email=user.email.strip().lower(),
        mobile_number=user.mobile_number,
        hashed_password=get_password_hash(user.password),
        role=role,
        business_name=user.business_name,
        is_active=True,
        is_approved=is_approved or role == "admin",
        partner_kyc_completed=False,
    )
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email already registered", code="email_taken")
    await db.refresh(db_user)
    return db_user

async def get_partner(db: AsyncSession, partner_id: int) -> Optional[models.Partner]:
    result = await db.execute(select(models.Partner).filter(models.Partner.id == partner_id))
    return result.scalar_one_or_none()

async def get_partner_by_owner(db: AsyncSession, user_id: int) -> Optional[models.Partner]:
    result = await db.execute(select(models.Partner).filter(models.Partner.created_by == user_id))
    return result.scalar_one_or_none()

async def get_campaign(db: AsyncSession, campaign_id: int) -> Optional[models.Campaign]:
    result = await db.execute(select(models.Campaign).filter(models.Campaign.id == campaign_id))
    return result.scalar_one_or_none()

async def get_donation(db: AsyncSession, donation_id: int) -> Optional[models.Donation]:
    result = await db.execute(select(models.Donation).filter(models.Donation.id == donation_id))
    return result.scalar_one_or_none()

async def get_donation_by_payment_id(db: AsyncSession, payment_id: str) -> Optional[models.Donation]:
    result = await db.execute(select(models.Donation).filter(models.Donation.payment_id == payment_id))
    return result.scalar_one_or_none()

async def get_claim(db: AsyncSession, claim_id: int) -> Optional[models.CouponClaim]:
    result = await db.execute(select(models.CouponClaim).filter(models.CouponClaim.id == claim_id))
    return result.scalar_one_or_none()
