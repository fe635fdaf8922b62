"""
Donation Coupon Service - minting, lazy expiry and read views

A coupon is minted once per completed, partner-targeted donation made by
an authenticated donor. Status only ever moves active -> used (through a
claim, see claim_service) or active -> expired (lazily, on first read past
the expiry date).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import coupon_code
import crud
import qr_service
import schemas
from audit_service import AuditService
from config import settings
from errors import NotFound, Unauthorized
from models import Coupon, Donation, DonationCoupon, User

log = logging.getLogger(__name__)


def _payment_reference(payment_id: Optional[str], now: datetime) -> str:
    return payment_id or f"payment_{int(now.timestamp() * 1000)}"


def to_issued(coupon: DonationCoupon, partner_name: Optional[str] = None) -> schemas.CouponIssued:
    return schemas.CouponIssued(
        id=coupon.id,
        coupon_code=coupon.coupon_code,
        qr_code=coupon.qr_code,
        amount=coupon.amount,
        expiry_date=coupon.expiry_date,
        partner_id=coupon.partner_id,
        partner_name=partner_name,
    )


class CouponService:

    @staticmethod
    async def code_exists(db: AsyncSession, code: str) -> bool:
        result = await db.execute(select(DonationCoupon.id).filter(DonationCoupon.coupon_code == code))
        return result.first() is not None

    @staticmethod
    async def get_by_donation(db: AsyncSession, donation_id: int) -> Optional[DonationCoupon]:
        result = await db.execute(select(DonationCoupon).filter(DonationCoupon.donation_id == donation_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def mint_for_donation(db: AsyncSession, donation: Donation, donor: Optional[User]) -> Optional[schemas.CouponIssued]:
        """
        Mint the coupon for a committed donation, or return None.

        Raises Unauthorized for an anonymous partner-targeted donation and
        DependencyFailure when the QR renderer fails; callers run this as a
        post-commit effect, so neither touches the donation itself.
        Leaves the session rolled back on retries, so the caller must refresh
        any instance it still needs.
        """
        if donation.partner_id is None:
            return None
        if donor is None:
            raise Unauthorized("Log in to receive a coupon for partner donations", code="coupon_requires_login")
        if donation.status != "completed":
            log.info(f"Donation {donation.id} is {donation.status}; no coupon minted")
            return None

        # Snapshot plain values: a rollback below expires every loaded instance.
        donation_id = donation.id
        amount = donation.amount
        partner_id = donation.partner_id
        payment_id = donation.payment_id
        donor_id = donor.id

        partner = await crud.get_partner(db, partner_id)
        if partner is None:
            log.warning(f"Donation {donation_id} targets unknown partner {partner_id}; no coupon minted")
            return None
        partner_name = partner.name

        existing = await CouponService.get_by_donation(db, donation_id)
        if existing is not None:
            return to_issued(existing, partner_name)

        max_attempts = settings.COUPON_CODE_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            code = coupon_code.generate_coupon_code()
            if await CouponService.code_exists(db, code):
                log.info(f"Coupon code collision on attempt {attempt} for donation {donation_id}")
                continue

            qr_data_url = await qr_service.generate_qr_code(code)
            now = datetime.utcnow()
            coupon = DonationCoupon(
                coupon_code=code,
                qr_code=qr_data_url,
                user_id=donor_id,
                partner_id=partner_id,
                amount=amount,
                donation_id=donation_id,
                payment_id=_payment_reference(payment_id, now),
                status="active",
                expiry_date=now + relativedelta(months=settings.COUPON_VALIDITY_MONTHS),
                created_at=now,
                updated_at=now,
            )
            db.add(coupon)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                existing = await CouponService.get_by_donation(db, donation_id)
                if existing is not None:
                    return to_issued(existing, partner_name)
                log.info(f"Coupon code {code} rejected by the store on attempt {attempt}; retrying")
                continue

            await db.refresh(coupon)
            log.info(f"Coupon {coupon.id} minted for donation {donation_id} (partner {partner_id})")
            await AuditService.log_coupon_transition(coupon.id, None, "active", actor_id=donor_id)
            return to_issued(coupon, partner_name)

        log.warning(f"Could not mint a unique coupon code for donation {donation_id} after {max_attempts} attempts")
        return None

    @staticmethod
    async def expire_if_due(db: AsyncSession, coupon: DonationCoupon, now: Optional[datetime] = None) -> bool:
        """
        Lazy expiry: persist ``expired`` for an active coupon past its date.

        Conditional on the row still being active, so repeated or concurrent
        reads write at most once. Returns True when this call did the write.
        """
        now = now or datetime.utcnow()
        if coupon.status != "active" or not coupon.is_expired(now):
            return False

        result = await db.execute(
            update(DonationCoupon)
            .where(
                DonationCoupon.id == coupon.id,
                DonationCoupon.status == "active",
                DonationCoupon.expiry_date <= now,
            )
            .values(status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount:
            coupon.status = "expired"
            coupon.updated_at = now
            log.info(f"Coupon {coupon.id} expired lazily (expiry {coupon.expiry_date.isoformat()})")
            await AuditService.log_coupon_transition(coupon.id, "active", "expired", reason="past expiry date")
            return True

        await db.refresh(coupon)
        return False

    @staticmethod
    async def list_my_coupons(db: AsyncSession, user: User) -> List[DonationCoupon]:
        result = await db.execute(
            select(DonationCoupon)
            .filter(DonationCoupon.user_id == user.id)
            .options(selectinload(DonationCoupon.partner))
            .order_by(DonationCoupon.created_at.desc(), DonationCoupon.id.desc())
        )
        coupons = list(result.scalars().all())
        now = datetime.utcnow()
        for coupon in coupons:
            await CouponService.expire_if_due(db, coupon, now)
        return coupons

    @staticmethod
    async def get_my_coupon(db: AsyncSession, coupon_id: int, user: User) -> DonationCoupon:
        result = await db.execute(
            select(DonationCoupon)
            .filter(DonationCoupon.id == coupon_id, DonationCoupon.user_id == user.id)
            .options(selectinload(DonationCoupon.partner))
        )
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise NotFound("Coupon not found")
        await CouponService.expire_if_due(db, coupon)
        return coupon

    @staticmethod
    async def list_all_coupons(db: AsyncSession, status: Optional[str] = None) -> Dict[str, Any]:
        """
        Admin view: generic discount coupons plus donation coupons with
        their claims. ``redeemed`` selects donation coupons in ``used``.
        """
        generic_query = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
        donation_query = (
            select(DonationCoupon)
            .options(selectinload(DonationCoupon.claims), selectinload(DonationCoupon.partner))
            .order_by(DonationCoupon.created_at.desc(), DonationCoupon.id.desc())
        )
        if status:
            donation_status = "used" if status == "redeemed" else status
            generic_query = generic_query.filter(Coupon.status == status)
            donation_query = donation_query.filter(DonationCoupon.status == donation_status)

        generic = list((await db.execute(generic_query)).scalars().all())
        donation_coupons = list((await db.execute(donation_query)).scalars().all())
        return {"coupons": generic, "donation_coupons": donation_coupons}
