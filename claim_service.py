"""
Coupon Claim Service - partner claim submission and admin review

Claim state machine:
    pending -> approved -> paid
    pending -> rejected

Every transition is a single conditional UPDATE keyed on the expected
source status, so two concurrent reviewers cannot both succeed. Claim
submission flips the coupon active -> used with the same kind of guarded
UPDATE; the partial unique index on coupon_claims.coupon_id backs it up.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import crud
import schemas
from audit_service import AuditService
from bank_details import extract_bank_details
from coupon_code import normalize_code
from coupon_service import CouponService
from email_templates import get_claim_status_template
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import ACTIVE_CLAIM_STATUSES, CouponClaim, DonationCoupon, User
from partner_service import PartnerService
from side_effects import PostCommitEffects
from ses_service import ses_service
from wallet_service import WalletService

log = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"


def _claim_query():
    return select(CouponClaim).options(
        selectinload(CouponClaim.coupon),
        selectinload(CouponClaim.partner_record),
        selectinload(CouponClaim.partner_user),
    )


def serialize_claim(claim: CouponClaim, with_bank_details: bool = False) -> schemas.Claim:
    """Claim view with coupon summary; bank details only for admin listings."""
    data = schemas.Claim.model_validate(claim)
    partner = claim.partner_record
    data.partner_name = partner.name if partner is not None else None
    if with_bank_details:
        try:
            details = extract_bank_details(partner.form_data if partner is not None else None)
            data.bank_details = schemas.BankDetails(**details) if details else None
        except Exception:
            log.exception(f"Bank details unavailable for claim {claim.id}")
            data.bank_details = None
    return data


class ClaimService:

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    @staticmethod
    async def check_partner_eligibility(db: AsyncSession, user: User):
        """
        Role, account approval, partner record, partner approval and KYC,
        checked in that order. Returns the caller's approved partner record.
        """
        if user.role != "partner":
            raise Forbidden("Only partners can claim coupons", code="not_partner")
        if not user.is_approved:
            raise Forbidden("Your account is pending admin approval", code="account_pending_approval")

        partner = await crud.get_partner_by_owner(db, user.id)
        if partner is None:
            raise Forbidden("Partner form not submitted. Complete your partner profile first", code="partner_form_missing")

        kyc_completed = await PartnerService.reconcile_partner_kyc(db, user, partner)
        if not partner.is_approved:
            raise Forbidden(f"Your partner profile is pending approval (status: {partner.status})", code="partner_pending_approval")
        if not kyc_completed:
            raise Forbidden("Partner KYC is incomplete", code="kyc_incomplete")
        return partner

    @staticmethod
    async def resolve_coupon(db: AsyncSession, coupon_code: Optional[str], coupon_id: Optional[int]) -> DonationCoupon:
        code = normalize_code(coupon_code)
        if code:
            query = select(DonationCoupon).filter(DonationCoupon.coupon_code == code)
        elif coupon_id is not None:
            query = select(DonationCoupon).filter(DonationCoupon.id == coupon_id)
        else:
            raise ValidationFailed("Coupon code or coupon id is required", code="coupon_reference_missing")

        coupon = (await db.execute(query)).scalar_one_or_none()
        if coupon is None:
            raise NotFound("Coupon not found", code="coupon_not_found")
        return coupon

    @staticmethod
    async def live_claim_exists(db: AsyncSession, coupon_id: int) -> bool:
        result = await db.execute(
            select(CouponClaim.id).filter(
                CouponClaim.coupon_id == coupon_id,
                CouponClaim.status.in_(ACTIVE_CLAIM_STATUSES),
            )
        )
        return result.first() is not None

    @staticmethod
    async def claim_coupon(
        db: AsyncSession,
        user: User,
        coupon_code: Optional[str] = None,
        coupon_id: Optional[int] = None,
    ) -> CouponClaim:
        """
        Submit a claim for a donation coupon bound to the caller's partner.

        The first failing check wins: eligibility, coupon lookup, partner
        binding, coupon usability, existing live claim. On success the coupon
        is marked used and a pending claim is created in one transaction.
        """
        if not normalize_code(coupon_code) and coupon_id is None:
            raise ValidationFailed("Coupon code or coupon id is required", code="coupon_reference_missing")

        partner = await ClaimService.check_partner_eligibility(db, user)
        coupon = await ClaimService.resolve_coupon(db, coupon_code, coupon_id)

        if coupon.partner_id != partner.id:
            raise Forbidden("This coupon is not valid for your partner account", code="wrong_partner")

        now = datetime.utcnow()
        if coupon.status == "used":
            raise Conflict("Coupon has already been used", code="coupon_used")
        if coupon.status == "expired" or coupon.is_expired(now):
            await CouponService.expire_if_due(db, coupon, now)
            raise Conflict("Coupon has expired", code="coupon_expired")

        if await ClaimService.live_claim_exists(db, coupon.id):
            raise Conflict("Coupon has already been claimed", code="already_claimed")

        user_id = user.id
        partner_id = partner.id
        coupon_pk = coupon.id
        amount = coupon.amount

        flipped = await db.execute(
            update(DonationCoupon)
            .where(
                DonationCoupon.id == coupon_pk,
                DonationCoupon.status == "active",
                DonationCoupon.expiry_date > now,
            )
            .values(status="used", redeemed_by=user_id, redeemed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            await db.rollback()
            raise Conflict("Coupon has already been claimed", code="already_claimed")

        claim = CouponClaim(
            coupon_id=coupon_pk,
            partner_id=user_id,
            partner_record_id=partner_id,
            amount=amount,
            status="pending",
            requested_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(claim)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            log.warning(f"Claim on coupon {coupon_pk} rejected by the live-claim index")
            raise Conflict("Coupon has already been claimed", code="already_claimed")

        claim_id = claim.id
        await db.refresh(coupon)
        log.info(f"Claim {claim_id} submitted by partner user {user_id} for coupon {coupon_pk}")

        effects = PostCommitEffects(context=f"claim {claim_id}")
        effects.add("audit_claim", lambda: AuditService.log_claim_transition(claim_id, None, "pending", user_id))
        effects.add("audit_coupon", lambda: AuditService.log_coupon_transition(coupon_pk, "active", "used", actor_id=user_id))
        await effects.run()

        return await ClaimService.get_claim(db, claim_id)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------
    @staticmethod
    async def _transition(
        db: AsyncSession,
        claim_id: int,
        expected: str,
        target: str,
        values: Dict[str, Any],
    ) -> None:
        """Guarded UPDATE; leaves the transaction open for follow-up writes."""
        result = await db.execute(
            update(CouponClaim)
            .where(CouponClaim.id == claim_id, CouponClaim.status == expected)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return

        await db.rollback()
        claim = await crud.get_claim(db, claim_id)
        if claim is None:
            raise NotFound("Claim not found")
        raise Conflict(
            f"Cannot move claim from '{claim.status}' to '{target}' (requires '{expected}')",
            code="invalid_claim_transition",
            details={"current_status": claim.status},
        )

    @staticmethod
    async def _notify(claim: CouponClaim, reason: str = "") -> None:
        recipient = claim.partner_user
        if recipient is None or not recipient.email:
            return
        template = get_claim_status_template(
            partner_name=claim.partner_record.name if claim.partner_record else recipient.name,
            claim_id=claim.id,
            coupon_code=claim.coupon.coupon_code if claim.coupon else "",
            amount=str(claim.amount),
            status=claim.status,
            reason=reason,
        )
        await ses_service.send_template(recipient.email, template, tags={"type": f"claim_{claim.status}"})

    @staticmethod
    async def _after_review(db: AsyncSession, claim_id: int, old_status: str, actor_id: int, reason: Optional[str] = None) -> CouponClaim:
        claim = await ClaimService.get_claim(db, claim_id)
        log.info(f"Claim {claim_id} {old_status} -> {claim.status} by admin {actor_id}")

        effects = PostCommitEffects(context=f"claim {claim_id}")
        effects.add("audit", lambda: AuditService.log_claim_transition(claim_id, old_status, claim.status, actor_id, reason=reason))
        effects.add("notify_partner", lambda: ClaimService._notify(claim, reason or ""))
        await effects.run()
        return claim

    @staticmethod
    async def approve_claim(db: AsyncSession, claim_id: int, admin: User) -> CouponClaim:
        admin_id = admin.id
        now = datetime.utcnow()
        await ClaimService._transition(db, claim_id, "pending", "approved", {
            "reviewed_at": now,
            "reviewed_by": admin_id,
            "updated_at": now,
        })
        await db.commit()
        return await ClaimService._after_review(db, claim_id, "pending", admin_id)

    @staticmethod
    async def reject_claim(db: AsyncSession, claim_id: int, admin: User, reason: Optional[str] = None) -> CouponClaim:
        admin_id = admin.id
        reason = (reason or "").strip() or DEFAULT_REJECTION_REASON
        now = datetime.utcnow()
        await ClaimService._transition(db, claim_id, "pending", "rejected", {
            "reviewed_at": now,
            "reviewed_by": admin_id,
            "rejection_reason": reason,
            "updated_at": now,
        })
        await db.commit()
        return await ClaimService._after_review(db, claim_id, "pending", admin_id, reason=reason)

    @staticmethod
    async def mark_as_paid(db: AsyncSession, claim_id: int, admin: User) -> CouponClaim:
        """approved -> paid, crediting the partner's wallet in the same transaction."""
        admin_id = admin.id
        now = datetime.utcnow()
        await ClaimService._transition(db, claim_id, "approved", "paid", {
            "paid_at": now,
            "paid_by": admin_id,
            "updated_at": now,
        })

        row = (await db.execute(
            select(CouponClaim.partner_id, CouponClaim.amount).filter(CouponClaim.id == claim_id)
        )).one()
        await WalletService.credit(
            db,
            user_id=row.partner_id,
            amount=Decimal(row.amount),
            description=f"Payout for coupon claim #{claim_id}",
            reference_id=f"claim:{claim_id}",
        )
        await db.commit()
        return await ClaimService._after_review(db, claim_id, "approved", admin_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @staticmethod
    async def get_claim(db: AsyncSession, claim_id: int) -> CouponClaim:
        result = await db.execute(
            _claim_query().filter(CouponClaim.id == claim_id).execution_options(populate_existing=True)
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise NotFound("Claim not found")
        return claim

    @staticmethod
    async def list_my_claims(db: AsyncSession, user: User) -> List[CouponClaim]:
        result = await db.execute(
            _claim_query()
            .filter(CouponClaim.partner_id == user.id)
            .order_by(CouponClaim.requested_at.desc(), CouponClaim.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_claims(db: AsyncSession, status: Optional[str] = None) -> List[CouponClaim]:
        query = _claim_query().order_by(CouponClaim.requested_at.desc(), CouponClaim.id.desc())
        if status:
            query = query.filter(CouponClaim.status == status)
        result = await db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())
