"""
Donation Service - direct donations, gateway-confirmed payments and the
post-commit effects (coupon minting, receipts) that follow them
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import crud
import schemas
from audit_service import AuditService
from campaign_service import CampaignService
from config import settings
from coupon_service import CouponService
from deps import is_admin
from email_templates import get_coupon_issued_template, get_donation_receipt_template
from errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailed
from models import Donation, User
from payment_utils import SUCCESSFUL_PAYMENT_STATUSES, PaymentGateway, from_paise
from ses_service import ses_service
from side_effects import PostCommitEffects

log = logging.getLogger(__name__)

COUPON_LOGIN_NOTICE = "Log in before donating to a partner to receive a coupon."
COUPON_UNAVAILABLE_NOTICE = "Your donation was recorded, but the coupon could not be issued. Please contact support."
# NOT NULL columns a correction may change but never clear
REQUIRED_DONATION_FIELDS = ("status", "amount", "first_name")


class DonationService:

    # ------------------------------------------------------------------
    # Primary write
    # ------------------------------------------------------------------
    @staticmethod
    async def _insert_donation(db: AsyncSession, fields: Dict[str, Any]) -> Donation:
        """Insert the donation and bump campaign counters in one transaction."""
        donation = Donation(**fields)
        db.add(donation)
        try:
            await db.flush()
            if donation.campaign_id is not None and donation.status == "completed":
                await CampaignService.record_donation(db, donation.campaign_id, donation.amount)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            payment_id = fields.get("payment_id")
            if payment_id and await crud.get_donation_by_payment_id(db, payment_id) is not None:
                raise Conflict("This payment has already been recorded", code="duplicate_payment")
            raise
        await db.refresh(donation)
        log.info(f"Donation {donation.id} recorded: {donation.amount} via {donation.payment_method} ({donation.status})")
        return donation

    @staticmethod
    async def _validate(db: AsyncSession, amount: Optional[Decimal], first_name: Optional[str], email: Optional[str], campaign_id: Optional[int]) -> None:
        if amount is None or Decimal(amount) < Decimal(str(settings.MIN_DONATION_AMOUNT)):
            raise ValidationFailed(f"Minimum donation amount is {settings.MIN_DONATION_AMOUNT}", code="amount_too_small")
        if not (first_name or "").strip():
            raise ValidationFailed("First name is required", code="first_name_required")
        if not (email or "").strip():
            raise ValidationFailed("Email is required", code="email_required")
        if campaign_id is not None and await crud.get_campaign(db, campaign_id) is None:
            raise NotFound("Campaign not found")

    # ------------------------------------------------------------------
    # Post-commit effects
    # ------------------------------------------------------------------
    @staticmethod
    async def _run_effects(db: AsyncSession, donation: Donation, donor: Optional[User]) -> schemas.DonationResult:
        donation_id = donation.id
        donor_id = donor.id if donor else None
        status = donation.status
        receipt = {
            "to": donation.email,
            "name": donation.first_name,
            "amount": str(donation.amount),
            "campaign_title": donation.campaign.title if donation.campaign else "",
            "payment_id": donation.payment_id or "",
        }
        minted: Dict[str, Any] = {}

        async def mint():
            coupon = await CouponService.mint_for_donation(db, donation, donor)
            minted["coupon"] = coupon
            return coupon

        async def coupon_email():
            coupon = minted.get("coupon")
            if coupon is None or not receipt["to"]:
                return None
            template = get_coupon_issued_template(
                donor_name=receipt["name"],
                coupon_code=coupon.coupon_code,
                amount=str(coupon.amount),
                partner_name=coupon.partner_name or "our partner",
                expiry_date=coupon.expiry_date.strftime("%d %b %Y"),
            )
            return await ses_service.send_template(receipt["to"], template, tags={"type": "coupon_issued"})

        async def receipt_email():
            if not receipt["to"]:
                return None
            template = get_donation_receipt_template(
                donor_name=receipt["name"],
                amount=receipt["amount"],
                donation_id=donation_id,
                campaign_title=receipt["campaign_title"],
                payment_id=receipt["payment_id"],
            )
            return await ses_service.send_template(receipt["to"], template, tags={"type": "donation_receipt"})

        effects = PostCommitEffects(context=f"donation {donation_id}")
        effects.add("audit", lambda: AuditService.log_action(
            "create", "donation", donation_id, user_id=donor_id,
            new_value={"amount": receipt["amount"], "status": status},
        ))
        if donation.partner_id is not None:
            effects.add("mint_coupon", mint)
            effects.add("coupon_email", coupon_email)
        effects.add("receipt_email", receipt_email)
        results = await effects.run()

        coupon = None
        notice = None
        mint_result = PostCommitEffects.find(results, "mint_coupon")
        if mint_result is not None:
            if mint_result.ok:
                coupon = mint_result.value
            elif isinstance(mint_result.error, Unauthorized):
                notice = COUPON_LOGIN_NOTICE
            else:
                log.error(f"Coupon minting failed for donation {donation_id}: {mint_result.error!r}")
                notice = COUPON_UNAVAILABLE_NOTICE

        # Minting may have rolled the session back; reload before serializing.
        donation = await DonationService.get_donation(db, donation_id)
        return schemas.DonationResult(
            donation=schemas.Donation.model_validate(donation),
            coupon=coupon,
            coupon_notice=notice,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    @staticmethod
    async def create_donation(db: AsyncSession, payload: schemas.DonationCreate, donor: Optional[User]) -> schemas.DonationResult:
        await DonationService._validate(db, payload.amount, payload.first_name, payload.email, payload.campaign_id)

        donation = await DonationService._insert_donation(db, {
            "amount": payload.amount,
            "first_name": payload.first_name.strip(),
            "last_name": payload.last_name,
            "email": str(payload.email).lower(),
            "phone_number": payload.phone_number,
            "address": payload.address,
            "message": payload.message,
            "user_id": donor.id if donor else None,
            "campaign_id": payload.campaign_id,
            "partner_id": payload.partner_id,
            "payment_method": payload.payment_method,
            "status": payload.status,
        })
        donation = await DonationService.get_donation(db, donation.id)
        return await DonationService._run_effects(db, donation, donor)

    @staticmethod
    async def record_verified_payment(
        db: AsyncSession,
        payload: schemas.VerifyPaymentRequest,
        donor: Optional[User],
        gateway: PaymentGateway,
    ) -> schemas.DonationResult:
        """
        Record a donation for a checkout the gateway confirms.

        Checks, in order: required fields, gateway configured, signature,
        payment state at the gateway, then the usual donation validation.
        A payment id is recorded at most once.
        """
        order_id = (payload.razorpay_order_id or "").strip()
        payment_id = (payload.razorpay_payment_id or "").strip()
        signature = (payload.razorpay_signature or "").strip()
        if not order_id or not payment_id or not signature:
            raise ValidationFailed("Order id, payment id and signature are required", code="payment_fields_missing")

        if not gateway.verify_signature(order_id, payment_id, signature):
            log.warning(f"Invalid payment signature for order {order_id} / payment {payment_id}")
            raise ValidationFailed("Invalid signature", code="invalid_signature")

        if await crud.get_donation_by_payment_id(db, payment_id) is not None:
            raise Conflict("This payment has already been recorded", code="duplicate_payment")

        payment = await gateway.fetch_payment(payment_id)
        payment_status = payment.get("status")
        if payment_status not in SUCCESSFUL_PAYMENT_STATUSES:
            raise ValidationFailed(f"Payment not successful (status: {payment_status})", code="payment_not_successful")

        amount = from_paise(payment["amount"]) if payment.get("amount") is not None else payload.amount
        first_name = payload.first_name or (donor.name if donor else None)
        email = payload.email or payment.get("email") or (donor.email if donor else None)
        phone = payload.phone_number or payment.get("contact")
        await DonationService._validate(db, amount, first_name, email, payload.campaign_id)

        donation = await DonationService._insert_donation(db, {
            "amount": amount,
            "first_name": first_name.strip(),
            "last_name": payload.last_name,
            "email": str(email).lower(),
            "phone_number": phone,
            "message": payload.message,
            "user_id": donor.id if donor else None,
            "campaign_id": payload.campaign_id,
            "partner_id": payload.partner_id,
            "payment_id": payment_id,
            "payment_method": "razorpay",
            "status": "completed",
            "transaction_id": order_id,
        })
        donation = await DonationService.get_donation(db, donation.id)
        return await DonationService._run_effects(db, donation, donor)

    @staticmethod
    async def refund(db: AsyncSession, payment_id: str, amount: Optional[Decimal], actor: User, gateway: PaymentGateway) -> Dict[str, Any]:
        """Refund at the gateway, then mark the donation refunded and reverse campaign counters."""
        donation = await crud.get_donation_by_payment_id(db, payment_id)
        if donation is None:
            raise NotFound("No donation recorded for this payment")
        if donation.status == "refunded":
            raise Conflict("Donation already refunded", code="already_refunded")

        refund = await gateway.refund(payment_id, amount)

        old_status = donation.status
        if donation.campaign_id is not None and old_status == "completed":
            await CampaignService.reverse_donation(db, donation.campaign_id, donation.amount)
        donation.status = "refunded"
        await db.commit()

        log.info(f"Donation {donation.id} refunded by user {actor.id} (refund {refund.get('id')})")
        await AuditService.log_action(
            "refund", "donation", donation.id, user_id=actor.id,
            old_value={"status": old_status}, new_value={"status": "refunded"},
        )
        return refund

    # ------------------------------------------------------------------
    # Queries and administrative correction
    # ------------------------------------------------------------------
    @staticmethod
    async def get_donation(db: AsyncSession, donation_id: int) -> Donation:
        result = await db.execute(
            select(Donation)
            .filter(Donation.id == donation_id)
            .options(selectinload(Donation.campaign))
            .execution_options(populate_existing=True)
        )
        donation = result.scalar_one_or_none()
        if donation is None:
            raise NotFound("Donation not found")
        return donation

    @staticmethod
    async def get_visible_donation(db: AsyncSession, donation_id: int, viewer: User) -> Donation:
        donation = await DonationService.get_donation(db, donation_id)
        if donation.user_id != viewer.id and not is_admin(viewer) and viewer.role != "staff":
            raise Forbidden("Not allowed to view this donation")
        return donation

    @staticmethod
    async def list_my_donations(db: AsyncSession, user: User) -> List[Donation]:
        result = await db.execute(
            select(Donation)
            .filter(Donation.user_id == user.id)
            .order_by(Donation.created_at.desc(), Donation.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_donations(db: AsyncSession, status: Optional[str] = None, campaign_id: Optional[int] = None) -> List[Donation]:
        query = select(Donation).order_by(Donation.created_at.desc(), Donation.id.desc())
        if status:
            query = query.filter(Donation.status == status)
        if campaign_id is not None:
            query = query.filter(Donation.campaign_id == campaign_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def update_donation(db: AsyncSession, donation_id: int, payload: schemas.DonationUpdate, actor: User) -> Donation:
        donation = await DonationService.get_donation(db, donation_id)
        changes = payload.model_dump(exclude_unset=True)
        for field in REQUIRED_DONATION_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationFailed(f"{field} cannot be cleared", code="field_required", details={"field": field})
        if "first_name" in changes:
            if not changes["first_name"].strip():
                raise ValidationFailed("First name is required", code="first_name_required")
            changes["first_name"] = changes["first_name"].strip()

        if "amount" in changes and changes["amount"] != donation.amount:
            if donation.status == "completed":
                raise ValidationFailed("Amount of a completed donation cannot change", code="amount_immutable")
            if changes["amount"] is None or changes["amount"] < Decimal(str(settings.MIN_DONATION_AMOUNT)):
                raise ValidationFailed(f"Minimum donation amount is {settings.MIN_DONATION_AMOUNT}", code="amount_too_small")

        old_status = donation.status
        for field, value in changes.items():
            setattr(donation, field, value)

        new_status = donation.status
        if donation.campaign_id is not None and old_status != new_status:
            if new_status == "completed":
                await CampaignService.record_donation(db, donation.campaign_id, donation.amount)
            elif old_status == "completed":
                await CampaignService.reverse_donation(db, donation.campaign_id, donation.amount)
        await db.commit()

        log.info(f"Donation {donation_id} corrected by user {actor.id}: {sorted(changes)}")
        await AuditService.log_action(
            "update", "donation", donation_id, user_id=actor.id,
            old_value={"status": old_status}, new_value={k: str(v) for k, v in changes.items()},
        )
        return await DonationService.get_donation(db, donation_id)

    @staticmethod
    async def delete_donation(db: AsyncSession, donation_id: int, actor: User) -> None:
        donation = await DonationService.get_donation(db, donation_id)
        if await CouponService.get_by_donation(db, donation_id) is not None:
            raise Conflict("Donation has an issued coupon and cannot be deleted", code="donation_has_coupon")

        if donation.campaign_id is not None and donation.status == "completed":
            await CampaignService.reverse_donation(db, donation.campaign_id, donation.amount)
        await db.delete(donation)
        await db.commit()
        log.info(f"Donation {donation_id} deleted by user {actor.id}")
        await AuditService.log_action("delete", "donation", donation_id, user_id=actor.id)
