# discount_coupon_service.py
# Generic discount coupons: issue, validate against a purchase amount, redeem.

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import schemas
from audit_service import AuditService
from coupon_code import normalize_code
from deps import is_admin
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import Coupon, User

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


def compute_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    """Percentage discounts are capped by max_discount; no discount exceeds the amount."""
    amount = Decimal(amount)
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == "percentage":
        discount = amount * value / Decimal("100")
        if coupon.max_discount is not None:
            discount = min(discount, Decimal(coupon.max_discount))
    else:
        discount = value
    discount = min(discount, amount)
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


class DiscountCouponService:

    @staticmethod
    async def _get_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
        result = await db.execute(select(Coupon).filter(Coupon.code == normalize_code(code)))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_coupon(db: AsyncSession, payload: schemas.DiscountCouponCreate, issuer: User) -> Coupon:
        code = normalize_code(payload.code)
        if payload.valid_until <= payload.valid_from:
            raise ValidationFailed("valid_until must be after valid_from", code="invalid_validity_window")
        if payload.discount_type == "percentage" and payload.discount_value > 100:
            raise ValidationFailed("Percentage discount cannot exceed 100", code="invalid_discount")
        if await DiscountCouponService._get_by_code(db, code) is not None:
            raise Conflict("Coupon code already exists", code="duplicate_code")

        coupon = Coupon(
            code=code,
            description=payload.description,
            discount_type=payload.discount_type,
            discount_value=payload.discount_value,
            min_purchase=payload.min_purchase,
            max_discount=payload.max_discount,
            valid_from=payload.valid_from,
            valid_until=payload.valid_until,
            usage_limit=payload.usage_limit,
            used_count=0,
            issued_by=issuer.id,
            issued_to=payload.issued_to,
            status="active",
        )
        db.add(coupon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("Coupon code already exists", code="duplicate_code")
        await db.refresh(coupon)
        log.info(f"Discount coupon {coupon.code} issued by user {issuer.id}")
        return coupon

    @staticmethod
    async def validate_coupon(db: AsyncSession, code: str, amount: Decimal, now: Optional[datetime] = None) -> Dict:
        coupon = await DiscountCouponService._get_by_code(db, code)
        if coupon is None:
            raise NotFound("Invalid coupon code", code="coupon_not_found")

        now = now or datetime.utcnow()
        if coupon.status != "active":
            raise ValidationFailed("Coupon is not active", code="coupon_inactive")
        if now < coupon.valid_from:
            raise ValidationFailed("Coupon is not yet valid", code="coupon_not_started")
        if now > coupon.valid_until:
            raise ValidationFailed("Coupon has expired", code="coupon_expired")
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise ValidationFailed("Coupon usage limit reached", code="usage_limit_reached")
        if Decimal(amount) < Decimal(coupon.min_purchase):
            raise ValidationFailed(f"Minimum purchase of {coupon.min_purchase} required", code="below_min_purchase")

        discount = compute_discount(coupon, amount)
        return {
            "coupon": coupon,
            "discount": discount,
            "final_amount": (Decimal(amount) - discount).quantize(CENT, rounding=ROUND_HALF_UP),
        }

    @staticmethod
    async def redeem_coupon(db: AsyncSession, code: str, amount: Decimal, user: User) -> Dict:
        """Validate, then take one use with a conditional increment."""
        validation = await DiscountCouponService.validate_coupon(db, code, amount)
        coupon = validation["coupon"]
        coupon_id = coupon.id
        user_id = user.id

        result = await db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                Coupon.status == "active",
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise Conflict("Coupon usage limit reached", code="usage_limit_reached")
        await db.commit()
        await db.refresh(coupon)

        log.info(f"Discount coupon {coupon.code} redeemed by user {user_id}")
        await AuditService.log_action("redeem", "discount_coupon", coupon_id, user_id=user_id, new_value={"used_count": coupon.used_count})
        validation["coupon"] = coupon
        return validation

    @staticmethod
    async def list_coupons(db: AsyncSession, viewer: User, status: Optional[str] = None) -> List[Coupon]:
        """Admins and staff see everything; other issuers see what they issued or received."""
        query = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())
        if not (is_admin(viewer) or viewer.role == "staff"):
            query = query.filter(or_(Coupon.issued_by == viewer.id, Coupon.issued_to == viewer.id))
        if status:
            query = query.filter(Coupon.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_coupon(db: AsyncSession, coupon_id: int) -> Coupon:
        result = await db.execute(select(Coupon).filter(Coupon.id == coupon_id))
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise NotFound("Coupon not found")
        return coupon

    @staticmethod
    def _check_owner(coupon: Coupon, actor: User):
        if not (is_admin(actor) or coupon.issued_by == actor.id):
            raise Forbidden("Only the issuer or an admin can modify this coupon")

    @staticmethod
    async def update_coupon(db: AsyncSession, coupon_id: int, payload: schemas.DiscountCouponUpdate, actor: User) -> Coupon:
        coupon = await DiscountCouponService.get_coupon(db, coupon_id)
        DiscountCouponService._check_owner(coupon, actor)

        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(coupon, field, value)
        if coupon.valid_until <= coupon.valid_from:
            await db.rollback()
            raise ValidationFailed("valid_until must be after valid_from", code="invalid_validity_window")
        await db.commit()
        await db.refresh(coupon)
        return coupon

    @staticmethod
    async def delete_coupon(db: AsyncSession, coupon_id: int, actor: User) -> None:
        coupon = await DiscountCouponService.get_coupon(db, coupon_id)
        DiscountCouponService._check_owner(coupon, actor)
        await db.delete(coupon)
        await db.commit()
        log.info(f"Discount coupon {coupon_id} deleted by user {actor.id}")
