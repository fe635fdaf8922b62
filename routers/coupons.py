from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

import schemas
from coupon_service import CouponService
from deps import CurrentAdminUserDep, CurrentUserDep, SessionDep, require_roles
from discount_coupon_service import DiscountCouponService
from models import User

coupons_router = APIRouter(prefix="/coupons", tags=["coupons"])

CouponIssuerDep = Annotated[User, Depends(require_roles("staff", "partner"))]


def _validation(result: dict) -> schemas.CouponValidation:
    return schemas.CouponValidation(
        coupon=schemas.DiscountCoupon.model_validate(result["coupon"]),
        discount=result["discount"],
        final_amount=result["final_amount"],
    )


@coupons_router.post("", status_code=status.HTTP_201_CREATED)
async def create_coupon(payload: schemas.DiscountCouponCreate, db_session: SessionDep, issuer: CouponIssuerDep):
    coupon = await DiscountCouponService.create_coupon(db_session, payload, issuer)
    return {"success": True, "data": schemas.DiscountCoupon.model_validate(coupon)}


@coupons_router.get("")
async def list_coupons(db_session: SessionDep, current_user: CurrentUserDep, status: Optional[str] = None):
    coupons = await DiscountCouponService.list_coupons(db_session, current_user, status=status)
    return {"success": True, "count": len(coupons), "data": [schemas.DiscountCoupon.model_validate(c) for c in coupons]}


@coupons_router.get("/all")
async def list_all_coupons(db_session: SessionDep, admin: CurrentAdminUserDep, status: Optional[str] = None):
    """Admin view over discount coupons and donation coupons (with their claims)."""
    listing = await CouponService.list_all_coupons(db_session, status=status)
    data = schemas.AdminCouponListing(
        coupons=[schemas.DiscountCoupon.model_validate(c) for c in listing["coupons"]],
        donation_coupons=[schemas.DonationCouponWithClaims.model_validate(c) for c in listing["donation_coupons"]],
    )
    return {
        "success": True,
        "count": len(data.coupons) + len(data.donation_coupons),
        "data": data,
    }


@coupons_router.post("/validate")
async def validate_coupon(payload: schemas.CouponValidateRequest, db_session: SessionDep):
    result = await DiscountCouponService.validate_coupon(db_session, payload.code, payload.amount)
    return {"success": True, "data": _validation(result)}


@coupons_router.post("/redeem")
async def redeem_coupon(payload: schemas.CouponValidateRequest, db_session: SessionDep, current_user: CurrentUserDep):
    result = await DiscountCouponService.redeem_coupon(db_session, payload.code, payload.amount, current_user)
    return {"success": True, "message": "Coupon redeemed", "data": _validation(result)}


@coupons_router.get("/{coupon_id}")
async def get_coupon(coupon_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    coupon = await DiscountCouponService.get_coupon(db_session, coupon_id)
    return {"success": True, "data": schemas.DiscountCoupon.model_validate(coupon)}


@coupons_router.put("/{coupon_id}")
async def update_coupon(coupon_id: int, payload: schemas.DiscountCouponUpdate, db_session: SessionDep, current_user: CurrentUserDep):
    coupon = await DiscountCouponService.update_coupon(db_session, coupon_id, payload, current_user)
    return {"success": True, "data": schemas.DiscountCoupon.model_validate(coupon)}


@coupons_router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    await DiscountCouponService.delete_coupon(db_session, coupon_id, current_user)
    return {"success": True, "message": "Coupon deleted"}
