from fastapi import APIRouter

from coupon_service import CouponService
from deps import CurrentUserDep, SessionDep
from schemas import DonationCoupon

donation_coupons_router = APIRouter(prefix="/donation-coupons", tags=["donation-coupons"])


@donation_coupons_router.get("/my-coupons")
async def my_coupons(db_session: SessionDep, current_user: CurrentUserDep):
    """The caller's coupons, newest first. Coupons past their date are marked expired on read."""
    coupons = await CouponService.list_my_coupons(db_session, current_user)
    return {"success": True, "count": len(coupons), "data": [DonationCoupon.model_validate(c) for c in coupons]}


@donation_coupons_router.get("/{coupon_id}")
async def get_my_coupon(coupon_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    coupon = await CouponService.get_my_coupon(db_session, coupon_id, current_user)
    return {"success": True, "data": DonationCoupon.model_validate(coupon)}
