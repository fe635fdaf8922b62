from typing import Optional

from fastapi import APIRouter, status

from claim_service import ClaimService, serialize_claim
from deps import CurrentAdminUserDep, CurrentUserDep, SessionDep
from schemas import ClaimRequest, RejectClaimRequest

coupon_claims_router = APIRouter(prefix="/coupon-claims", tags=["coupon-claims"])


@coupon_claims_router.post("/claim", status_code=status.HTTP_201_CREATED)
async def claim_coupon(payload: ClaimRequest, db_session: SessionDep, current_user: CurrentUserDep):
    """Partner claims a donation coupon by code (or id). Role and KYC checks happen in the service."""
    claim = await ClaimService.claim_coupon(
        db_session,
        current_user,
        coupon_code=payload.coupon_code,
        coupon_id=payload.coupon_id,
    )
    return {
        "success": True,
        "message": "Coupon claimed successfully. Awaiting admin approval.",
        "data": serialize_claim(claim),
    }


@coupon_claims_router.get("/my-claims")
async def my_claims(db_session: SessionDep, current_user: CurrentUserDep):
    claims = await ClaimService.list_my_claims(db_session, current_user)
    return {"success": True, "count": len(claims), "data": [serialize_claim(c) for c in claims]}


@coupon_claims_router.get("/pending")
async def pending_claims(db_session: SessionDep, admin: CurrentAdminUserDep):
    claims = await ClaimService.list_claims(db_session, status="pending")
    return {"success": True, "count": len(claims), "data": [serialize_claim(c, with_bank_details=True) for c in claims]}


@coupon_claims_router.get("")
async def all_claims(db_session: SessionDep, admin: CurrentAdminUserDep, status: Optional[str] = None):
    claims = await ClaimService.list_claims(db_session, status=status)
    return {"success": True, "count": len(claims), "data": [serialize_claim(c, with_bank_details=True) for c in claims]}


@coupon_claims_router.put("/{claim_id}/approve")
async def approve_claim(claim_id: int, db_session: SessionDep, admin: CurrentAdminUserDep):
    claim = await ClaimService.approve_claim(db_session, claim_id, admin)
    return {"success": True, "message": "Claim approved", "data": serialize_claim(claim, with_bank_details=True)}


@coupon_claims_router.put("/{claim_id}/reject")
async def reject_claim(
    claim_id: int,
    db_session: SessionDep,
    admin: CurrentAdminUserDep,
    payload: Optional[RejectClaimRequest] = None,
):
    reason = payload.rejection_reason if payload else None
    claim = await ClaimService.reject_claim(db_session, claim_id, admin, reason)
    return {"success": True, "message": "Claim rejected", "data": serialize_claim(claim, with_bank_details=True)}


@coupon_claims_router.put("/{claim_id}/mark-paid")
async def mark_claim_paid(claim_id: int, db_session: SessionDep, admin: CurrentAdminUserDep):
    claim = await ClaimService.mark_as_paid(db_session, claim_id, admin)
    return {"success": True, "message": "Claim marked as paid", "data": serialize_claim(claim, with_bank_details=True)}
