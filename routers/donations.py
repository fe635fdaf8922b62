from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

import schemas
from deps import CurrentAdminUserDep, CurrentUserDep, OptionalUserDep, SessionDep, require_roles
from donation_service import DonationService
from models import User

donations_router = APIRouter(prefix="/donations", tags=["donations"])

StaffOrAdminDep = Annotated[User, Depends(require_roles("staff"))]


@donations_router.post("", status_code=status.HTTP_201_CREATED)
async def create_donation(payload: schemas.DonationCreate, db_session: SessionDep, donor: OptionalUserDep):
    """
    Record a donation. When it targets a partner and the donor is logged in,
    a coupon is issued with it; coupon problems never fail the donation.
    """
    result = await DonationService.create_donation(db_session, payload, donor)
    return {"success": True, "message": "Donation recorded", "data": result}


@donations_router.get("/me")
async def list_my_donations(db_session: SessionDep, current_user: CurrentUserDep):
    donations = await DonationService.list_my_donations(db_session, current_user)
    return {"success": True, "count": len(donations), "data": [schemas.Donation.model_validate(d) for d in donations]}


@donations_router.get("")
async def list_donations(
    db_session: SessionDep,
    reviewer: StaffOrAdminDep,
    status: Optional[str] = None,
    campaign_id: Optional[int] = None,
):
    donations = await DonationService.list_donations(db_session, status=status, campaign_id=campaign_id)
    return {"success": True, "count": len(donations), "data": [schemas.Donation.model_validate(d) for d in donations]}


@donations_router.get("/{donation_id}")
async def get_donation(donation_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    donation = await DonationService.get_visible_donation(db_session, donation_id, current_user)
    return {"success": True, "data": schemas.Donation.model_validate(donation)}


@donations_router.put("/{donation_id}")
async def update_donation(donation_id: int, payload: schemas.DonationUpdate, db_session: SessionDep, admin: CurrentAdminUserDep):
    donation = await DonationService.update_donation(db_session, donation_id, payload, admin)
    return {"success": True, "data": schemas.Donation.model_validate(donation)}


@donations_router.delete("/{donation_id}")
async def delete_donation(donation_id: int, db_session: SessionDep, admin: CurrentAdminUserDep):
    await DonationService.delete_donation(db_session, donation_id, admin)
    return {"success": True, "message": "Donation deleted"}
