from typing import Optional

from fastapi import APIRouter, status

import schemas
from deps import CurrentAdminUserDep, CurrentUserDep, OptionalUserDep, SessionDep, is_admin
from partner_service import PartnerService

partners_router = APIRouter(prefix="/partners", tags=["partners"])


def _serialize(partner, viewer) -> dict:
    """The intake form (bank details) is only shown to admins and the owner."""
    if viewer is not None and (is_admin(viewer) or partner.created_by == viewer.id):
        return schemas.Partner.model_validate(partner).model_dump(mode="json")
    return schemas.PartnerPublic.model_validate(partner).model_dump(mode="json")


@partners_router.post("", status_code=status.HTTP_201_CREATED)
async def submit_partner_form(payload: schemas.PartnerCreate, db_session: SessionDep, current_user: CurrentUserDep):
    """Submit the partner intake form; the record starts out pending."""
    partner = await PartnerService.submit_partner_form(db_session, current_user, payload)
    return {
        "success": True,
        "message": "Partner form submitted. It will be reviewed by an admin.",
        "data": schemas.Partner.model_validate(partner),
    }


@partners_router.get("")
async def list_partners(
    db_session: SessionDep,
    viewer: OptionalUserDep,
    type: Optional[str] = None,
    status: Optional[str] = None,
):
    partners = await PartnerService.list_partners(db_session, viewer, partner_type=type, status=status)
    return {"success": True, "count": len(partners), "data": [_serialize(p, viewer) for p in partners]}


@partners_router.get("/me")
async def get_my_partner(db_session: SessionDep, current_user: CurrentUserDep):
    partner = await PartnerService.get_my_partner(db_session, current_user)
    return {
        "success": True,
        "data": schemas.Partner.model_validate(partner),
        "kyc_completed": current_user.partner_kyc_completed,
    }


@partners_router.get("/{partner_id}")
async def get_partner(partner_id: int, db_session: SessionDep, viewer: OptionalUserDep):
    partner = await PartnerService.get_visible_partner(db_session, partner_id, viewer)
    return {"success": True, "data": _serialize(partner, viewer)}


@partners_router.put("/{partner_id}")
async def update_partner(partner_id: int, payload: schemas.PartnerUpdate, db_session: SessionDep, current_user: CurrentUserDep):
    partner = await PartnerService.update_partner(db_session, partner_id, payload, current_user)
    return {"success": True, "data": schemas.Partner.model_validate(partner)}


@partners_router.patch("/{partner_id}/status")
async def update_partner_status(
    partner_id: int,
    payload: schemas.PartnerStatusUpdate,
    db_session: SessionDep,
    admin: CurrentAdminUserDep,
):
    partner = await PartnerService.update_partner_status(db_session, partner_id, payload.status, admin)
    return {
        "success": True,
        "message": f"Partner {partner.status} successfully",
        "data": schemas.Partner.model_validate(partner),
    }


@partners_router.delete("/{partner_id}")
async def delete_partner(partner_id: int, db_session: SessionDep, admin: CurrentAdminUserDep):
    await PartnerService.delete_partner(db_session, partner_id, admin)
    return {"success": True, "message": "Partner deleted"}
