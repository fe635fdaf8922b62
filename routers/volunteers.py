from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

import schemas
from deps import CurrentUserDep, OptionalUserDep, SessionDep, require_roles
from models import User
from volunteer_service import VolunteerService

volunteers_router = APIRouter(prefix="/volunteers", tags=["volunteers"])

VolunteerStaffDep = Annotated[User, Depends(require_roles("staff"))]


@volunteers_router.post("", status_code=status.HTTP_201_CREATED)
async def apply(payload: schemas.VolunteerCreate, db_session: SessionDep, applicant: OptionalUserDep):
    volunteer = await VolunteerService.apply(db_session, payload, applicant)
    return {
        "success": True,
        "message": "Volunteer application submitted successfully",
        "data": schemas.Volunteer.model_validate(volunteer),
    }


@volunteers_router.get("")
async def list_volunteers(db_session: SessionDep, staff: VolunteerStaffDep, status: Optional[str] = None):
    volunteers = await VolunteerService.list_volunteers(db_session, status=status)
    return {"success": True, "count": len(volunteers), "data": [schemas.Volunteer.model_validate(v) for v in volunteers]}


@volunteers_router.get("/me")
async def get_my_volunteer(db_session: SessionDep, current_user: CurrentUserDep):
    volunteer = await VolunteerService.get_my_volunteer(db_session, current_user)
    return {"success": True, "data": schemas.Volunteer.model_validate(volunteer)}


@volunteers_router.get("/verify/{volunteer_id}")
async def verify_volunteer(volunteer_id: int, db_session: SessionDep):
    """Public check behind a volunteer card; no contact details."""
    volunteer = await VolunteerService.get_volunteer(db_session, volunteer_id)
    return {"success": True, "data": schemas.VolunteerCard.model_validate(volunteer)}


@volunteers_router.get("/{volunteer_id}")
async def get_volunteer(volunteer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    volunteer = await VolunteerService.get_visible_volunteer(db_session, volunteer_id, current_user)
    return {"success": True, "data": schemas.Volunteer.model_validate(volunteer)}


@volunteers_router.put("/{volunteer_id}")
async def update_volunteer(volunteer_id: int, payload: schemas.VolunteerUpdate, db_session: SessionDep, current_user: CurrentUserDep):
    volunteer = await VolunteerService.update_volunteer(db_session, volunteer_id, payload, current_user)
    return {"success": True, "data": schemas.Volunteer.model_validate(volunteer)}


@volunteers_router.delete("/{volunteer_id}")
async def delete_volunteer(volunteer_id: int, db_session: SessionDep, staff: VolunteerStaffDep):
    await VolunteerService.delete_volunteer(db_session, volunteer_id, staff)
    return {"success": True, "message": "Volunteer deleted"}
