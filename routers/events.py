from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

import schemas
from deps import CurrentUserDep, OptionalUserDep, SessionDep, require_roles
from event_service import EventService
from models import User

events_router = APIRouter(prefix="/events", tags=["events"])
event_registrations_router = APIRouter(prefix="/event-registrations", tags=["events"])

EventOrganizerDep = Annotated[User, Depends(require_roles("staff", "fundraiser"))]
EventStaffDep = Annotated[User, Depends(require_roles("staff"))]


@events_router.post("", status_code=status.HTTP_201_CREATED)
async def create_event(payload: schemas.EventCreate, db_session: SessionDep, organizer: EventOrganizerDep):
    event = await EventService.create_event(db_session, payload, organizer)
    return {"success": True, "message": "Event created successfully", "data": schemas.Event.model_validate(event)}


@events_router.get("")
async def list_events(
    db_session: SessionDep,
    viewer: OptionalUserDep,
    status: Optional[str] = None,
    category: Optional[str] = None,
):
    events = await EventService.list_events(db_session, viewer, status=status, category=category)
    return {"success": True, "count": len(events), "data": [schemas.Event.model_validate(e) for e in events]}


@events_router.get("/{event_id}")
async def get_event(event_id: int, db_session: SessionDep):
    event = await EventService.get_event(db_session, event_id)
    return {"success": True, "data": schemas.Event.model_validate(event)}


@events_router.put("/{event_id}")
async def update_event(event_id: int, payload: schemas.EventUpdate, db_session: SessionDep, staff: EventStaffDep):
    event = await EventService.update_event(db_session, event_id, payload, staff)
    return {"success": True, "data": schemas.Event.model_validate(event)}


@events_router.delete("/{event_id}")
async def delete_event(event_id: int, db_session: SessionDep, staff: EventStaffDep):
    await EventService.delete_event(db_session, event_id, staff)
    return {"success": True, "message": "Event deleted"}


@event_registrations_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_for_event(payload: schemas.EventRegistrationCreate, db_session: SessionDep, registrant: OptionalUserDep):
    registration = await EventService.register(db_session, payload, registrant)
    return {
        "success": True,
        "message": "Successfully registered for event",
        "data": schemas.EventRegistration.model_validate(registration),
    }


@event_registrations_router.get("/my-registrations")
async def my_registrations(db_session: SessionDep, current_user: CurrentUserDep):
    registrations = await EventService.list_my_registrations(db_session, current_user)
    return {"success": True, "count": len(registrations), "data": [schemas.EventRegistration.model_validate(r) for r in registrations]}


@event_registrations_router.get("/event/{event_id}")
async def event_registrations(event_id: int, db_session: SessionDep, staff: EventStaffDep):
    registrations = await EventService.list_registrations(db_session, event_id)
    return {"success": True, "count": len(registrations), "data": [schemas.EventRegistration.model_validate(r) for r in registrations]}
