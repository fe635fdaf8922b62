"""
Event Service - community events and public registration

Anyone may register for an open event, once per email address. The
attendee count moves only by atomic increments in the registering
transaction.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import schemas
from audit_service import AuditService
from deps import is_admin
from errors import Conflict, NotFound, ValidationFailed
from models import Event, EventRegistration, User

log = logging.getLogger(__name__)

OPEN_EVENT_STATUSES = ("upcoming", "ongoing")
REQUIRED_EVENT_FIELDS = ("title", "description", "start_date", "end_date", "location", "expected_attendees", "status")


def _check_dates(start_date, end_date) -> None:
    if end_date < start_date:
        raise ValidationFailed("End date cannot be before the start date", code="invalid_event_dates")


class EventService:

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    @staticmethod
    async def create_event(db: AsyncSession, payload: schemas.EventCreate, creator: User) -> Event:
        _check_dates(payload.start_date, payload.end_date)
        fields = payload.model_dump()
        fields["title"] = fields["title"].strip()
        event = Event(**fields, attendees=0, status="upcoming", created_by=creator.id)
        db.add(event)
        await db.commit()
        await db.refresh(event)
        log.info(f"Event {event.id} created by user {creator.id}")
        return event

    @staticmethod
    async def list_events(
        db: AsyncSession,
        viewer: Optional[User],
        status: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Event]:
        """Soonest first. Only admins see past, cancelled or filtered-by-status events."""
        query = select(Event).order_by(Event.start_date.asc(), Event.id.asc())
        if viewer is None or not is_admin(viewer):
            query = query.filter(Event.status.in_(OPEN_EVENT_STATUSES))
        elif status:
            query = query.filter(Event.status == status)
        if category:
            query = query.filter(Event.category == category)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_event(db: AsyncSession, event_id: int) -> Event:
        result = await db.execute(
            select(Event).filter(Event.id == event_id).execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise NotFound("Event not found")
        return event

    @staticmethod
    async def update_event(db: AsyncSession, event_id: int, payload: schemas.EventUpdate, actor: User) -> Event:
        event = await EventService.get_event(db, event_id)
        changes = payload.model_dump(exclude_unset=True)
        for field in REQUIRED_EVENT_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationFailed(f"{field} cannot be cleared", code="field_required", details={"field": field})
        _check_dates(changes.get("start_date", event.start_date), changes.get("end_date", event.end_date))

        old_status = event.status
        for field, value in changes.items():
            setattr(event, field, value)
        await db.commit()
        await db.refresh(event)

        log.info(f"Event {event_id} updated by user {actor.id}: {sorted(changes)}")
        if event.status != old_status:
            await AuditService.log_action(
                "status_change", "event", event_id, user_id=actor.id,
                old_value={"status": old_status}, new_value={"status": event.status},
            )
        return event

    @staticmethod
    async def delete_event(db: AsyncSession, event_id: int, actor: User) -> None:
        """Removes the event together with its registrations."""
        event = await EventService.get_event(db, event_id)
        await db.execute(delete(EventRegistration).where(EventRegistration.event_id == event_id))
        await db.delete(event)
        await db.commit()
        log.info(f"Event {event_id} deleted by user {actor.id}")
        await AuditService.log_action("delete", "event", event_id, user_id=actor.id)

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------
    @staticmethod
    async def register(db: AsyncSession, payload: schemas.EventRegistrationCreate, registrant: Optional[User]) -> EventRegistration:
        event = await EventService.get_event(db, payload.event_id)
        if event.status not in OPEN_EVENT_STATUSES:
            raise ValidationFailed(f"Registration is closed for this event ({event.status})", code="event_closed")

        email = str(payload.email).strip().lower()
        existing = await db.execute(
            select(EventRegistration.id).filter(
                EventRegistration.event_id == event.id,
                EventRegistration.email == email,
            )
        )
        if existing.first() is not None:
            raise Conflict("You are already registered for this event", code="already_registered")

        event_id = event.id
        registration = EventRegistration(
            event_id=event_id,
            full_name=payload.full_name.strip(),
            email=email,
            mobile_number=payload.mobile_number.strip(),
            city=payload.city.strip(),
            user_id=registrant.id if registrant else None,
            status="registered",
        )
        db.add(registration)
        try:
            await db.flush()
            await db.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(attendees=Event.attendees + 1)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("You are already registered for this event", code="already_registered")
        await db.refresh(registration)
        log.info(f"Registration {registration.id} for event {event_id} ({email})")
        return registration

    @staticmethod
    async def list_registrations(db: AsyncSession, event_id: int) -> List[EventRegistration]:
        await EventService.get_event(db, event_id)
        result = await db.execute(
            select(EventRegistration)
            .filter(EventRegistration.event_id == event_id)
            .order_by(EventRegistration.created_at.desc(), EventRegistration.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_my_registrations(db: AsyncSession, user: User) -> List[EventRegistration]:
        result = await db.execute(
            select(EventRegistration)
            .filter(EventRegistration.user_id == user.id)
            .order_by(EventRegistration.created_at.desc(), EventRegistration.id.desc())
        )
        return list(result.scalars().all())
