# volunteer_service.py
# Volunteer applications: submitted by anyone, reviewed by staff.

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import schemas
from audit_service import AuditService
from deps import is_admin
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import User, Volunteer

log = logging.getLogger(__name__)

STAFF_ONLY_FIELDS = ("status", "total_hours", "total_events")
REQUIRED_FIELDS = ("name", "phone", "city", "status", "total_hours", "total_events")


def is_staff(user: User) -> bool:
    return is_admin(user) or user.role == "staff"


class VolunteerService:

    @staticmethod
    async def _get(db: AsyncSession, volunteer_id: int) -> Volunteer:
        result = await db.execute(select(Volunteer).filter(Volunteer.id == volunteer_id))
        volunteer = result.scalar_one_or_none()
        if volunteer is None:
            raise NotFound("Volunteer not found")
        return volunteer

    @staticmethod
    async def apply(db: AsyncSession, payload: schemas.VolunteerCreate, applicant: Optional[User]) -> Volunteer:
        """New application in ``pending``; a logged-in user may apply once."""
        volunteer = Volunteer(
            user_id=applicant.id if applicant else None,
            name=payload.name.strip(),
            email=str(payload.email).lower(),
            phone=payload.phone.strip(),
            city=payload.city.strip(),
            availability=payload.availability,
            interests=payload.interests,
            message=payload.message,
            profile_image=payload.profile_image,
            status="pending",
        )
        db.add(volunteer)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("You have already submitted a volunteer application", code="volunteer_exists")
        await db.refresh(volunteer)
        log.info(f"Volunteer application {volunteer.id} submitted (user {volunteer.user_id})")
        return volunteer

    @staticmethod
    async def list_volunteers(db: AsyncSession, status: Optional[str] = None) -> List[Volunteer]:
        query = select(Volunteer).order_by(Volunteer.created_at.desc(), Volunteer.id.desc())
        if status:
            query = query.filter(Volunteer.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_my_volunteer(db: AsyncSession, user: User) -> Volunteer:
        result = await db.execute(select(Volunteer).filter(Volunteer.user_id == user.id))
        volunteer = result.scalar_one_or_none()
        if volunteer is None:
            raise NotFound("Volunteer profile not found", code="volunteer_profile_missing")
        return volunteer

    @staticmethod
    async def get_volunteer(db: AsyncSession, volunteer_id: int) -> Volunteer:
        return await VolunteerService._get(db, volunteer_id)

    @staticmethod
    async def get_visible_volunteer(db: AsyncSession, volunteer_id: int, viewer: User) -> Volunteer:
        volunteer = await VolunteerService._get(db, volunteer_id)
        if volunteer.user_id != viewer.id and not is_staff(viewer):
            raise Forbidden("Not allowed to view this volunteer")
        return volunteer

    @staticmethod
    async def update_volunteer(db: AsyncSession, volunteer_id: int, payload: schemas.VolunteerUpdate, actor: User) -> Volunteer:
        """The applicant edits their own details; staff also set status and totals."""
        volunteer = await VolunteerService._get(db, volunteer_id)
        staff = is_staff(actor)
        if volunteer.user_id != actor.id and not staff:
            raise Forbidden("Not allowed to edit this volunteer")

        changes = payload.model_dump(exclude_unset=True)
        if not staff and any(field in changes for field in STAFF_ONLY_FIELDS):
            raise Forbidden("Only staff can change volunteer status or totals", code="staff_only_field")
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationFailed(f"{field} cannot be cleared", code="field_required", details={"field": field})

        old_status = volunteer.status
        for field, value in changes.items():
            setattr(volunteer, field, value)
        await db.commit()
        await db.refresh(volunteer)

        log.info(f"Volunteer {volunteer_id} updated by user {actor.id}: {sorted(changes)}")
        if volunteer.status != old_status:
            await AuditService.log_action(
                "status_change", "volunteer", volunteer_id, user_id=actor.id,
                old_value={"status": old_status}, new_value={"status": volunteer.status},
            )
        return volunteer

    @staticmethod
    async def delete_volunteer(db: AsyncSession, volunteer_id: int, actor: User) -> None:
        volunteer = await VolunteerService._get(db, volunteer_id)
        await db.delete(volunteer)
        await db.commit()
        log.info(f"Volunteer {volunteer_id} deleted by user {actor.id}")
        await AuditService.log_action("delete", "volunteer", volunteer_id, user_id=actor.id)
