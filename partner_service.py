"""
Partner Service - intake form submission, approval status and the
derived KYC flag on the owning user
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import crud
import schemas
from audit_service import AuditService
from deps import is_admin
from errors import Conflict, Forbidden, NotFound, ValidationFailed
from models import APPROVED_PARTNER_STATUSES, Partner, User

log = logging.getLogger(__name__)

PARTNER_TYPES = ("health", "food")
PARTNER_STATUSES = ("pending", "approved", "rejected", "active")


class PartnerService:
    """Partner onboarding (KYC) and approval"""

    @staticmethod
    async def submit_partner_form(db: AsyncSession, user: User, payload: schemas.PartnerCreate) -> Partner:
        """
        Create the caller's partner record in ``pending`` state.

        A user owns at most one partner record. Submitting the form does not
        complete KYC; that happens when an admin approves the record.
        """
        name = (payload.name or "").strip()
        partner_type = (payload.type or "").strip().lower()
        if not name or not partner_type:
            raise ValidationFailed("Please provide required fields: name and type")
        if partner_type not in PARTNER_TYPES:
            raise ValidationFailed('Invalid partner type. Must be "health" or "food"', code="invalid_partner_type")

        if await crud.get_partner_by_owner(db, user.id):
            raise Conflict("You have already submitted a partner form", code="partner_exists")

        partner = Partner(
            name=name,
            type=partner_type,
            description=payload.description or f"Partner: {name}",
            phone=payload.phone,
            email=payload.email,
            address=payload.address,
            city=payload.city,
            state=payload.state,
            pincode=payload.pincode,
            website=payload.website,
            status="pending",
            is_active=True,
            form_data=payload.form_data,
            created_by=user.id,
        )
        db.add(partner)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("You have already submitted a partner form", code="partner_exists")
        await db.refresh(partner)

        log.info(f"Partner {partner.id} submitted by user {user.id} ({partner_type})")
        await AuditService.log_action("create", "partner", partner.id, user_id=user.id, new_value={"status": "pending"})
        return partner

    @staticmethod
    async def update_partner_status(db: AsyncSession, partner_id: int, status: str, actor: User) -> Partner:
        """Set the approval status and synchronise the owner's KYC flag."""
        if status not in PARTNER_STATUSES:
            raise ValidationFailed(
                "Please provide a valid status: pending, approved, rejected, or active",
                code="invalid_partner_status",
            )

        partner = await crud.get_partner(db, partner_id)
        if partner is None:
            raise NotFound("Partner not found")

        old_status = partner.status
        partner.status = status
        partner.updated_by = actor.id

        if partner.created_by is not None:
            await db.execute(
                update(User)
                .where(User.id == partner.created_by)
                .values(partner_kyc_completed=status in APPROVED_PARTNER_STATUSES)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
        await db.refresh(partner)

        log.info(f"Partner {partner.id} status {old_status} -> {status} by user {actor.id}")
        await AuditService.log_action(
            "status_change", "partner", partner.id, user_id=actor.id,
            old_value={"status": old_status}, new_value={"status": status},
        )
        return partner

    @staticmethod
    async def reconcile_partner_kyc(db: AsyncSession, user: User, partner: Optional[Partner]) -> bool:
        """
        Correct a stale ``partner_kyc_completed`` flag.

        The stored flag is a cache of "owns an approved/active partner". Only
        the false -> true direction is healed here; status changes made by an
        admin sync both directions. Returns the effective flag.
        """
        if partner is None or not partner.is_approved or user.partner_kyc_completed:
            return bool(user.partner_kyc_completed)

        result = await db.execute(
            update(User)
            .where(User.id == user.id, User.partner_kyc_completed.is_(False))
            .values(partner_kyc_completed=True)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        user.partner_kyc_completed = True
        if result.rowcount:
            log.info(f"KYC flag healed for user {user.id} (partner {partner.id} is {partner.status})")
        return True

    @staticmethod
    async def list_partners(
        db: AsyncSession,
        viewer: Optional[User],
        partner_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Partner]:
        """Public callers only see approved/active partners; admins may filter by any status."""
        query = select(Partner).order_by(Partner.created_at.desc(), Partner.id.desc())
        if viewer is not None and is_admin(viewer):
            if status:
                query = query.filter(Partner.status == status)
        else:
            query = query.filter(Partner.status.in_(APPROVED_PARTNER_STATUSES), Partner.is_active.is_(True))
        if partner_type:
            query = query.filter(Partner.type == partner_type.lower())
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_visible_partner(db: AsyncSession, partner_id: int, viewer: Optional[User]) -> Partner:
        partner = await crud.get_partner(db, partner_id)
        if partner is None:
            raise NotFound("Partner not found")
        if partner.is_approved:
            return partner
        if viewer is not None and (is_admin(viewer) or partner.created_by == viewer.id):
            return partner
        raise Forbidden("Partner is not approved yet", code="partner_not_approved")

    @staticmethod
    async def get_my_partner(db: AsyncSession, user: User) -> Partner:
        partner = await crud.get_partner_by_owner(db, user.id)
        if partner is None:
            raise NotFound("You have not submitted a partner form", code="partner_form_missing")
        return partner

    @staticmethod
    async def update_partner(db: AsyncSession, partner_id: int, payload: schemas.PartnerUpdate, actor: User) -> Partner:
        """Owner or admin edit of the non-status fields."""
        partner = await crud.get_partner(db, partner_id)
        if partner is None:
            raise NotFound("Partner not found")
        if not (is_admin(actor) or partner.created_by == actor.id):
            raise Forbidden("Not allowed to edit this partner")

        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(partner, field, value)
        partner.updated_by = actor.id
        await db.commit()
        await db.refresh(partner)
        log.info(f"Partner {partner.id} updated by user {actor.id}")
        return partner

    @staticmethod
    async def delete_partner(db: AsyncSession, partner_id: int, actor: User) -> None:
        partner = await crud.get_partner(db, partner_id)
        if partner is None:
            raise NotFound("Partner not found")

        owner_id = partner.created_by
        await db.delete(partner)
        if owner_id is not None:
            await db.execute(
                update(User)
                .where(User.id == owner_id)
                .values(partner_kyc_completed=False)
                .execution_options(synchronize_session=False)
            )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise Conflict("Partner has coupons or claims and cannot be deleted", code="partner_in_use")

        log.info(f"Partner {partner_id} deleted by user {actor.id}")
        await AuditService.log_action("delete", "partner", partner_id, user_id=actor.id)
