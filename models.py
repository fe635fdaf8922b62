# models.py
# SQLAlchemy models defining database tables (users, partners, campaigns,
# donations, donation coupons, coupon claims, discount coupons, wallets,
# volunteers, events and event registrations).

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Numeric, Text, JSON, Index, text
from sqlalchemy.orm import relationship

from database import Base

# Claim statuses that block another claim on the same coupon.
ACTIVE_CLAIM_STATUSES = ("pending", "approved", "paid")
APPROVED_PARTNER_STATUSES = ("approved", "active")

_ACTIVE_CLAIM_WHERE = text("status IN ('pending', 'approved', 'paid')")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    mobile_number = Column(String(32), nullable=True)
    hashed_password = Column(String, nullable=False)
    # donor, beneficiary, volunteer, vendor, fundraiser, partner, staff, admin
    role = Column(String(20), default="donor", nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Admin gate: partners cannot claim coupons until an admin approves them
    is_approved = Column(Boolean, default=False, nullable=False)
    # Cache of "owns an approved/active Partner record"; reconciled on use
    partner_kyc_completed = Column(Boolean, default=False, nullable=False)
    business_name = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    partner = relationship("Partner", uselist=False, back_populates="owner", foreign_keys="Partner.created_by")
    wallet = relationship("Wallet", uselist=False, back_populates="user")


class Partner(Base):
    __tablename__ = "partners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False)  # health, food
    description = Column(Text, nullable=False)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    pincode = Column(String(12), nullable=True)
    website = Column(String, nullable=True)
    # STATES: pending, approved, rejected, active
    status = Column(String(20), default="pending", nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Free-form intake form; bank details live somewhere inside it
    form_data = Column(JSON, nullable=True)
    # A user owns at most one partner record
    created_by = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", back_populates="partner", foreign_keys=[created_by])

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_PARTNER_STATUSES


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    goal_amount = Column(Numeric(12, 2), nullable=False)
    # Only ever changed through atomic SQL increments
    raised_amount = Column(Numeric(12, 2), default=0, nullable=False)
    donor_count = Column(Integer, default=0, nullable=False)
    # pending, approved, rejected, active, completed, cancelled, paused
    status = Column(String(20), default="pending", nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(32), nullable=True)
    address = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=True, index=True)
    # Soft reference: an unknown partner skips minting, never the donation
    partner_id = Column(Integer, nullable=True)
    # Gateway payment id; a payment is recorded at most once
    payment_id = Column(String(64), unique=True, nullable=True)
    payment_method = Column(String(20), default="razorpay", nullable=False)
    # STATES: pending, completed, failed, refunded
    status = Column(String(20), default="pending", nullable=False)
    transaction_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    campaign = relationship("Campaign")
    coupon = relationship("DonationCoupon", uselist=False, back_populates="donation")


class DonationCoupon(Base):
    __tablename__ = "donation_coupons"

    id = Column(Integer, primary_key=True, index=True)
    coupon_code = Column(String(32), unique=True, nullable=False)
    qr_code = Column(Text, nullable=False)  # PNG data URL
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    partner_id = Column(Integer, ForeignKey("partners.id"), nullable=False, index=True)
    # Copied from the donation; never changes
    amount = Column(Numeric(12, 2), nullable=False)
    donation_id = Column(Integer, ForeignKey("donations.id"), unique=True, nullable=False)
    payment_id = Column(String(64), nullable=False)
    # STATES: active -> used | expired (both terminal)
    status = Column(String(20), default="active", nullable=False)
    expiry_date = Column(DateTime, nullable=False, index=True)
    redeemed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    redeemed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_donation_coupons_user_status", "user_id", "status"),
    )

    donation = relationship("Donation", back_populates="coupon")
    partner = relationship("Partner")
    claims = relationship("CouponClaim", back_populates="coupon")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expiry_date

    def can_be_used(self, now: Optional[datetime] = None) -> bool:
        return self.status == "active" and not self.is_expired(now)


class CouponClaim(Base):
    __tablename__ = "coupon_claims"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("donation_coupons.id"), nullable=False)
    # Claiming partner user
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    partner_record_id = Column(Integer, ForeignKey("partners.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    # STATES: pending -> approved -> paid, pending -> rejected
    status = Column(String(20), default="pending", nullable=False, index=True)
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        # At most one live claim per coupon, enforced by the store
        Index(
            "uq_coupon_claims_live_coupon",
            "coupon_id",
            unique=True,
            postgresql_where=_ACTIVE_CLAIM_WHERE,
            sqlite_where=_ACTIVE_CLAIM_WHERE,
        ),
    )

    coupon = relationship("DonationCoupon", back_populates="claims")
    partner_user = relationship("User", foreign_keys=[partner_id])
    partner_record = relationship("Partner")


class Coupon(Base):
    """Generic discount coupon issued by admins, staff or partners."""

    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(40), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # percentage, fixed
    discount_value = Column(Numeric(12, 2), nullable=False)
    min_purchase = Column(Numeric(12, 2), default=0, nullable=False)
    max_discount = Column(Numeric(12, 2), nullable=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)
    issued_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    issued_to = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive, expired
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    balance = Column(Numeric(12, 2), default=0, nullable=False)
    total_earned = Column(Numeric(12, 2), default=0, nullable=False)
    total_withdrawn = Column(Numeric(12, 2), default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="wallet")
    transactions = relationship("WalletTransaction", back_populates="wallet", order_by="WalletTransaction.id")


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_id = Column(Integer, ForeignKey("wallets.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)  # credit, debit
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=True)
    reference_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    wallet = relationship("Wallet", back_populates="transactions")


class Volunteer(Base):
    __tablename__ = "volunteers"

    id = Column(Integer, primary_key=True, index=True)
    # Anonymous applications have no user; a user applies at most once
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(32), nullable=False)
    city = Column(String(100), nullable=False)
    availability = Column(String, nullable=True)
    interests = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    profile_image = Column(String, nullable=True)
    # STATES: pending, approved, rejected, active, inactive
    status = Column(String(20), default="pending", nullable=False, index=True)
    total_hours = Column(Integer, default=0, nullable=False)
    total_events = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    image = Column(String, nullable=True)
    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(DateTime, nullable=False)
    time = Column(String(40), nullable=True)
    location = Column(String(200), nullable=False)
    address = Column(String, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    category = Column(String(50), nullable=True)
    expected_attendees = Column(Integer, default=0, nullable=False)
    # Only ever changed through atomic SQL increments
    attendees = Column(Integer, default=0, nullable=False)
    # STATES: upcoming, ongoing, completed, cancelled
    status = Column(String(20), default="upcoming", nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class EventRegistration(Base):
    __tablename__ = "event_registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False)
    mobile_number = Column(String(32), nullable=False)
    city = Column(String(100), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # registered, confirmed, cancelled
    status = Column(String(20), default="registered", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # One registration per email per event
        Index("uq_event_registrations_event_email", "event_id", "email", unique=True),
    )
