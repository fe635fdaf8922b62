# schemas.py
# Pydantic models for request/response validation and serialization.

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

SELF_SERVICE_ROLES = ("donor", "beneficiary", "volunteer", "vendor", "fundraiser", "partner")

DonationStatus = Literal["pending", "completed", "failed", "refunded"]
PaymentMethod = Literal["razorpay", "stripe", "other", "demo", "yesbank"]
DiscountType = Literal["percentage", "fixed"]


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

UtcDatetime = Annotated[datetime, AfterValidator(naive_utc)]


class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    email: str
    role: str

class TokenData(BaseModel):
    username: Optional[str] = None

class UserBase(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=120)

class UserCreate(UserBase):
    password: str = Field(..., min_length=6)
    mobile_number: Optional[str] = None
    role: Literal["donor", "beneficiary", "volunteer", "vendor", "fundraiser", "partner"] = "donor"
    business_name: Optional[str] = None

class User(UserBase):
    id: int
    mobile_number: Optional[str] = None
    role: str
    is_active: bool
    is_approved: bool
    partner_kyc_completed: bool
    business_name: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------- Partners ----------

class PartnerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: str
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    website: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = Field(None, alias="formData")

    class Config:
        populate_by_name = True

class PartnerUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    website: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = Field(None, alias="formData")

    class Config:
        populate_by_name = True

class PartnerStatusUpdate(BaseModel):
    status: str

class Partner(BaseModel):
    id: int
    name: str
    type: str
    description: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    website: Optional[str] = None
    status: str
    is_active: bool
    form_data: Optional[Dict[str, Any]] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PartnerPublic(BaseModel):
    """Partner listing without the intake form (bank details stay private)."""
    id: int
    name: str
    type: str
    description: str
    city: Optional[str] = None
    state: Optional[str] = None
    website: Optional[str] = None
    status: str

    class Config:
        from_attributes = True


# ---------- Campaigns ----------

class CampaignCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    category: Literal["Medical", "Education", "Disaster Relief", "Food", "Health", "Animals", "Community Development", "Other"]
    goal_amount: Decimal = Field(..., ge=1)
    end_date: Optional[UtcDatetime] = None

class Campaign(BaseModel):
    id: int
    title: str
    description: str
    category: str
    goal_amount: Decimal
    raised_amount: Decimal
    donor_count: int
    status: str
    created_by: int
    end_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Donations ----------

class DonationCreate(BaseModel):
    amount: Decimal
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    message: Optional[str] = None
    campaign_id: Optional[int] = None
    partner_id: Optional[int] = None
    payment_method: PaymentMethod = "razorpay"
    status: Literal["pending", "completed", "failed"] = "completed"

class DonationUpdate(BaseModel):
    """Administrative correction; the amount is immutable once completed."""
    status: Optional[DonationStatus] = None
    amount: Optional[Decimal] = None
    message: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None

class Donation(BaseModel):
    id: int
    amount: Decimal
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[int] = None
    campaign_id: Optional[int] = None
    partner_id: Optional[int] = None
    payment_id: Optional[str] = None
    payment_method: str
    status: str
    transaction_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class CouponIssued(BaseModel):
    id: int
    coupon_code: str
    qr_code: str
    amount: Decimal
    expiry_date: datetime
    partner_id: int
    partner_name: Optional[str] = None

class DonationResult(BaseModel):
    donation: Donation
    coupon: Optional[CouponIssued] = None
    coupon_notice: Optional[str] = None


# ---------- Payment gateway ----------

class CreateOrderRequest(BaseModel):
    amount: Decimal
    currency: str = "INR"
    receipt: Optional[str] = None
    notes: Dict[str, Any] = Field(default_factory=dict)

class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    amount: Optional[Decimal] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    campaign_id: Optional[int] = None
    partner_id: Optional[int] = None
    message: Optional[str] = None

class RefundRequest(BaseModel):
    payment_id: str
    amount: Optional[Decimal] = None


# ---------- Donation coupons & claims ----------

class DonationCoupon(BaseModel):
    id: int
    coupon_code: str
    qr_code: str
    user_id: int
    partner_id: int
    amount: Decimal
    donation_id: int
    payment_id: str
    status: str
    expiry_date: datetime
    redeemed_by: Optional[int] = None
    redeemed_at: Optional[datetime] = None
    created_at: datetime
    partner: Optional[PartnerPublic] = None

    class Config:
        from_attributes = True

class ClaimSummary(BaseModel):
    id: int
    partner_id: int
    amount: Decimal
    status: str
    requested_at: datetime

    class Config:
        from_attributes = True

class DonationCouponWithClaims(DonationCoupon):
    claims: List[ClaimSummary] = []

class CouponSummary(BaseModel):
    id: int
    coupon_code: str
    amount: Decimal
    status: str
    expiry_date: datetime
    partner_id: int

    class Config:
        from_attributes = True

class ClaimRequest(BaseModel):
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    coupon_id: Optional[int] = Field(None, alias="couponId")

    class Config:
        populate_by_name = True

class RejectClaimRequest(BaseModel):
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")

    class Config:
        populate_by_name = True

class BankDetails(BaseModel):
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None
    branch: Optional[str] = None
    upi_id: Optional[str] = None
    extraction_version: int

class Claim(BaseModel):
    id: int
    coupon_id: int
    partner_id: int
    partner_record_id: int
    amount: Decimal
    status: str
    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    rejection_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[int] = None
    created_at: datetime
    coupon: Optional[CouponSummary] = None
    partner_name: Optional[str] = None
    bank_details: Optional[BankDetails] = None

    class Config:
        from_attributes = True


# ---------- Discount coupons ----------

class DiscountCouponCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=40)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    min_purchase: Decimal = Field(Decimal("0"), ge=0)
    max_discount: Optional[Decimal] = Field(None, gt=0)
    valid_from: UtcDatetime
    valid_until: UtcDatetime
    usage_limit: Optional[int] = Field(None, ge=1)
    issued_to: Optional[int] = None

class DiscountCouponUpdate(BaseModel):
    description: Optional[str] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_purchase: Optional[Decimal] = Field(None, ge=0)
    max_discount: Optional[Decimal] = Field(None, gt=0)
    valid_from: Optional[UtcDatetime] = None
    valid_until: Optional[UtcDatetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    status: Optional[Literal["active", "inactive", "expired"]] = None

class DiscountCoupon(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    min_purchase: Decimal
    max_discount: Optional[Decimal] = None
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = None
    used_count: int
    issued_by: Optional[int] = None
    issued_to: Optional[int] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

class CouponValidateRequest(BaseModel):
    code: str
    amount: Decimal = Field(..., gt=0)

class CouponValidation(BaseModel):
    coupon: DiscountCoupon
    discount: Decimal
    final_amount: Decimal

    class Config:
        from_attributes = True

class AdminCouponListing(BaseModel):
    coupons: List[DiscountCoupon]
    donation_coupons: List[DonationCouponWithClaims]

    class Config:
        from_attributes = True


# ---------- Wallets ----------

class WalletTransaction(BaseModel):
    id: int
    type: str
    amount: Decimal
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class Wallet(BaseModel):
    id: int
    user_id: int
    balance: Decimal
    total_earned: Decimal
    total_withdrawn: Decimal
    transactions: List[WalletTransaction] = []

    class Config:
        from_attributes = True

class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None

class WalletAdjustment(BaseModel):
    """Manual admin entry against a user's wallet."""
    user_id: int
    type: Literal["credit", "debit"]
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    reference_id: Optional[str] = None


# ---------- Volunteers ----------

VolunteerStatus = Literal["pending", "approved", "rejected", "active", "inactive"]

class VolunteerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    availability: Optional[str] = None
    interests: Optional[str] = None
    message: Optional[str] = None
    profile_image: Optional[str] = None

class VolunteerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    phone: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    availability: Optional[str] = None
    interests: Optional[str] = None
    message: Optional[str] = None
    profile_image: Optional[str] = None
    # Staff only
    status: Optional[VolunteerStatus] = None
    total_hours: Optional[int] = Field(None, ge=0)
    total_events: Optional[int] = Field(None, ge=0)

class Volunteer(BaseModel):
    id: int
    user_id: Optional[int] = None
    name: str
    email: str
    phone: str
    city: str
    availability: Optional[str] = None
    interests: Optional[str] = None
    message: Optional[str] = None
    profile_image: Optional[str] = None
    status: str
    total_hours: int
    total_events: int
    created_at: datetime

    class Config:
        from_attributes = True

class VolunteerCard(BaseModel):
    """What the public verification link shows."""
    id: int
    name: str
    city: str
    status: str
    total_hours: int
    total_events: int

    class Config:
        from_attributes = True


# ---------- Events ----------

EventStatus = Literal["upcoming", "ongoing", "completed", "cancelled"]

class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    start_date: UtcDatetime
    end_date: UtcDatetime
    location: str = Field(..., min_length=1)
    time: Optional[str] = None
    image: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None
    expected_attendees: int = Field(0, ge=0)

class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    location: Optional[str] = Field(None, min_length=1)
    time: Optional[str] = None
    image: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None
    expected_attendees: Optional[int] = Field(None, ge=0)
    status: Optional[EventStatus] = None

class Event(BaseModel):
    id: int
    title: str
    description: str
    image: Optional[str] = None
    start_date: datetime
    end_date: datetime
    time: Optional[str] = None
    location: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None
    expected_attendees: int
    attendees: int
    status: str
    created_by: int
    created_at: datetime

    class Config:
        from_attributes = True

class EventRegistrationCreate(BaseModel):
    event_id: int
    full_name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    mobile_number: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)

class EventRegistration(BaseModel):
    id: int
    event_id: int
    full_name: str
    email: str
    mobile_number: str
    city: str
    user_id: Optional[int] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
