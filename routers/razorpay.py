from decimal import Decimal
import logging

from fastapi import APIRouter, status

import schemas
from deps import CurrentAdminUserDep, CurrentUserDep, OptionalUserDep, PaymentGatewayDep, SessionDep
from donation_service import DonationService
from errors import ValidationFailed
from payment_utils import from_paise

razorpay_router = APIRouter(prefix="/razorpay", tags=["payments"])
log = logging.getLogger(__name__)


@razorpay_router.post("/create-order")
async def create_order(payload: schemas.CreateOrderRequest, gateway: PaymentGatewayDep, donor: OptionalUserDep):
    """Create a gateway order for checkout; the amount is given in rupees."""
    if payload.amount < Decimal("1"):
        raise ValidationFailed("Amount must be at least 1", code="amount_too_small")

    notes = dict(payload.notes)
    if donor is not None:
        notes.setdefault("user_id", str(donor.id))
    order = await gateway.create_order(payload.amount, currency=payload.currency, receipt=payload.receipt, notes=notes)
    return {
        "success": True,
        "data": {
            "order_id": order.get("id"),
            "amount": order.get("amount"),
            "currency": order.get("currency"),
            "receipt": order.get("receipt"),
            "key_id": gateway.api_key,
        },
    }


@razorpay_router.post("/verify-payment", status_code=status.HTTP_201_CREATED)
async def verify_payment(
    payload: schemas.VerifyPaymentRequest,
    db_session: SessionDep,
    gateway: PaymentGatewayDep,
    donor: OptionalUserDep,
):
    """Verify the checkout signature with the gateway and record the donation."""
    result = await DonationService.record_verified_payment(db_session, payload, donor, gateway)
    return {"success": True, "message": "Payment verified and donation recorded", "data": result}


@razorpay_router.get("/payment-status/{payment_id}")
async def payment_status(payment_id: str, gateway: PaymentGatewayDep, current_user: CurrentUserDep):
    payment = await gateway.fetch_payment(payment_id)
    amount = payment.get("amount")
    return {
        "success": True,
        "data": {
            "payment_id": payment.get("id", payment_id),
            "status": payment.get("status"),
            "amount": from_paise(amount) if amount is not None else None,
            "currency": payment.get("currency"),
            "method": payment.get("method"),
            "order_id": payment.get("order_id"),
        },
    }


@razorpay_router.post("/refund")
async def refund_payment(payload: schemas.RefundRequest, db_session: SessionDep, gateway: PaymentGatewayDep, admin: CurrentAdminUserDep):
    refund = await DonationService.refund(db_session, payload.payment_id, payload.amount, admin, gateway)
    return {
        "success": True,
        "message": "Refund initiated",
        "data": {
            "refund_id": refund.get("id"),
            "payment_id": payload.payment_id,
            "status": refund.get("status"),
        },
    }
