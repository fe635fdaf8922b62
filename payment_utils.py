# payment_utils.py
# Razorpay gateway client: orders, payment lookups, refunds and signature checks.

import hashlib
import hmac
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from errors import DependencyFailure

log = logging.getLogger(__name__)

# Payment states that count as money received
SUCCESSFUL_PAYMENT_STATUSES = ("captured", "authorized")


def to_paise(amount: Decimal) -> int:
    """Convert rupees to the gateway's integer minor unit."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_paise(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaymentGateway:
    def __init__(self, api_key: Optional[str], secret_key: Optional[str], base_url: str, timeout: float = 15.0, currency: str = "INR"):
        self.api_key = api_key
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.currency = currency

    @classmethod
    def from_settings(cls, settings) -> "PaymentGateway":
        return cls(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            settings.RAZORPAY_API_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            currency=settings.PAYMENT_CURRENCY,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.secret_key)

    def _require_configured(self):
        if not self.is_configured:
            raise DependencyFailure("Payment gateway not configured", code="gateway_not_configured")

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """
        Check the checkout signature: HMAC-SHA256 of ``order_id|payment_id``
        keyed with the API secret, hex encoded.
        """
        self._require_configured()
        expected = hmac.new(
            self.secret_key.encode("utf-8"),
            f"{order_id}|{payment_id}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._require_configured()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.api_key, self.secret_key),
                timeout=self.timeout,
            ) as client:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            log.error(f"Gateway {method} {path} returned {e.response.status_code}: {e.response.text[:200]}")
            raise DependencyFailure("Payment gateway rejected the request", code="gateway_error") from e
        except httpx.HTTPError as e:
            log.error(f"Gateway {method} {path} failed: {e}")
            raise DependencyFailure("Payment gateway unavailable", code="gateway_unavailable") from e

    async def create_order(self, amount: Decimal, currency: Optional[str] = None, receipt: Optional[str] = None, notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = {
            "amount": to_paise(amount),
            "currency": currency or self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        order = await self._request("POST", "/orders", json=payload)
        log.info(f"Gateway order created: {order.get('id')} for {amount}")
        return order

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/payments/{payment_id}")

    async def refund(self, payment_id: str, amount: Optional[Decimal] = None) -> Dict[str, Any]:
        """Full refund unless ``amount`` is given."""
        payload = {"amount": to_paise(amount)} if amount is not None else {}
        refund = await self._request("POST", f"/payments/{payment_id}/refund", json=payload)
        log.info(f"Gateway refund {refund.get('id')} issued for payment {payment_id}")
        return refund
