import os
import tempfile

# Configure the application before any of its modules are imported.
_DB_DIR = tempfile.mkdtemp(prefix="charity-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["CREATE_DEFAULT_ADMIN"] = "false"
os.environ["ADMIN_EMAIL"] = "root@charity.test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = ""
os.environ["AWS_ACCESS_KEY_ID"] = ""
os.environ["AWS_SECRET_ACCESS_KEY"] = ""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import pytest
from sqlalchemy import select

import auth_utils
import qr_service
from database import Base, SessionLocal, engine
from deps import get_payment_gateway
from main import app
from models import Donation, DonationCoupon, Partner, User
from payment_utils import PaymentGateway

FAKE_QR = "data:image/png;base64,iVBORw0KGgo="
PASSWORD = "secret123"
_PASSWORD_HASH = auth_utils.get_password_hash(PASSWORD)


class FakeGateway(PaymentGateway):
    """Gateway double: real signature checks, canned REST responses."""

    def __init__(self):
        super().__init__("rzp_test_key", "rzp_test_secret", "https://gateway.invalid/v1")
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.refunds = []
        self.orders = []

    def sign(self, order_id: str, payment_id: str) -> str:
        import hashlib
        import hmac

        return hmac.new(self.secret_key.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()

    def add_payment(self, payment_id: str, amount_paise: int, status: str = "captured", **extra):
        self.payments[payment_id] = {"id": payment_id, "amount": amount_paise, "status": status, "currency": "INR", **extra}

    async def create_order(self, amount, currency=None, receipt=None, notes=None):
        order = {"id": f"order_{len(self.orders) + 1}", "amount": int(Decimal(amount) * 100), "currency": currency or "INR", "receipt": receipt}
        self.orders.append(order)
        return order

    async def fetch_payment(self, payment_id):
        return self.payments[payment_id]

    async def refund(self, payment_id, amount=None):
        refund = {"id": f"rfnd_{len(self.refunds) + 1}", "payment_id": payment_id, "status": "processed"}
        self.refunds.append(refund)
        return refund


@pytest.fixture(autouse=True)
async def reset_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fake_qr(monkeypatch):
    async def render(payload, timeout=None):
        return FAKE_QR

    monkeypatch.setattr(qr_service, "generate_qr_code", render)
    return render


@pytest.fixture
async def db():
    async with SessionLocal() as session:
        yield session


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    return fake


@pytest.fixture
def fetch():
    """Load a row through a fresh session, bypassing any identity map."""
    async def _fetch(model, pk):
        async with SessionLocal() as session:
            return (await session.execute(select(model).filter(model.id == pk))).scalar_one_or_none()
    return _fetch


def auth_headers(user: User) -> Dict[str, str]:
    token = auth_utils.create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(role: str = "donor", is_approved: bool = True, kyc: bool = False, email: Optional[str] = None) -> User:
        counter["n"] += 1
        user = User(
            name=f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@charity.test",
            hashed_password=_PASSWORD_HASH,
            role=role,
            is_active=True,
            is_approved=is_approved,
            partner_kyc_completed=kyc,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_partner(db, make_user):
    """Partner user plus partner record; approved and KYC-complete by default."""
    async def _make(
        status: str = "approved",
        is_approved: bool = True,
        kyc: Optional[bool] = None,
        form_data: Optional[Dict[str, Any]] = None,
        partner_type: str = "health",
    ):
        if kyc is None:
            kyc = status in ("approved", "active")
        user = await make_user("partner", is_approved=is_approved, kyc=kyc)
        partner = Partner(
            name=f"Clinic of {user.name}",
            type=partner_type,
            description="Community clinic",
            status=status,
            is_active=True,
            form_data=form_data,
            created_by=user.id,
        )
        db.add(partner)
        await db.commit()
        await db.refresh(partner)
        return user, partner

    return _make


@pytest.fixture
def make_coupon(db):
    """Donation plus coupon rows, bypassing the minting flow."""
    counter = {"n": 0}

    async def _make(
        donor: User,
        partner: Partner,
        amount: Decimal = Decimal("500.00"),
        status: str = "active",
        expiry_date: Optional[datetime] = None,
    ) -> DonationCoupon:
        counter["n"] += 1
        donation = Donation(
            amount=amount,
            first_name=donor.name,
            email=donor.email,
            user_id=donor.id,
            partner_id=partner.id,
            payment_id=f"pay_fixture_{counter['n']}",
            payment_method="demo",
            status="completed",
        )
        db.add(donation)
        await db.flush()
        coupon = DonationCoupon(
            coupon_code=f"COUPON-AAAA-BBBB-{counter['n']:04X}",
            qr_code=FAKE_QR,
            user_id=donor.id,
            partner_id=partner.id,
            amount=amount,
            donation_id=donation.id,
            payment_id=donation.payment_id,
            status=status,
            expiry_date=expiry_date or datetime.utcnow() + timedelta(days=30),
        )
        db.add(coupon)
        await db.commit()
        await db.refresh(coupon)
        return coupon

    return _make
