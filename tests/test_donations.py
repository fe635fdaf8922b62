from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta
from sqlalchemy import event, func, select

import coupon_code
import qr_service
from conftest import FAKE_QR
from database import SessionLocal, engine
from donation_service import COUPON_LOGIN_NOTICE, COUPON_UNAVAILABLE_NOTICE
from errors import DependencyFailure
from models import Campaign, Donation, DonationCoupon


def donation_body(**overrides):
    body = {
        "amount": "500",
        "first_name": "Asha",
        "last_name": "Rao",
        "email": "asha@example.com",
        "payment_method": "demo",
    }
    body.update(overrides)
    return body


async def count(model):
    async with SessionLocal() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_partner_donation_by_logged_in_donor_mints_coupon(client, make_user, make_partner, headers, fetch):
    donor = await make_user("donor")
    _, partner = await make_partner()

    resp = await client.post("/donations", json=donation_body(partner_id=partner.id), headers=headers(donor))

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["coupon_notice"] is None
    coupon = data["coupon"]
    assert coupon_code.is_well_formed(coupon["coupon_code"])
    assert coupon["qr_code"] == FAKE_QR
    assert Decimal(coupon["amount"]) == Decimal("500")
    assert coupon["partner_id"] == partner.id
    assert coupon["partner_name"] == partner.name

    expected_expiry = datetime.utcnow() + relativedelta(months=1)
    assert abs(datetime.fromisoformat(coupon["expiry_date"]) - expected_expiry) < timedelta(minutes=1)

    stored = await fetch(DonationCoupon, coupon["id"])
    assert stored.status == "active"
    assert stored.user_id == donor.id
    assert stored.donation_id == data["donation"]["id"]
    assert stored.payment_id.startswith("payment_")


async def test_donation_without_partner_has_no_coupon(client, make_user, headers):
    donor = await make_user("donor")
    resp = await client.post("/donations", json=donation_body(), headers=headers(donor))

    assert resp.status_code == 201
    assert resp.json()["data"]["coupon"] is None
    assert resp.json()["data"]["coupon_notice"] is None
    assert await count(DonationCoupon) == 0


async def test_anonymous_partner_donation_is_kept_without_coupon(client, make_partner):
    _, partner = await make_partner()

    resp = await client.post("/donations", json=donation_body(partner_id=partner.id))

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["coupon"] is None
    assert data["coupon_notice"] == COUPON_LOGIN_NOTICE
    assert data["donation"]["user_id"] is None
    assert await count(Donation) == 1
    assert await count(DonationCoupon) == 0


async def test_qr_failure_soft_fails_the_coupon(client, make_user, make_partner, headers, monkeypatch):
    donor = await make_user("donor")
    _, partner = await make_partner()

    async def broken(payload, timeout=None):
        raise DependencyFailure("QR rendering timed out", code="qr_timeout")

    monkeypatch.setattr(qr_service, "generate_qr_code", broken)

    resp = await client.post("/donations", json=donation_body(partner_id=partner.id), headers=headers(donor))

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["donation"]["status"] == "completed"
    assert data["coupon"] is None
    assert data["coupon_notice"] == COUPON_UNAVAILABLE_NOTICE
    assert await count(Donation) == 1
    assert await count(DonationCoupon) == 0


async def test_unknown_partner_skips_coupon(client, make_user, headers):
    donor = await make_user("donor")
    resp = await client.post("/donations", json=donation_body(partner_id=9999), headers=headers(donor))

    assert resp.status_code == 201
    assert resp.json()["data"]["coupon"] is None
    assert await count(DonationCoupon) == 0


async def test_code_collision_is_retried(client, make_user, make_partner, make_coupon, headers, monkeypatch):
    donor = await make_user("donor")
    _, partner = await make_partner()
    taken = await make_coupon(donor, partner)

    codes = iter([taken.coupon_code, taken.coupon_code, "COUPON-1234-5678-9ABC"])
    monkeypatch.setattr(coupon_code, "generate_coupon_code", lambda: next(codes))

    resp = await client.post("/donations", json=donation_body(partner_id=partner.id), headers=headers(donor))

    assert resp.status_code == 201
    assert resp.json()["data"]["coupon"]["coupon_code"] == "COUPON-1234-5678-9ABC"


async def test_code_generation_gives_up_after_bounded_attempts(client, make_user, make_partner, make_coupon, headers, monkeypatch):
    donor = await make_user("donor")
    _, partner = await make_partner()
    taken = await make_coupon(donor, partner)

    attempts = []

    def always_taken():
        attempts.append(1)
        return taken.coupon_code

    monkeypatch.setattr(coupon_code, "generate_coupon_code", always_taken)

    resp = await client.post("/donations", json=donation_body(partner_id=partner.id), headers=headers(donor))

    assert resp.status_code == 201
    assert resp.json()["data"]["coupon"] is None
    assert len(attempts) == 10
    assert await count(DonationCoupon) == 1


async def test_campaign_counters_follow_donations(client, make_user, db):
    fundraiser = await make_user("fundraiser")
    campaign = Campaign(
        title="Flood relief",
        description="Relief kits",
        category="Disaster Relief",
        goal_amount=Decimal("10000"),
        raised_amount=Decimal("0"),
        donor_count=0,
        status="active",
        created_by=fundraiser.id,
    )
    db.add(campaign)
    await db.commit()

    for amount in ("100", "250.50"):
        resp = await client.post("/donations", json=donation_body(amount=amount, campaign_id=campaign.id))
        assert resp.status_code == 201

    resp = await client.get(f"/campaigns/{campaign.id}")
    data = resp.json()["data"]
    assert Decimal(data["raised_amount"]) == Decimal("350.50")
    assert data["donor_count"] == 2


async def test_donation_validation(client):
    resp = await client.post("/donations", json=donation_body(amount="0.5"))
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation"
    assert resp.json()["code"] == "amount_too_small"

    body = donation_body()
    del body["email"]
    resp = await client.post("/donations", json=body)
    assert resp.status_code == 400
    assert resp.json()["code"] == "email_required"

    resp = await client.post("/donations", json=donation_body(first_name="  "))
    assert resp.status_code == 400
    assert resp.json()["code"] == "first_name_required"

    resp = await client.post("/donations", json=donation_body(campaign_id=424242))
    assert resp.status_code == 404
    assert await count(Donation) == 0


async def test_donation_queries(client, make_user, headers):
    donor = await make_user("donor")
    other = await make_user("donor")
    admin = await make_user("admin")

    created = await client.post("/donations", json=donation_body(), headers=headers(donor))
    donation_id = created.json()["data"]["donation"]["id"]

    mine = await client.get("/donations/me", headers=headers(donor))
    assert [d["id"] for d in mine.json()["data"]] == [donation_id]

    assert (await client.get(f"/donations/{donation_id}", headers=headers(other))).status_code == 403
    assert (await client.get(f"/donations/{donation_id}", headers=headers(admin))).status_code == 200
    assert (await client.get("/donations", headers=headers(donor))).status_code == 403

    resp = await client.put(f"/donations/{donation_id}", json={"amount": "900"}, headers=headers(admin))
    assert resp.status_code == 400
    assert resp.json()["code"] == "amount_immutable"

    resp = await client.put(f"/donations/{donation_id}", json={"message": "In memory of Ravi"}, headers=headers(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["message"] == "In memory of Ravi"


@pytest.fixture
def sqlite_foreign_keys():
    """Enforce foreign keys on every new connection, as Postgres does."""
    def enable(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    event.listen(engine.sync_engine, "connect", enable)
    yield
    event.remove(engine.sync_engine, "connect", enable)


async def test_unknown_partner_keeps_donation_with_foreign_keys_enforced(client, make_user, headers, sqlite_foreign_keys):
    donor = await make_user("donor")
    resp = await client.post("/donations", json=donation_body(partner_id=9999), headers=headers(donor))

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["coupon"] is None
    assert data["donation"]["partner_id"] == 9999
    assert await count(Donation) == 1
    assert await count(DonationCoupon) == 0


@pytest.mark.parametrize("field", ["status", "first_name", "amount"])
async def test_correction_cannot_clear_required_fields(client, make_user, headers, fetch, field):
    donor = await make_user("donor")
    admin = await make_user("admin")
    created = await client.post("/donations", json=donation_body(status="pending"), headers=headers(donor))
    donation_id = created.json()["data"]["donation"]["id"]

    resp = await client.put(f"/donations/{donation_id}", json={field: None}, headers=headers(admin))

    assert resp.status_code == 400
    assert resp.json()["code"] == "field_required"
    assert resp.json()["details"] == {"field": field}
    stored = await fetch(Donation, donation_id)
    assert stored.status == "pending"
    assert stored.first_name == "Asha"


async def test_correction_rejects_blank_first_name(client, make_user, headers):
    donor = await make_user("donor")
    admin = await make_user("admin")
    created = await client.post("/donations", json=donation_body(), headers=headers(donor))
    donation_id = created.json()["data"]["donation"]["id"]

    resp = await client.put(f"/donations/{donation_id}", json={"first_name": "   "}, headers=headers(admin))

    assert resp.status_code == 400
    assert resp.json()["code"] == "first_name_required"
