from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from discount_coupon_service import compute_discount


def coupon_body(code="WELCOME10", **overrides):
    now = datetime.utcnow()
    body = {
        "code": code,
        "description": "Welcome offer",
        "discount_type": "percentage",
        "discount_value": "10",
        "min_purchase": "100",
        "max_discount": "50",
        "valid_from": (now - timedelta(days=1)).isoformat(),
        "valid_until": (now + timedelta(days=30)).isoformat(),
    }
    body.update(overrides)
    return body


def test_compute_discount():
    pct = SimpleNamespace(discount_type="percentage", discount_value=Decimal("10"), max_discount=Decimal("50"))
    assert compute_discount(pct, Decimal("200")) == Decimal("20.00")
    assert compute_discount(pct, Decimal("1000")) == Decimal("50.00")
    assert compute_discount(pct, Decimal("99.95")) == Decimal("10.00")

    fixed = SimpleNamespace(discount_type="fixed", discount_value=Decimal("75"), max_discount=None)
    assert compute_discount(fixed, Decimal("300")) == Decimal("75.00")
    assert compute_discount(fixed, Decimal("40")) == Decimal("40.00")


async def test_issue_and_validate(client, make_user, headers):
    staff = await make_user("staff")

    created = await client.post("/coupons", json=coupon_body(code="welcome10"), headers=headers(staff))
    assert created.status_code == 201
    assert created.json()["data"]["code"] == "WELCOME10"
    assert created.json()["data"]["issued_by"] == staff.id

    resp = await client.post("/coupons/validate", json={"code": "welcome10", "amount": "300"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert Decimal(data["discount"]) == Decimal("30.00")
    assert Decimal(data["final_amount"]) == Decimal("270.00")


async def test_issuing_rules(client, make_user, headers):
    staff = await make_user("staff")
    donor = await make_user("donor")

    assert (await client.post("/coupons", json=coupon_body(), headers=headers(donor))).status_code == 403

    window = coupon_body(valid_until=(datetime.utcnow() - timedelta(days=2)).isoformat())
    resp = await client.post("/coupons", json=window, headers=headers(staff))
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_validity_window"

    resp = await client.post("/coupons", json=coupon_body(discount_value="150"), headers=headers(staff))
    assert resp.json()["code"] == "invalid_discount"

    assert (await client.post("/coupons", json=coupon_body(), headers=headers(staff))).status_code == 201
    duplicate = await client.post("/coupons", json=coupon_body(code="Welcome10"), headers=headers(staff))
    assert duplicate.status_code == 409


async def test_validation_failures(client, make_user, headers):
    staff = await make_user("staff")
    now = datetime.utcnow()
    await client.post("/coupons", json=coupon_body(code="FUTURE1", valid_from=(now + timedelta(days=1)).isoformat()), headers=headers(staff))
    await client.post("/coupons", json=coupon_body(code="BIGSPEND", min_purchase="1000"), headers=headers(staff))

    assert (await client.post("/coupons/validate", json={"code": "NOPE", "amount": "100"})).status_code == 404

    not_started = await client.post("/coupons/validate", json={"code": "FUTURE1", "amount": "500"})
    assert not_started.json()["code"] == "coupon_not_started"

    below_min = await client.post("/coupons/validate", json={"code": "BIGSPEND", "amount": "500"})
    assert below_min.status_code == 400
    assert below_min.json()["code"] == "below_min_purchase"


async def test_redeem_respects_usage_limit(client, make_user, headers, fetch):
    staff = await make_user("staff")
    donor = await make_user("donor")
    created = await client.post("/coupons", json=coupon_body(code="ONCE", usage_limit=1), headers=headers(staff))

    first = await client.post("/coupons/redeem", json={"code": "ONCE", "amount": "200"}, headers=headers(donor))
    assert first.status_code == 200
    assert first.json()["data"]["coupon"]["used_count"] == 1

    second = await client.post("/coupons/redeem", json={"code": "ONCE", "amount": "200"}, headers=headers(donor))
    assert second.status_code == 400
    assert second.json()["code"] == "usage_limit_reached"

    coupon = (await client.get(f"/coupons/{created.json()['data']['id']}", headers=headers(donor))).json()["data"]
    assert coupon["used_count"] == 1


async def test_listing_and_ownership(client, make_user, make_partner, headers):
    admin = await make_user("admin")
    staff = await make_user("staff")
    partner_user, _ = await make_partner()
    donor = await make_user("donor")

    mine = await client.post("/coupons", json=coupon_body(code="PARTNER5", issued_to=donor.id), headers=headers(partner_user))
    await client.post("/coupons", json=coupon_body(code="STAFF5"), headers=headers(staff))
    coupon_id = mine.json()["data"]["id"]

    assert (await client.get("/coupons", headers=headers(admin))).json()["count"] == 2
    assert [c["code"] for c in (await client.get("/coupons", headers=headers(partner_user))).json()["data"]] == ["PARTNER5"]
    assert [c["code"] for c in (await client.get("/coupons", headers=headers(donor))).json()["data"]] == ["PARTNER5"]

    denied = await client.put(f"/coupons/{coupon_id}", json={"description": "x"}, headers=headers(staff))
    assert denied.status_code == 403

    updated = await client.put(f"/coupons/{coupon_id}", json={"status": "inactive"}, headers=headers(partner_user))
    assert updated.json()["data"]["status"] == "inactive"
    inactive = await client.post("/coupons/validate", json={"code": "PARTNER5", "amount": "500"})
    assert inactive.json()["code"] == "coupon_inactive"

    assert (await client.delete(f"/coupons/{coupon_id}", headers=headers(admin))).status_code == 200
    assert (await client.get(f"/coupons/{coupon_id}", headers=headers(admin))).status_code == 404
