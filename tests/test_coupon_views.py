from datetime import datetime, timedelta

from sqlalchemy import select

from coupon_service import CouponService
from database import SessionLocal
from models import DonationCoupon


async def test_my_coupons_marks_expired_on_read(client, make_user, make_partner, make_coupon, headers, fetch):
    donor = await make_user("donor")
    _, partner = await make_partner()
    live = await make_coupon(donor, partner)
    stale = await make_coupon(donor, partner, expiry_date=datetime.utcnow() - timedelta(days=1))

    resp = await client.get("/donation-coupons/my-coupons", headers=headers(donor))

    assert resp.status_code == 200
    statuses = {c["id"]: c["status"] for c in resp.json()["data"]}
    assert statuses == {live.id: "active", stale.id: "expired"}
    assert resp.json()["data"][0]["partner"]["name"] == partner.name
    assert (await fetch(DonationCoupon, stale.id)).status == "expired"


async def test_expiry_is_written_once(make_user, make_partner, make_coupon):
    donor = await make_user("donor")
    _, partner = await make_partner()
    coupon = await make_coupon(donor, partner, expiry_date=datetime.utcnow() - timedelta(minutes=5))

    async with SessionLocal() as first, SessionLocal() as second:
        query = select(DonationCoupon).filter(DonationCoupon.id == coupon.id)
        copy_a = (await first.execute(query)).scalar_one()
        copy_b = (await second.execute(query)).scalar_one()

        assert await CouponService.expire_if_due(first, copy_a) is True
        assert await CouponService.expire_if_due(second, copy_b) is False
        assert copy_b.status == "expired"
        assert await CouponService.expire_if_due(first, copy_a) is False


async def test_used_coupon_is_not_expired(make_user, make_partner, make_coupon, db):
    donor = await make_user("donor")
    _, partner = await make_partner()
    coupon = await make_coupon(donor, partner, status="used", expiry_date=datetime.utcnow() - timedelta(days=2))

    assert await CouponService.expire_if_due(db, coupon) is False
    assert coupon.status == "used"


async def test_single_coupon_view(client, make_user, make_partner, make_coupon, headers):
    donor = await make_user("donor")
    stranger = await make_user("donor")
    _, partner = await make_partner()
    coupon = await make_coupon(donor, partner, expiry_date=datetime.utcnow() - timedelta(seconds=1))

    mine = await client.get(f"/donation-coupons/{coupon.id}", headers=headers(donor))
    assert mine.status_code == 200
    assert mine.json()["data"]["coupon_code"] == coupon.coupon_code
    assert mine.json()["data"]["status"] == "expired"

    theirs = await client.get(f"/donation-coupons/{coupon.id}", headers=headers(stranger))
    assert theirs.status_code == 404


async def test_admin_listing_maps_redeemed_to_used(client, make_user, make_partner, make_coupon, headers):
    admin = await make_user("admin")
    donor = await make_user("donor")
    partner_user, partner = await make_partner()
    used = await make_coupon(donor, partner)
    await make_coupon(donor, partner)
    claimed = await client.post("/coupon-claims/claim", json={"couponCode": used.coupon_code}, headers=headers(partner_user))
    assert claimed.status_code == 201

    resp = await client.get("/coupons/all", params={"status": "redeemed"}, headers=headers(admin))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["coupons"] == []
    assert [c["id"] for c in data["donation_coupons"]] == [used.id]
    assert data["donation_coupons"][0]["claims"][0]["status"] == "pending"

    everything = (await client.get("/coupons/all", headers=headers(admin))).json()
    assert everything["count"] == 2

    assert (await client.get("/coupons/all", headers=headers(donor))).status_code == 403


async def test_expiry_boundary_is_inclusive(make_user, make_partner, make_coupon, db):
    donor = await make_user("donor")
    _, partner = await make_partner()
    expiry = datetime(2030, 1, 1, 12, 0, 0)
    coupon = await make_coupon(donor, partner, expiry_date=expiry)

    assert coupon.can_be_used(expiry - timedelta(microseconds=1))
    assert coupon.is_expired(expiry)
    assert not coupon.can_be_used(expiry)
    assert await CouponService.expire_if_due(db, coupon, now=expiry) is True
    assert coupon.status == "expired"
