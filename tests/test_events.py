import asyncio

from models import Event


def event_body(**overrides):
    body = {
        "title": " Beach clean-up ",
        "description": "Bring gloves",
        "start_date": "2030-03-01T09:00:00+05:30",
        "end_date": "2030-03-01T13:00:00+05:30",
        "location": "Juhu Beach",
        "category": "Environment",
        "expected_attendees": 50,
    }
    body.update(overrides)
    return body


def registration(event_id, **overrides):
    body = {"event_id": event_id, "full_name": "Ravi Kumar", "email": "Ravi@Example.com", "mobile_number": "9000000000", "city": "Mumbai"}
    body.update(overrides)
    return body


async def create_event(client, user, headers, **overrides):
    resp = await client.post("/events", json=event_body(**overrides), headers=headers(user))
    assert resp.status_code == 201
    return resp.json()["data"]


async def test_organizer_creates_event(client, make_user, headers):
    fundraiser = await make_user("fundraiser")

    data = await create_event(client, fundraiser, headers)

    assert data["title"] == "Beach clean-up"
    assert data["status"] == "upcoming"
    assert data["attendees"] == 0
    assert data["start_date"] == "2030-03-01T03:30:00"
    assert data["created_by"] == fundraiser.id


async def test_event_creation_rules(client, make_user, headers):
    donor = await make_user("donor")
    staff = await make_user("staff")

    assert (await client.post("/events", json=event_body(), headers=headers(donor))).status_code == 403
    assert (await client.post("/events", json=event_body(location=""), headers=headers(staff))).status_code == 422

    resp = await client.post("/events", json=event_body(end_date="2030-02-28T09:00:00+05:30"), headers=headers(staff))
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_event_dates"


async def test_public_listing_hides_closed_events(client, make_user, headers):
    staff = await make_user("staff")
    admin = await make_user("admin")
    later = await create_event(client, staff, headers, start_date="2030-05-01T09:00:00", end_date="2030-05-01T10:00:00")
    sooner = await create_event(client, staff, headers)
    closed = await create_event(client, staff, headers, category="Health")
    await client.put(f"/events/{closed['id']}", json={"status": "cancelled"}, headers=headers(staff))

    public = await client.get("/events")
    assert [e["id"] for e in public.json()["data"]] == [sooner["id"], later["id"]]

    cancelled = await client.get("/events", params={"status": "cancelled"}, headers=headers(admin))
    assert [e["id"] for e in cancelled.json()["data"]] == [closed["id"]]

    environment = await client.get("/events", params={"category": "Environment"})
    assert environment.json()["count"] == 2


async def test_update_and_delete(client, make_user, headers, fetch):
    staff = await make_user("staff")
    fundraiser = await make_user("fundraiser")
    event = await create_event(client, staff, headers)

    assert (await client.put(f"/events/{event['id']}", json={"location": "Versova"}, headers=headers(fundraiser))).status_code == 403

    resp = await client.put(f"/events/{event['id']}", json={"location": "Versova", "status": "ongoing"}, headers=headers(staff))
    assert resp.status_code == 200
    assert resp.json()["data"]["location"] == "Versova"

    resp = await client.put(f"/events/{event['id']}", json={"title": None}, headers=headers(staff))
    assert resp.status_code == 400
    assert resp.json()["code"] == "field_required"

    resp = await client.put(f"/events/{event['id']}", json={"end_date": "2020-01-01T00:00:00"}, headers=headers(staff))
    assert resp.json()["code"] == "invalid_event_dates"

    await client.post("/event-registrations/register", json=registration(event["id"]))
    assert (await client.delete(f"/events/{event['id']}", headers=headers(staff))).status_code == 200
    assert await fetch(Event, event["id"]) is None
    assert (await client.get(f"/events/{event['id']}")).status_code == 404


async def test_registration_counts_attendees(client, make_user, headers, fetch):
    staff = await make_user("staff")
    attendee = await make_user("donor")
    event = await create_event(client, staff, headers)

    anonymous = await client.post("/event-registrations/register", json=registration(event["id"]))
    assert anonymous.status_code == 201
    assert anonymous.json()["data"]["email"] == "ravi@example.com"
    assert anonymous.json()["data"]["user_id"] is None

    mine = await client.post(
        "/event-registrations/register",
        json=registration(event["id"], full_name="Donor", email=attendee.email),
        headers=headers(attendee),
    )
    assert mine.status_code == 201

    assert (await fetch(Event, event["id"])).attendees == 2

    my_list = await client.get("/event-registrations/my-registrations", headers=headers(attendee))
    assert [r["id"] for r in my_list.json()["data"]] == [mine.json()["data"]["id"]]

    roster = await client.get(f"/event-registrations/event/{event['id']}", headers=headers(staff))
    assert roster.json()["count"] == 2
    assert (await client.get(f"/event-registrations/event/{event['id']}", headers=headers(attendee))).status_code == 403


async def test_duplicate_registration_is_refused(client, make_user, headers, fetch):
    staff = await make_user("staff")
    event = await create_event(client, staff, headers)

    await client.post("/event-registrations/register", json=registration(event["id"]))
    again = await client.post("/event-registrations/register", json=registration(event["id"], email="RAVI@example.com"))

    assert again.status_code == 409
    assert again.json()["code"] == "already_registered"
    assert (await fetch(Event, event["id"])).attendees == 1


async def test_concurrent_duplicate_registrations(client, make_user, headers, fetch):
    staff = await make_user("staff")
    event = await create_event(client, staff, headers)

    responses = await asyncio.gather(*(
        client.post("/event-registrations/register", json=registration(event["id"])) for _ in range(4)
    ))

    assert sorted(r.status_code for r in responses) == [201, 409, 409, 409]
    assert (await fetch(Event, event["id"])).attendees == 1


async def test_registration_needs_open_event(client, make_user, headers):
    staff = await make_user("staff")
    event = await create_event(client, staff, headers)
    await client.put(f"/events/{event['id']}", json={"status": "completed"}, headers=headers(staff))

    resp = await client.post("/event-registrations/register", json=registration(event["id"]))
    assert resp.status_code == 400
    assert resp.json()["code"] == "event_closed"

    assert (await client.post("/event-registrations/register", json=registration(404))).status_code == 404
