from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from metropass.src.db import Trip, sessionMaker
from metropass.src.enums import TripStatus


@pytest.fixture()
def line(seed):
    a = seed.station("Alpha", code="ALP")
    b = seed.station("Bravo", code="BRV")
    seed.fare(a, b, fare=30)
    seed.user(balance=100)
    return {"a": a, "b": b}


def _buy(client, headers, line, passengers=2, **extra):
    body = {
        "fromStation": line["a"],
        "toStation": line["b"],
        "numberOfPassengers": passengers,
        **extra,
    }
    return client.post("/api/trips", json=body, headers=headers)


def test_end_to_end_trip_lifecycle(client, line, login):
    headers = login()

    r = _buy(client, headers, line, passengers=2)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Trip created successfully"
    assert "timestamp" in body
    trip = body["data"]["trip"]
    assert trip["totalAmount"] == 60
    assert trip["fare"] == 30
    assert trip["status"] == "created"
    assert trip["paymentStatus"] == "completed"
    assert trip["fromStation"] == {"id": line["a"], "name": "Alpha", "code": "ALP"}

    profile = client.get("/api/users/profile", headers=headers).json()["data"]["user"]
    assert profile["balance"] == 40

    r = client.post(f"/api/trips/use/{trip['tripCode']}")
    assert r.status_code == 200, r.text
    used = r.json()["data"]["trip"]
    assert used["status"] == "used"
    assert used["journeyStartTime"] is not None

    profile = client.get("/api/users/profile", headers=headers).json()["data"]["user"]
    assert profile["totalTrips"] == 1
    assert profile["totalExpense"] == 60

    r = client.post(f"/api/trips/{trip['id']}/complete", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["data"]["trip"]["journeyEndTime"] is not None

    r = client.post(f"/api/trips/use/{trip['tripCode']}")
    assert r.status_code == 404
    assert r.json() == {
        "success": False,
        "message": "Invalid or already used trip code",
        "timestamp": r.json()["timestamp"],
    }
    assert r.headers["X-Error"] == "InvalidTripCode"


def test_buy_with_insufficient_balance(client, line, login):
    headers = login()

    r = _buy(client, headers, line, passengers=4)
    assert r.status_code == 400
    assert r.json()["message"] == "Insufficient balance"

    profile = client.get("/api/users/profile", headers=headers).json()["data"]["user"]
    assert profile["balance"] == 100
    history = client.get("/api/trips/history", headers=headers).json()
    assert history["pagination"]["total"] == 0


def test_buy_without_fare_is_not_found(client, line, login):
    r = client.post(
        "/api/trips",
        json={"fromStation": line["b"], "toStation": line["a"], "numberOfPassengers": 1},
        headers=login(),
    )
    assert r.status_code == 404
    assert r.json()["message"] == "Fare not found for this route"


@pytest.mark.parametrize("passengers", [0, 11])
def test_buy_rejects_passenger_count(client, line, login, passengers):
    r = _buy(client, login(), line, passengers=passengers)
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_buy_requires_token(client, line):
    r = _buy(client, {}, line)
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


def test_complete_unused_trip_is_rejected(client, line, login):
    headers = login()
    trip = _buy(client, headers, line).json()["data"]["trip"]

    r = client.post(f"/api/trips/{trip['id']}/complete", headers=headers)
    assert r.status_code == 400
    assert r.headers["X-Error"] == "InvalidStateTransition"


def test_use_lapsed_trip_reports_expiry(client, line, login):
    headers = login()
    trip = _buy(client, headers, line).json()["data"]["trip"]
    with sessionMaker() as s:
        s.query(Trip).filter(Trip.id == trip["id"]).update(
            {Trip.expires_at: datetime.now(timezone.utc) - timedelta(minutes=5)},
            synchronize_session=False,
        )
        s.commit()

    for _ in range(2):
        r = client.post(f"/api/trips/use/{trip['tripCode']}")
        assert r.status_code == 404
        assert r.headers["X-Error"] == "TripExpired"
        assert r.json()["message"] == "Trip has expired"

    with sessionMaker() as s:
        assert s.get(Trip, trip["id"]).status == TripStatus.EXPIRED
    unused = client.get("/api/trips/unused", headers=headers).json()["data"]["trips"]
    assert unused == []


@pytest.mark.parametrize("code", ["TRIP-0000000000000000", "TRIP-00000000", "x"])
def test_use_unknown_code_of_any_length_is_not_found(client, code):
    r = client.post(f"/api/trips/use/{code}")
    assert r.status_code == 404
    assert r.headers["X-Error"] == "InvalidTripCode"
    assert r.json()["message"] == "Invalid or already used trip code"


def test_history_is_paginated_newest_first(client, line, login):
    headers = login()
    codes = [
        _buy(client, headers, line, passengers=1).json()["data"]["trip"]["tripCode"]
        for _ in range(3)
    ]

    r = client.get("/api/trips/history", params={"page": 1, "limit": 2}, headers=headers)
    body = r.json()
    assert [t["tripCode"] for t in body["data"]] == [codes[2], codes[1]]
    assert body["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 3,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }

    r = client.get("/api/trips/history", params={"page": 2, "limit": 2}, headers=headers)
    assert [t["tripCode"] for t in r.json()["data"]] == [codes[0]]
    assert r.json()["pagination"]["hasPrev"] is True


def test_unused_lists_only_redeemable_trips(client, line, login):
    headers = login()
    first = _buy(client, headers, line, passengers=1).json()["data"]["trip"]
    second = _buy(client, headers, line, passengers=1).json()["data"]["trip"]
    client.post(f"/api/trips/use/{first['tripCode']}")

    unused = client.get("/api/trips/unused", headers=headers).json()["data"]["trips"]
    assert [t["id"] for t in unused] == [second["id"]]


def test_trip_is_visible_to_owner_and_admin_only(client, line, seed, login, admin_headers):
    headers = login()
    trip = _buy(client, headers, line).json()["data"]["trip"]
    seed.user(email="other@mail.com")

    r = client.get(f"/api/trips/{trip['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["trip"]["user"]["fullName"] == "Test Rider"

    r = client.get(f"/api/trips/{trip['id']}", headers=login("other@mail.com"))
    assert r.status_code == 403

    r = client.get(f"/api/trips/{trip['id']}", headers=admin_headers)
    assert r.status_code == 200

    r = client.get("/api/trips/9999", headers=headers)
    assert r.status_code == 404
    assert r.json()["message"] == "Trip not found"


def test_redeem_is_audited_without_user(client, line, login, audit_events):
    trip = _buy(client, login(), line).json()["data"]["trip"]
    client.post(f"/api/trips/use/{trip['tripCode']}")

    event = audit_events[-1]
    assert event["_path"] == f"/api/trips/use/{trip['tripCode']}"
    assert event["_method"] == "POST"
    assert "_user_id" not in event
    assert event["tripCode"] == trip["tripCode"]


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "OK"
    assert r.json()["success"] is True
