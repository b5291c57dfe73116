from __future__ import annotations

STATION = {
    "name": "Central",
    "code": "ctl",
    "latitude": 23.7806,
    "longitude": 90.4070,
    "address": "1 Central Avenue",
    "zone": "Zone A",
    "facilities": ["parking", "wifi"],
}


def test_create_station_as_admin(client, admin_headers, audit_events):
    r = client.post("/api/stations", json=STATION, headers=admin_headers)
    assert r.status_code == 201, r.text
    station = r.json()["data"]["station"]
    assert station["code"] == "CTL"
    assert station["facilities"] == ["parking", "wifi"]
    assert station["isActive"] is True
    assert audit_events[-1]["_role"] == "admin"


def test_create_station_requires_admin(client, seed, login):
    assert client.post("/api/stations", json=STATION).status_code == 401

    seed.user()
    r = client.post("/api/stations", json=STATION, headers=login())
    assert r.status_code == 403


def test_create_station_reports_conflicting_field(client, admin_headers):
    assert client.post("/api/stations", json=STATION, headers=admin_headers).status_code == 201

    r = client.post(
        "/api/stations", json={**STATION, "code": "NEW"}, headers=admin_headers
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Station with this name already exists"

    r = client.post(
        "/api/stations", json={**STATION, "name": "Other"}, headers=admin_headers
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Station with this code already exists"


def test_create_station_needs_both_coordinates(client, admin_headers):
    body = {**STATION}
    body.pop("longitude")
    r = client.post("/api/stations", json=body, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["message"] == "latitude and longitude are required"

    body.pop("latitude")
    r = client.post("/api/stations", json=body, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["data"]["station"]["latitude"] is None


def test_list_stations_active_only_ordered_by_name(client, seed):
    seed.station("Charlie", zone="Zone B")
    seed.station("Alpha", code="ALP")
    seed.station("Bravo")
    seed.station("Closed", is_active=False)

    r = client.get("/api/stations")
    assert r.status_code == 200
    body = r.json()
    assert [s["name"] for s in body["data"]] == ["Alpha", "Bravo", "Charlie"]
    assert body["pagination"]["total"] == 3

    r = client.get("/api/stations", params={"zone": "Zone B"})
    assert [s["name"] for s in r.json()["data"]] == ["Charlie"]

    r = client.get("/api/stations", params={"search": "alp"})
    assert [s["name"] for s in r.json()["data"]] == ["Alpha"]

    r = client.get("/api/stations/zone/Zone A")
    assert [s["name"] for s in r.json()["data"]["stations"]] == ["Alpha", "Bravo"]


def test_nearby_stations_nearest_first(client, seed):
    seed.station("Origin", latitude=23.80, longitude=90.40)
    seed.station("Near", latitude=23.81, longitude=90.40)
    seed.station("Far", latitude=23.90, longitude=90.40)
    seed.station("Nowhere")

    r = client.get("/api/stations/nearby", params={"longitude": 90.40, "latitude": 23.80})
    assert r.status_code == 200
    stations = r.json()["data"]["stations"]
    assert [s["name"] for s in stations] == ["Origin", "Near"]
    assert stations[0]["distance"] == 0
    assert 1000 < stations[1]["distance"] < 1200

    r = client.get(
        "/api/stations/nearby",
        params={"longitude": 90.40, "latitude": 23.80, "maxDistance": 20000},
    )
    assert [s["name"] for s in r.json()["data"]["stations"]] == ["Origin", "Near", "Far"]


def test_nearby_requires_coordinates(client):
    r = client.get("/api/stations/nearby", params={"longitude": 90.40})
    assert r.status_code == 400
    assert r.json()["message"] == "longitude and latitude are required"


def test_update_station_clears_location_with_null(client, seed, admin_headers):
    station_id = seed.station("Central", latitude=23.78, longitude=90.40)

    r = client.put(
        f"/api/stations/{station_id}",
        json={"latitude": None, "zone": "Zone C"},
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    station = r.json()["data"]["station"]
    assert station["latitude"] is None
    assert station["longitude"] is None
    assert station["zone"] == "Zone C"
    assert station["name"] == "Central"


def test_update_station_rejects_taken_name(client, seed, admin_headers):
    seed.station("Alpha")
    station_id = seed.station("Bravo")

    r = client.put(
        f"/api/stations/{station_id}", json={"name": "Alpha"}, headers=admin_headers
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Station with this name already exists"


def test_delete_station_is_soft(client, seed, admin_headers):
    station_id = seed.station("Central")

    r = client.delete(f"/api/stations/{station_id}", headers=admin_headers)
    assert r.status_code == 200

    assert client.get("/api/stations").json()["pagination"]["total"] == 0
    r = client.get(f"/api/stations/{station_id}")
    assert r.status_code == 200
    assert r.json()["data"]["station"]["isActive"] is False

    r = client.get("/api/stations/9999")
    assert r.status_code == 404
    assert r.json()["message"] == "Station not found"
