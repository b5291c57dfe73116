import argparse
from http import HTTPStatus
from requests import post

from metropass.src import argon2
from metropass.src.enums import Facility, UserRole
from metropass.src.urls import URL_AUTH_LOGIN, URL_FARE, URL_STATION
from metropass.src.db import User, sessionMaker, engine, ORMbase


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def initDB():
    session = sessionMaker()
    password = argon2.makePassword("password")
    admin = User(
        full_name="Metro admin",
        email="admin@metropass.com",
        phone_number="+10000000000",
        password=password,
        role=UserRole.ADMIN,
    )
    guest = User(
        full_name="Metro guest",
        email="guest@metropass.com",
        phone_number="+10000000001",
        password=password,
        balance=100,
    )
    session.add_all([admin, guest])
    session.commit()
    print("* Initialization completed")
    session.close()


def POST(
    URL: str,
    header: dict | None = None,
    status_code: int = HTTPStatus.CREATED,
    **kwargs,
):
    response = post(URL, headers=header or {}, **kwargs)
    assert response.status_code == status_code, response.text
    return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080/api"

    # Create admin token
    credentials = {"email": "admin@metropass.com", "password": "password"}
    response = POST(
        (BASE_URL + URL_AUTH_LOGIN),
        json=credentials,
        status_code=HTTPStatus.OK,
    )
    if response.status_code == HTTPStatus.OK:
        print("* Created token for admin")
    token = response.json()["data"]["token"]["accessToken"]
    accessToken = {"Authorization": f"Bearer {token}"}

    # Create stations along one line
    stationData = [
        ("Uttara North", "UTN", 23.8691, 90.3673, "Zone A"),
        ("Uttara Center", "UTC", 23.8597, 90.3654, "Zone A"),
        ("Uttara South", "UTS", 23.8451, 90.3631, "Zone A"),
        ("Pallabi", "PLB", 23.8265, 90.3646, "Zone B"),
        ("Mirpur 11", "MR11", 23.8192, 90.3654, "Zone B"),
    ]
    stations = []
    for name, code, latitude, longitude, zone in stationData:
        station = POST(
            (BASE_URL + URL_STATION),
            header=accessToken,
            json={
                "name": name,
                "code": code,
                "latitude": latitude,
                "longitude": longitude,
                "address": f"{name} station, Dhaka",
                "zone": zone,
                "facilities": [Facility.ESCALATOR.value, Facility.RESTROOM.value],
            },
            status_code=HTTPStatus.CREATED,
        )
        stations.append(station.json()["data"]["station"])
    print(f"* Created {len(stations)} stations")

    # Fares between consecutive stations, in both directions
    fareCount = 0
    for index in range(len(stations) - 1):
        for fromStation, toStation in (
            (stations[index], stations[index + 1]),
            (stations[index + 1], stations[index]),
        ):
            POST(
                (BASE_URL + URL_FARE),
                header=accessToken,
                json={
                    "fromStation": fromStation["id"],
                    "toStation": toStation["id"],
                    "fare": 20 + index * 5,
                    "distance": 2.5 + index * 0.5,
                    "duration": 5 + index * 2,
                },
                status_code=HTTPStatus.CREATED,
            )
            fareCount += 1

    # Cross-route fares
    for index, (start, end) in enumerate([(0, 2), (1, 3), (0, len(stations) - 1)]):
        POST(
            (BASE_URL + URL_FARE),
            header=accessToken,
            json={
                "fromStation": stations[start]["id"],
                "toStation": stations[end]["id"],
                "fare": 30 + index * 10,
                "distance": 5 + index * 1.5,
                "duration": 10 + index * 3,
            },
            status_code=HTTPStatus.CREATED,
        )
        fareCount += 1
    print(f"* Created {fareCount} fares")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
