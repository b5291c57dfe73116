from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from metropass.main import app
from metropass.src import argon2, openobserve
from metropass.src.db import Fare, ORMbase, Station, User, sessionMaker
from metropass.src.enums import FareType, UserRole

PASSWORD = "secret123"


@pytest.fixture()
def engine(tmp_path):
    """
    SQLite database file per test, bound to the application session factory.
    """

    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'metropass.db'}",
        connect_args={"check_same_thread": False},
    )
    ORMbase.metadata.create_all(engine)
    sessionMaker.configure(bind=engine)
    yield engine
    engine.dispose()


class StreamRecorder:
    """Stands in for the OpenObserve HTTP session and keeps what was posted."""

    def __init__(self):
        self.events: List[Dict] = []
        self.requests: List[Dict] = []

    def post(self, url, data=None, timeout=None):
        self.requests.append({"url": url, "timeout": timeout})
        self.events.extend(json.loads(data))
        return SimpleNamespace(status_code=200)


@pytest.fixture(autouse=True)
def audit_stream(monkeypatch) -> StreamRecorder:
    """Capture audit events instead of shipping them to OpenObserve."""

    recorder = StreamRecorder()
    monkeypatch.setattr(openobserve, "httpSession", recorder)
    return recorder


@pytest.fixture()
def audit_events(audit_stream) -> List[Dict]:
    return audit_stream.events


@pytest.fixture()
def client(engine):
    with TestClient(app) as c:
        yield c


class Seed:
    """Direct database writers for test fixtures. Every call commits."""

    def __init__(self, engine):
        self.engine = engine
        self._phones = 0

    def user(
        self,
        email: str = "rider@mail.com",
        balance: float = 0,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
        password: str = PASSWORD,
        full_name: str = "Test Rider",
    ) -> int:
        self._phones += 1
        with sessionMaker() as s:
            u = User(
                full_name=full_name,
                email=email,
                phone_number=f"+88017000000{self._phones:02d}",
                password=argon2.makePassword(password),
                balance=Decimal(str(balance)),
                role=role,
                is_active=is_active,
            )
            s.add(u)
            s.commit()
            return u.id

    def station(
        self,
        name: str,
        code: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        zone: str = "Zone A",
        is_active: bool = True,
    ) -> int:
        with sessionMaker() as s:
            st = Station(
                name=name,
                code=code,
                latitude=latitude,
                longitude=longitude,
                address=f"{name} station road",
                zone=zone,
                facilities=[],
                is_active=is_active,
            )
            s.add(st)
            s.commit()
            return st.id

    def fare(
        self,
        from_station_id: int,
        to_station_id: int,
        fare: float = 30,
        fare_type: FareType = FareType.REGULAR,
        effective_from: datetime | None = None,
        effective_to: datetime | None = None,
        is_active: bool = True,
    ) -> int:
        with sessionMaker() as s:
            f = Fare(
                from_station_id=from_station_id,
                to_station_id=to_station_id,
                fare_type=fare_type,
                fare=Decimal(str(fare)),
                distance=2.5,
                duration=5,
                effective_from=effective_from
                or datetime.now(timezone.utc) - timedelta(minutes=1),
                effective_to=effective_to,
                is_active=is_active,
            )
            s.add(f)
            s.commit()
            return f.id

    def balance(self, user_id: int) -> Decimal:
        with sessionMaker() as s:
            return s.get(User, user_id).balance


@pytest.fixture()
def seed(engine) -> Seed:
    return Seed(engine)


@pytest.fixture()
def login(client):
    """Return a function that signs a user in and yields its auth headers."""

    def _login(email: str = "rider@mail.com", password: str = PASSWORD) -> Dict:
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        token = r.json()["data"]["token"]["accessToken"]
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture()
def admin_headers(seed, login) -> Dict:
    seed.user(email="admin@mail.com", role=UserRole.ADMIN, full_name="Metro Admin")
    return login("admin@mail.com")
