from datetime import datetime, timezone
from typing import Optional
from fastapi import Request
from sqlalchemy import or_
from sqlalchemy.orm.session import Session

from metropass.src import schemas
from metropass.src.db import Fare, Station
from metropass.src.enums import FareType


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
    """
    return schemas.RequestInfo(method=request.method, path=request.url.path)


def activeFare(
    session: Session,
    from_station_id: int,
    to_station_id: int,
    fare_type: FareType = FareType.REGULAR,
) -> Optional[Fare]:
    """
    Fetch the fare currently in force for a direct route.

    A fare is in force when it is active and the current time lies inside
    `[effective_from, effective_to]`, where a null `effective_to` is open ended.
    Fares are directed, so A to B and B to A are looked up independently.

    Args:
        session (Session): Active SQLAlchemy session.
        from_station_id (int): Departure station.
        to_station_id (int): Arrival station.
        fare_type (FareType): Fare category, regular by default.

    Returns:
        Fare | None: The matching fare, None if the route has no such edge.
    """
    current_time = datetime.now(timezone.utc)
    return (
        session.query(Fare)
        .filter(
            Fare.from_station_id == from_station_id,
            Fare.to_station_id == to_station_id,
            Fare.fare_type == fare_type,
            Fare.is_active == True,
            Fare.effective_from <= current_time,
            or_(Fare.effective_to == None, Fare.effective_to >= current_time),
        )
        .first()
    )


def stationBrief(session: Session, *station_ids: int) -> dict:
    """Map station ids to `{id, name, code}` for embedding in fare and trip payloads."""
    stations = session.query(Station).filter(Station.id.in_(station_ids)).all()
    return {
        station.id: {"id": station.id, "name": station.name, "code": station.code}
        for station in stations
    }
