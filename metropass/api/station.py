from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import or_

from metropass.api.bearer import bearer_user
from metropass.src.constants import (
    DEFAULT_NEARBY_DISTANCE,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
)
from metropass.src.db import Station, sessionMaker
from metropass.src import exceptions, validators, getters, schemas
from metropass.src.enums import Facility
from metropass.src.loggers import logEvent
from metropass.src.functions import (
    enumStr,
    fuseExceptionResponses,
    geodesicDistance,
    makePaginatedResponse,
    makeResponse,
    serialize,
    updateIfChanged,
)
from metropass.src.urls import URL_STATION, URL_STATION_NEARBY, URL_STATION_ZONE

route_station = APIRouter()


## Output Schema
class StationSchema(schemas.CamelModel):
    id: int
    name: str
    code: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    address: str
    zone: str
    facilities: List[Facility]
    description: Optional[str]
    is_active: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Input Bodies
class CreateBody(schemas.CamelModel):
    name: str = Field(min_length=2, max_length=100)
    code: str | None = Field(default=None, min_length=2, max_length=10)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str = Field(min_length=5, max_length=200)
    zone: str = Field(min_length=1, max_length=32)
    facilities: List[Facility] = Field(
        default_factory=list, description=enumStr(Facility)
    )
    description: str | None = Field(default=None, max_length=500)


class UpdateBody(schemas.CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    code: str | None = Field(default=None, max_length=10)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = Field(default=None, min_length=5, max_length=200)
    zone: str | None = Field(default=None, min_length=1, max_length=32)
    facilities: List[Facility] | None = Field(
        default=None, description=enumStr(Facility)
    )
    description: str | None = Field(default=None, max_length=500)
    is_active: bool | None = None


## Query Parameters
class QueryParams(BaseModel):
    search: str | None = Field(Query(default=None, max_length=100))
    zone: str | None = Field(Query(default=None, max_length=32))
    # Pagination
    page: int = Field(Query(default=1, ge=1))
    limit: int = Field(Query(default=DEFAULT_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT))


class NearbyParams(BaseModel):
    longitude: float | None = Field(Query(default=None, ge=-180, le=180))
    latitude: float | None = Field(Query(default=None, ge=-90, le=90))
    max_distance: int = Field(
        Query(default=DEFAULT_NEARBY_DISTANCE, gt=0, alias="maxDistance")
    )


## Helpers
def checkConflict(session, name: str | None, code: str | None, exclude_id=None):
    """Raise DuplicateEntry naming the field already taken by another station."""
    conditions = []
    if name is not None:
        conditions.append(Station.name == name)
    if code is not None:
        conditions.append(Station.code == code)
    if not conditions:
        return

    query = session.query(Station).filter(or_(*conditions))
    if exclude_id is not None:
        query = query.filter(Station.id != exclude_id)
    existingStation = query.first()
    if existingStation is not None:
        conflictField = "name" if existingStation.name == name else "code"
        raise exceptions.DuplicateEntry(
            f"Station with this {conflictField} already exists"
        )


## API endpoints [Public]
@route_station.get(
    URL_STATION,
    tags=["Station"],
    response_model=schemas.PaginatedEnvelope,
    description="""
    Lists active stations ordered by name.
    Search matches the station name or code (case insensitive).
    The zone filter is an exact match.
    """,
)
async def fetch_stations(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        query = session.query(Station).filter(Station.is_active == True)

        # Filters
        if qParam.search is not None:
            pattern = f"%{qParam.search}%"
            query = query.filter(
                or_(Station.name.ilike(pattern), Station.code.ilike(pattern))
            )
        if qParam.zone is not None:
            query = query.filter(Station.zone == qParam.zone)

        total = query.count()
        stations = (
            query.order_by(Station.name.asc())
            .offset((qParam.page - 1) * qParam.limit)
            .limit(qParam.limit)
            .all()
        )
        return makePaginatedResponse(
            "Stations retrieved successfully",
            [serialize(StationSchema, station) for station in stations],
            qParam.page,
            qParam.limit,
            total,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_station.get(
    URL_STATION_NEARBY,
    tags=["Station"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.MissingParameter("longitude", "latitude")]
    ),
    description="""
    Lists active stations within maxDistance meters of the given point, nearest first.
    Distances are geodesic on the WGS 84 ellipsoid.
    Stations without a location are never returned.
    """,
)
async def fetch_nearby_stations(qParam: NearbyParams = Depends()):
    try:
        session = sessionMaker()
        if qParam.longitude is None or qParam.latitude is None:
            raise exceptions.MissingParameter("longitude", "latitude")
        stations = (
            session.query(Station)
            .filter(
                Station.is_active == True,
                Station.latitude != None,
                Station.longitude != None,
            )
            .all()
        )

        nearby = []
        for station in stations:
            distance = geodesicDistance(
                qParam.longitude,
                qParam.latitude,
                station.longitude,
                station.latitude,
            )
            if distance <= qParam.max_distance:
                nearby.append((distance, station))
        nearby.sort(key=lambda item: item[0])

        return makeResponse(
            "Nearby stations retrieved successfully",
            {
                "stations": [
                    {**serialize(StationSchema, station), "distance": round(distance, 2)}
                    for distance, station in nearby
                ]
            },
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_station.get(
    URL_STATION_ZONE + "/{zone}",
    tags=["Station"],
    response_model=schemas.Envelope,
    description="""
    Lists all active stations of a zone, ordered by name.
    """,
)
async def fetch_zone_stations(zone: str = Path(max_length=32)):
    try:
        session = sessionMaker()
        stations = (
            session.query(Station)
            .filter(Station.zone == zone, Station.is_active == True)
            .order_by(Station.name.asc())
            .all()
        )
        return makeResponse(
            "Stations retrieved successfully",
            {"stations": [serialize(StationSchema, station) for station in stations]},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_station.get(
    URL_STATION + "/{station_id}",
    tags=["Station"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier(Station)]),
    description="""
    Returns a station by id. Deactivated stations are still resolvable.
    """,
)
async def fetch_station(station_id: int = Path(gt=0)):
    try:
        session = sessionMaker()
        station = session.query(Station).filter(Station.id == station_id).first()
        if station is None:
            raise exceptions.InvalidIdentifier(Station)
        return makeResponse(
            "Station retrieved successfully",
            {"station": serialize(StationSchema, station)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_station.post(
    URL_STATION,
    tags=["Station"],
    response_model=schemas.Envelope,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DuplicateEntry("Station with this name already exists"),
            exceptions.MissingParameter("latitude", "longitude"),
        ]
    ),
    description="""
    Creates a new station. Only administrators can create stations.
    The code is stored in uppercase. Name and code must be unique.
    A location is stored only when both latitude and longitude are given.
    """,
)
async def create_station(
    body: CreateBody,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        name = body.name.strip()
        code = body.code.strip().upper() if body.code else None
        validators.coordinates(body.latitude, body.longitude)
        checkConflict(session, name, code)

        station = Station(
            name=name,
            code=code,
            latitude=body.latitude,
            longitude=body.longitude,
            address=body.address.strip(),
            zone=body.zone.strip(),
            facilities=[facility.value for facility in body.facilities],
            description=body.description,
        )
        session.add(station)
        session.commit()
        session.refresh(station)

        stationData = serialize(StationSchema, station)
        logEvent(token, request_info, stationData, admin.role.value)
        return makeResponse("Station created successfully", {"station": stationData})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_station.put(
    URL_STATION + "/{station_id}",
    tags=["Station"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Station),
            exceptions.DuplicateEntry("Station with this code already exists"),
            exceptions.MissingParameter("latitude", "longitude"),
        ]
    ),
    description="""
    Updates a station. Only administrators can update stations.
    Only the fields present in the body are changed.
    Sending a null latitude or longitude removes the location.
    An empty or null code removes the code.
    """,
)
async def update_station(
    body: UpdateBody,
    station_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        station = session.query(Station).filter(Station.id == station_id).first()
        if station is None:
            raise exceptions.InvalidIdentifier(Station)

        fields = body.model_fields_set
        if body.name is not None:
            body.name = body.name.strip()
        code = body.code.strip().upper() if body.code else None
        checkConflict(session, body.name, code, station.id)

        updateIfChanged(
            station,
            body,
            [
                Station.name.key,
                Station.address.key,
                Station.zone.key,
                Station.is_active.key,
            ],
        )
        if "code" in fields and station.code != code:
            station.code = code
        if "description" in fields and station.description != body.description:
            station.description = body.description
        if body.facilities is not None:
            facilities = [facility.value for facility in body.facilities]
            if station.facilities != facilities:
                station.facilities = facilities

        # Location
        latitudeCleared = "latitude" in fields and body.latitude is None
        longitudeCleared = "longitude" in fields and body.longitude is None
        if body.latitude is not None and body.longitude is not None:
            station.latitude = body.latitude
            station.longitude = body.longitude
        elif latitudeCleared or longitudeCleared:
            station.latitude = station.longitude = None
        elif "latitude" in fields or "longitude" in fields:
            validators.coordinates(body.latitude, body.longitude)

        if session.is_modified(station):
            session.commit()
            session.refresh(station)
            logEvent(
                token,
                request_info,
                {"id": station.id, **body.model_dump(mode="json", exclude_unset=True)},
                admin.role.value,
            )
        return makeResponse(
            "Station updated successfully",
            {"station": serialize(StationSchema, station)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_station.delete(
    URL_STATION + "/{station_id}",
    tags=["Station"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Station),
        ]
    ),
    description="""
    Deactivates a station (soft delete). Fares and trips referencing it stay resolvable.
    Only administrators can delete stations.
    """,
)
async def delete_station(
    station_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        station = session.query(Station).filter(Station.id == station_id).first()
        if station is None:
            raise exceptions.InvalidIdentifier(Station)

        station.is_active = False
        session.commit()
        logEvent(token, request_info, {"id": station.id}, admin.role.value)
        return makeResponse("Station deleted successfully")
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
