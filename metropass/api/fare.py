from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import or_

from metropass.api.bearer import bearer_user
from metropass.src.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from metropass.src.db import Fare, Station, sessionMaker
from metropass.src import exceptions, validators, getters, schemas
from metropass.src.enums import FareDirection, FareType
from metropass.src.loggers import logEvent
from metropass.src.functions import (
    enumStr,
    fuseExceptionResponses,
    makePaginatedResponse,
    makeResponse,
    serialize,
    toUTC,
    updateIfChanged,
)
from metropass.src.urls import (
    URL_FARE,
    URL_FARE_IN_BETWEEN,
    URL_FARE_ROUTE,
    URL_FARE_STATION,
)

route_fare = APIRouter()

EDITABLE_FIELDS = ["fare", "distance", "duration"]


## Output Schema
class FareSchema(schemas.CamelModel):
    id: int
    from_station_id: int
    to_station_id: int
    fare_type: FareType
    fare: schemas.Amount
    distance: float
    duration: int
    effective_from: datetime
    effective_to: Optional[datetime]
    is_active: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Input Bodies
class CreateBody(schemas.CamelModel):
    from_station: int = Field(gt=0)
    to_station: int = Field(gt=0)
    fare: float = Field(ge=0)
    distance: float = Field(ge=0)
    duration: int = Field(ge=1)
    fare_type: FareType = Field(
        default=FareType.REGULAR, description=enumStr(FareType)
    )
    effective_from: datetime | None = None
    effective_to: datetime | None = None


class UpdateBody(schemas.CamelModel):
    model_config = ConfigDict(extra="allow")

    fare: float | None = Field(default=None, ge=0)
    distance: float | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=1)


## Query Parameters
class QueryParams(BaseModel):
    from_station: int | None = Field(Query(default=None, alias="fromStation"))
    to_station: int | None = Field(Query(default=None, alias="toStation"))
    fare_type: FareType | None = Field(
        Query(default=None, alias="fareType", description=enumStr(FareType))
    )
    # Pagination
    page: int = Field(Query(default=1, ge=1))
    limit: int = Field(Query(default=DEFAULT_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT))


class RouteParams(BaseModel):
    from_station: int | None = Field(Query(default=None, alias="fromStation"))
    to_station: int | None = Field(Query(default=None, alias="toStation"))
    fare_type: FareType = Field(
        Query(
            default=FareType.REGULAR, alias="fareType", description=enumStr(FareType)
        )
    )


class InBetweenParams(BaseModel):
    from_station_id: int | None = Field(Query(default=None, alias="fromStationId"))
    to_station_id: int | None = Field(Query(default=None, alias="toStationId"))
    fare_type: FareType = Field(
        Query(
            default=FareType.REGULAR, alias="fareType", description=enumStr(FareType)
        )
    )


## Helpers
def fareData(session, fares: List[Fare]) -> List[dict]:
    """Serialize fares with the name and code of both stations embedded."""
    stationIds = set()
    for fare in fares:
        stationIds.update((fare.from_station_id, fare.to_station_id))
    stations = getters.stationBrief(session, *stationIds) if stationIds else {}

    data = []
    for fare in fares:
        item = serialize(FareSchema, fare)
        item["fromStation"] = stations.get(fare.from_station_id)
        item["toStation"] = stations.get(fare.to_station_id)
        data.append(item)
    return data


## API endpoints [Public]
@route_fare.get(
    URL_FARE,
    tags=["Fare"],
    response_model=schemas.PaginatedEnvelope,
    description="""
    Lists active fares, newest first.
    Can be filtered by departure station, arrival station and fare type.
    """,
)
async def fetch_fares(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        query = session.query(Fare).filter(Fare.is_active == True)

        # Filters
        if qParam.from_station is not None:
            query = query.filter(Fare.from_station_id == qParam.from_station)
        if qParam.to_station is not None:
            query = query.filter(Fare.to_station_id == qParam.to_station)
        if qParam.fare_type is not None:
            query = query.filter(Fare.fare_type == qParam.fare_type)

        total = query.count()
        fares = (
            query.order_by(Fare.created_on.desc(), Fare.id.desc())
            .offset((qParam.page - 1) * qParam.limit)
            .limit(qParam.limit)
            .all()
        )
        return makePaginatedResponse(
            "Fares retrieved successfully",
            fareData(session, fares),
            qParam.page,
            qParam.limit,
            total,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.get(
    URL_FARE_ROUTE,
    tags=["Fare"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.MissingParameter("fromStation", "toStation"), exceptions.FareNotFound()]
    ),
    description="""
    Returns the fare currently in force for a direct route.
    The regular fare is returned unless another fareType is requested.
    """,
)
async def fetch_route_fare(qParam: RouteParams = Depends()):
    try:
        session = sessionMaker()
        if qParam.from_station is None or qParam.to_station is None:
            raise exceptions.MissingParameter("fromStation", "toStation")

        fare = getters.activeFare(
            session, qParam.from_station, qParam.to_station, qParam.fare_type
        )
        if fare is None:
            raise exceptions.FareNotFound()
        return makeResponse(
            "Fare retrieved successfully", {"fare": fareData(session, [fare])[0]}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.get(
    URL_FARE_IN_BETWEEN,
    tags=["Fare"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.MissingParameter("fromStationId", "toStationId"),
            exceptions.UnknownReference('From station "1" not found'),
            exceptions.FareNotFound(),
        ]
    ),
    description="""
    Returns the fare in force between two stations, resolving both stations first.
    A missing station is reported by name of the side that was not found.
    """,
)
async def fetch_in_between_fare(qParam: InBetweenParams = Depends()):
    try:
        session = sessionMaker()
        if qParam.from_station_id is None or qParam.to_station_id is None:
            raise exceptions.MissingParameter("fromStationId", "toStationId")

        fromStation = (
            session.query(Station).filter(Station.id == qParam.from_station_id).first()
        )
        if fromStation is None:
            raise exceptions.UnknownReference(
                f'From station "{qParam.from_station_id}" not found'
            )
        toStation = (
            session.query(Station).filter(Station.id == qParam.to_station_id).first()
        )
        if toStation is None:
            raise exceptions.UnknownReference(
                f'To station "{qParam.to_station_id}" not found'
            )

        fare = getters.activeFare(
            session, fromStation.id, toStation.id, qParam.fare_type
        )
        if fare is None:
            raise exceptions.FareNotFound(
                detail=f"No fare found for route: {fromStation.name} to {toStation.name}"
            )
        return makeResponse(
            "Fare retrieved successfully", {"fare": fareData(session, [fare])[0]}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.get(
    URL_FARE_STATION + "/{station_id}",
    tags=["Fare"],
    response_model=schemas.Envelope,
    description="""
    Lists the active fares leaving (from), reaching (to) or touching (both) a station, cheapest first.
    """,
)
async def fetch_station_fares(
    station_id: int = Path(gt=0),
    direction: FareDirection = Query(
        default=FareDirection.BOTH, description=enumStr(FareDirection)
    ),
):
    try:
        session = sessionMaker()
        query = session.query(Fare).filter(Fare.is_active == True)
        if direction == FareDirection.FROM:
            query = query.filter(Fare.from_station_id == station_id)
        elif direction == FareDirection.TO:
            query = query.filter(Fare.to_station_id == station_id)
        else:
            query = query.filter(
                or_(Fare.from_station_id == station_id, Fare.to_station_id == station_id)
            )

        fares = query.order_by(Fare.fare.asc(), Fare.id.asc()).all()
        return makeResponse(
            "Fares retrieved successfully", {"fares": fareData(session, fares)}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.get(
    URL_FARE + "/{fare_id}",
    tags=["Fare"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier(Fare)]),
    description="""
    Returns a fare by id, including retired fares.
    """,
)
async def fetch_fare(fare_id: int = Path(gt=0)):
    try:
        session = sessionMaker()
        fare = session.query(Fare).filter(Fare.id == fare_id).first()
        if fare is None:
            raise exceptions.InvalidIdentifier(Fare)
        return makeResponse(
            "Fare retrieved successfully", {"fare": fareData(session, [fare])[0]}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_fare.post(
    URL_FARE,
    tags=["Fare"],
    response_model=schemas.Envelope,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Station),
            exceptions.InvalidInput("From and to stations must be different"),
            exceptions.DuplicateEntry("Fare already exists for this route and type"),
        ]
    ),
    description="""
    Creates a directed fare between two existing stations. Only administrators can create fares.
    At most one active fare may exist per route and fare type.
    The reverse direction is a separate fare.
    effective_from defaults to now, a missing effective_to means open ended.
    """,
)
async def create_fare(
    body: CreateBody,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        if body.from_station == body.to_station:
            raise exceptions.InvalidInput("From and to stations must be different")
        stationCount = (
            session.query(Station)
            .filter(Station.id.in_([body.from_station, body.to_station]))
            .count()
        )
        if stationCount != 2:
            raise exceptions.InvalidIdentifier(Station)

        effective_from = toUTC(body.effective_from) or datetime.now(timezone.utc)
        effective_to = toUTC(body.effective_to)
        if effective_to is not None and effective_to <= effective_from:
            raise exceptions.InvalidInput("Effective to must be after effective from")

        existingFare = (
            session.query(Fare)
            .filter(
                Fare.from_station_id == body.from_station,
                Fare.to_station_id == body.to_station,
                Fare.fare_type == body.fare_type,
                Fare.is_active == True,
            )
            .first()
        )
        if existingFare is not None:
            raise exceptions.DuplicateEntry(
                "Fare already exists for this route and type"
            )

        fare = Fare(
            from_station_id=body.from_station,
            to_station_id=body.to_station,
            fare_type=body.fare_type,
            fare=body.fare,
            distance=body.distance,
            duration=body.duration,
            effective_from=effective_from,
            effective_to=effective_to,
        )
        session.add(fare)
        session.commit()
        session.refresh(fare)

        data = fareData(session, [fare])[0]
        logEvent(token, request_info, data, admin.role.value)
        return makeResponse("Fare created successfully", {"fare": data})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.put(
    URL_FARE + "/{fare_id}",
    tags=["Fare"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.NonEditableField(["fareType"], EDITABLE_FIELDS),
            exceptions.InvalidIdentifier(Fare),
        ]
    ),
    description="""
    Updates the price, distance or duration of a fare. Only administrators can update fares.
    Any other field in the body is rejected, the route and the fare type of a fare never change.
    """,
)
async def update_fare(
    body: UpdateBody,
    fare_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        if body.model_extra:
            raise exceptions.NonEditableField(list(body.model_extra), EDITABLE_FIELDS)

        fare = session.query(Fare).filter(Fare.id == fare_id).first()
        if fare is None:
            raise exceptions.InvalidIdentifier(Fare)

        updateIfChanged(fare, body, [Fare.distance.key, Fare.duration.key])
        if body.fare is not None and float(fare.fare) != body.fare:
            fare.fare = body.fare
        if session.is_modified(fare):
            session.commit()
            session.refresh(fare)
            logEvent(
                token,
                request_info,
                {"id": fare.id, **body.model_dump(exclude_none=True)},
                admin.role.value,
            )
        return makeResponse(
            "Fare updated successfully", {"fare": fareData(session, [fare])[0]}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_fare.delete(
    URL_FARE + "/{fare_id}",
    tags=["Fare"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Fare),
        ]
    ),
    description="""
    Retires a fare (soft delete). Trips already sold keep their captured price.
    Only administrators can delete fares.
    """,
)
async def delete_fare(
    fare_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        fare = session.query(Fare).filter(Fare.id == fare_id).first()
        if fare is None:
            raise exceptions.InvalidIdentifier(Fare)

        fare.is_active = False
        session.commit()
        logEvent(token, request_info, {"id": fare.id}, admin.role.value)
        return makeResponse("Fare deleted successfully")
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
