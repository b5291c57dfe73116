from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field

from metropass.api.bearer import bearer_user
from metropass.src.constants import (
    MAX_PAGE_LIMIT,
    MAX_PASSENGERS,
    MIN_PASSENGERS,
    TRIP_HISTORY_PAGE_LIMIT,
)
from metropass.src.db import Trip, User, sessionMaker
from metropass.src import exceptions, validators, getters, schemas, ticketing
from metropass.src.enums import PaymentMethod, PaymentStatus, TripStatus
from metropass.src.loggers import logEvent
from metropass.src.functions import (
    enumStr,
    fuseExceptionResponses,
    makePaginatedResponse,
    makeResponse,
    serialize,
)
from metropass.src.urls import URL_TRIP, URL_TRIP_HISTORY, URL_TRIP_UNUSED, URL_TRIP_USE

route_trip = APIRouter()


## Output Schema
class TripSchema(schemas.CamelModel):
    id: int
    trip_code: str
    user_id: int
    from_station_id: int
    to_station_id: int
    fare: schemas.Amount
    number_of_passengers: int
    total_amount: schemas.Amount
    status: TripStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    expires_at: datetime
    used_at: Optional[datetime]
    journey_start_time: Optional[datetime]
    journey_end_time: Optional[datetime]
    notes: Optional[str]
    created_on: datetime


## Input Bodies
class CreateBody(schemas.CamelModel):
    from_station: int = Field(gt=0)
    to_station: int = Field(gt=0)
    number_of_passengers: int = Field(ge=MIN_PASSENGERS, le=MAX_PASSENGERS)
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.BALANCE, description=enumStr(PaymentMethod)
    )
    notes: str | None = Field(default=None, max_length=200)


## Query Parameters
class HistoryParams(BaseModel):
    page: int = Field(Query(default=1, ge=1))
    limit: int = Field(
        Query(default=TRIP_HISTORY_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT)
    )


## Helpers
def tripData(session, trips: List[Trip]) -> List[dict]:
    """Serialize trips with the name and code of both stations embedded."""
    stationIds = set()
    for trip in trips:
        stationIds.update((trip.from_station_id, trip.to_station_id))
    stations = getters.stationBrief(session, *stationIds) if stationIds else {}

    data = []
    for trip in trips:
        item = serialize(TripSchema, trip)
        item["fromStation"] = stations.get(trip.from_station_id)
        item["toStation"] = stations.get(trip.to_station_id)
        data.append(item)
    return data


## API endpoints [Commuter]
@route_trip.post(
    URL_TRIP,
    tags=["Trip"],
    response_model=schemas.Envelope,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidInput("Number of passengers must be between 1 and 10"),
            exceptions.InsufficientFunds(),
            exceptions.FareNotFound(),
        ]
    ),
    description="""
    Buys a ticket for a direct journey at the regular fare currently in force.
    The price per passenger is captured at purchase time.
    Balance payments are debited immediately and atomically with the ticket creation.
    Cash and card payments are recorded as pending.
    The ticket expires TRIP_VALIDITY seconds after purchase if it is not used.
    """,
)
async def create_trip(
    body: CreateBody,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        trip = ticketing.issueTrip(
            session,
            user,
            body.from_station,
            body.to_station,
            body.number_of_passengers,
            body.payment_method,
            body.notes,
        )

        data = tripData(session, [trip])[0]
        logEvent(token, request_info, data, user.role.value)
        return makeResponse("Trip created successfully", {"trip": data})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.get(
    URL_TRIP_HISTORY,
    tags=["Trip"],
    response_model=schemas.PaginatedEnvelope,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists every ticket of the requesting user, newest first.
    """,
)
async def fetch_history(qParam: HistoryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        query = session.query(Trip).filter(Trip.user_id == user.id)
        total = query.count()
        trips = (
            query.order_by(Trip.created_on.desc(), Trip.id.desc())
            .offset((qParam.page - 1) * qParam.limit)
            .limit(qParam.limit)
            .all()
        )
        return makePaginatedResponse(
            "Trip history retrieved successfully",
            tripData(session, trips),
            qParam.page,
            qParam.limit,
            total,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.get(
    URL_TRIP_UNUSED,
    tags=["Trip"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the tickets of the requesting user that can still be used, soonest to expire first.
    """,
)
async def fetch_unused_trips(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        trips = (
            session.query(Trip)
            .filter(
                Trip.user_id == user.id,
                Trip.status == TripStatus.CREATED,
                Trip.expires_at > datetime.now(timezone.utc),
            )
            .order_by(Trip.expires_at.asc(), Trip.id.asc())
            .all()
        )
        return makeResponse(
            "Unused trips retrieved successfully", {"trips": tripData(session, trips)}
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Gate]
@route_trip.post(
    URL_TRIP_USE + "/{trip_code}",
    tags=["Trip"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.TripExpired(), exceptions.InvalidTripCode()]
    ),
    description="""
    Redeems a ticket at the entry gate. No authentication is required, the trip code is the credential.
    A ticket can be used exactly once, before it expires.
    On success the journey starts and the trip statistics of the owner are updated.
    A lapsed ticket is marked as expired and refused.
    """,
)
async def use_trip(
    trip_code: str,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        trip = ticketing.redeemTrip(session, trip_code)

        data = tripData(session, [trip])[0]
        logEvent(None, request_info, data)
        return makeResponse("Trip used successfully", {"trip": data})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.post(
    URL_TRIP + "/{trip_id}/complete",
    tags=["Trip"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Trip),
            exceptions.InvalidStateTransition(
                "Journey can only be completed once for a used trip"
            ),
        ]
    ),
    description="""
    Records the end of the journey for a used ticket of the requesting user.
    The journey of a ticket can be completed only once.
    """,
)
async def complete_trip(
    trip_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        trip = ticketing.completeJourney(session, trip_id, user)

        data = {
            "id": trip.id,
            "tripCode": trip.trip_code,
            "status": trip.status.value,
            "journeyStartTime": trip.journey_start_time,
            "journeyEndTime": trip.journey_end_time,
        }
        logEvent(token, request_info, data, user.role.value)
        return makeResponse("Journey completed successfully", {"trip": data})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.get(
    URL_TRIP + "/{trip_id}",
    tags=["Trip"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(Trip),
        ]
    ),
    description="""
    Returns a ticket with its stations and owner.
    Users can read their own tickets, administrators can read any ticket.
    """,
)
async def fetch_trip(trip_id: int = Path(gt=0), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        trip = session.query(Trip).filter(Trip.id == trip_id).first()
        if trip is None:
            raise exceptions.InvalidIdentifier(Trip)
        validators.ownerOrAdmin(user, trip.user_id)

        owner = session.query(User).filter(User.id == trip.user_id).first()
        data = tripData(session, [trip])[0]
        data["user"] = {
            "id": owner.id,
            "fullName": owner.full_name,
            "phoneNumber": owner.phone_number,
        }
        return makeResponse("Trip retrieved successfully", {"trip": data})
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
