"""
Trip lifecycle and balance ledger for Metro Pass API.

Every balance or status mutation is one conditional UPDATE whose affected
row count decides success. The precondition lives in the WHERE clause, so two
requests racing on the same row can never both pass it. Dependent inserts
share the transaction of the update and are committed together.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm.session import Session

from metropass.src import exceptions
from metropass.src.constants import MAX_PASSENGERS, MIN_PASSENGERS, TRIP_VALIDITY
from metropass.src.db import Trip, User
from metropass.src.enums import FareType, PaymentMethod, PaymentStatus, TripStatus
from metropass.src.functions import isValidTransition
from metropass.src.getters import activeFare

TRIP_TRANSITIONS = {
    TripStatus.CREATED: [TripStatus.USED, TripStatus.EXPIRED, TripStatus.CANCELLED],
    TripStatus.USED: [],
    TripStatus.EXPIRED: [],
    TripStatus.CANCELLED: [],
}


def sourceStates(target: TripStatus) -> list[TripStatus]:
    """States from which a trip may move to `target`."""
    return [
        state
        for state in TRIP_TRANSITIONS
        if isValidTransition(TRIP_TRANSITIONS, state, target)
    ]


# ---------------------------------------------------------------------------
# Balance ledger
# ---------------------------------------------------------------------------
def deposit(session: Session, user: User, amount: Decimal) -> User:
    """
    Credit the balance of a user.

    Args:
        session (Session): Active SQLAlchemy session.
        user (User): The account to credit.
        amount (Decimal): Amount to add, strictly positive.

    Returns:
        User: The refreshed user, carrying the new balance.

    Raises:
        exceptions.InvalidAmount: If `amount` is zero or negative.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise exceptions.InvalidAmount()

    session.query(User).filter(User.id == user.id).update(
        {User.balance: User.balance + amount}, synchronize_session=False
    )
    session.commit()
    session.refresh(user)
    return user


def debit(session: Session, user: User, amount: Decimal) -> None:
    """
    Take `amount` from the balance of a user without committing.

    The balance check and the subtraction are the same statement, a stale
    balance read earlier in the request can not let an over-debit through.
    The caller commits, together with whatever the debit pays for.

    Raises:
        exceptions.InvalidAmount: If `amount` is zero or negative.
        exceptions.InsufficientFunds: If the balance is lower than `amount`.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise exceptions.InvalidAmount()

    updated = (
        session.query(User)
        .filter(User.id == user.id, User.balance >= amount)
        .update({User.balance: User.balance - amount}, synchronize_session=False)
    )
    if updated == 0:
        session.rollback()
        raise exceptions.InsufficientFunds()


# ---------------------------------------------------------------------------
# Trip lifecycle
# ---------------------------------------------------------------------------
def issueTrip(
    session: Session,
    user: User,
    from_station_id: int,
    to_station_id: int,
    number_of_passengers: int,
    payment_method: PaymentMethod = PaymentMethod.BALANCE,
    notes: Optional[str] = None,
) -> Trip:
    """
    Sell a ticket for a direct journey at the regular fare in force.

    Args:
        session (Session): Active SQLAlchemy session.
        user (User): The purchasing user.
        from_station_id (int): Departure station.
        to_station_id (int): Arrival station.
        number_of_passengers (int): Between `MIN_PASSENGERS` and `MAX_PASSENGERS`.
        payment_method (PaymentMethod): Balance payments are debited at once
            and settle as completed. Cash and card stay pending.
        notes (str | None): Optional free text stored with the trip.

    Returns:
        Trip: The committed trip in the created state.

    Raises:
        exceptions.InvalidInput: If the passenger count is out of range.
        exceptions.FareNotFound: If no regular fare is in force for the route.
        exceptions.InsufficientFunds: If a balance payment can not be covered.
    """
    if not MIN_PASSENGERS <= number_of_passengers <= MAX_PASSENGERS:
        raise exceptions.InvalidInput(
            f"Number of passengers must be between {MIN_PASSENGERS} and {MAX_PASSENGERS}"
        )

    fare = activeFare(session, from_station_id, to_station_id, FareType.REGULAR)
    if fare is None:
        raise exceptions.FareNotFound()

    unit_price = Decimal(str(fare.fare))
    total_amount = unit_price * number_of_passengers

    if payment_method == PaymentMethod.BALANCE:
        debit(session, user, total_amount)
        payment_status = PaymentStatus.COMPLETED
    else:
        payment_status = PaymentStatus.PENDING

    trip = Trip(
        user_id=user.id,
        from_station_id=from_station_id,
        to_station_id=to_station_id,
        fare=unit_price,
        number_of_passengers=number_of_passengers,
        total_amount=total_amount,
        status=TripStatus.CREATED,
        payment_method=payment_method,
        payment_status=payment_status,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=TRIP_VALIDITY),
        notes=notes,
    )
    session.add(trip)
    session.commit()
    session.refresh(trip)
    session.refresh(user)
    return trip


def redeemTrip(session: Session, trip_code: str) -> Trip:
    """
    Mark a ticket as used at the entry gate and start the journey.

    The owner's `total_trips` and `total_expense` are incremented in the same
    transaction, so a code redeemed by two gates at once is counted once.

    A lapsed ticket found in the created state is moved to expired and the
    change is kept even though the redemption fails.

    Raises:
        exceptions.TripExpired: If the ticket has lapsed.
        exceptions.InvalidTripCode: If the code is unknown, already used or cancelled.
    """
    current_time = datetime.now(timezone.utc)
    updated = (
        session.query(Trip)
        .filter(
            Trip.trip_code == trip_code,
            Trip.status.in_(sourceStates(TripStatus.USED)),
            Trip.expires_at > current_time,
        )
        .update(
            {
                Trip.status: TripStatus.USED,
                Trip.used_at: current_time,
                Trip.journey_start_time: current_time,
            },
            synchronize_session=False,
        )
    )

    if updated == 0:
        session.rollback()
        expired = (
            session.query(Trip)
            .filter(
                Trip.trip_code == trip_code,
                Trip.status.in_(sourceStates(TripStatus.EXPIRED)),
                Trip.expires_at <= current_time,
            )
            .update({Trip.status: TripStatus.EXPIRED}, synchronize_session=False)
        )
        session.commit()
        if expired:
            raise exceptions.TripExpired()
        status = (
            session.query(Trip.status).filter(Trip.trip_code == trip_code).scalar()
        )
        if status == TripStatus.EXPIRED:
            raise exceptions.TripExpired()
        raise exceptions.InvalidTripCode()

    trip = session.query(Trip).filter(Trip.trip_code == trip_code).first()
    session.query(User).filter(User.id == trip.user_id).update(
        {
            User.total_trips: User.total_trips + 1,
            User.total_expense: User.total_expense + trip.total_amount,
        },
        synchronize_session=False,
    )
    session.commit()
    session.refresh(trip)
    return trip


def completeJourney(session: Session, trip_id: int, user: User) -> Trip:
    """
    Record the exit of the passenger for a used ticket.

    The status stays used, only `journey_end_time` is set, and only once.

    Raises:
        exceptions.InvalidIdentifier: If the trip does not exist.
        exceptions.NoPermission: If the trip belongs to another user.
        exceptions.InvalidStateTransition: If the trip is not in the used state
            or the journey was already completed.
    """
    trip = session.query(Trip).filter(Trip.id == trip_id).first()
    if trip is None:
        raise exceptions.InvalidIdentifier(Trip)
    if trip.user_id != user.id:
        raise exceptions.NoPermission()

    updated = (
        session.query(Trip)
        .filter(
            Trip.id == trip_id,
            Trip.status == TripStatus.USED,
            Trip.journey_end_time == None,
        )
        .update(
            {Trip.journey_end_time: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    if updated == 0:
        session.rollback()
        raise exceptions.InvalidStateTransition(
            "Journey can only be completed once for a used trip"
        )

    session.commit()
    session.refresh(trip)
    return trip


def expireLapsedTrips(session: Session) -> int:
    """
    Move every created trip past its `expires_at` to the expired state.

    Returns:
        int: Number of trips expired.
    """
    current_time = datetime.now(timezone.utc)
    expired = (
        session.query(Trip)
        .filter(
            Trip.status.in_(sourceStates(TripStatus.EXPIRED)),
            Trip.expires_at <= current_time,
        )
        .update({Trip.status: TripStatus.EXPIRED}, synchronize_session=False)
    )
    session.commit()
    return expired
