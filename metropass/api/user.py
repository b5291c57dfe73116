from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func, or_

from metropass.api.bearer import bearer_user
from metropass.src.constants import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    MIN_DEPOSIT,
    REGEX_PHONE_NUMBER,
)
from metropass.src.db import Trip, User, sessionMaker
from metropass.src import exceptions, validators, getters, schemas, ticketing
from metropass.src.enums import DepositMethod, TripStatus, UserRole
from metropass.src.loggers import logEvent
from metropass.src.functions import (
    enumStr,
    fuseExceptionResponses,
    makePaginatedResponse,
    makeResponse,
    serialize,
    updateIfChanged,
)
from metropass.src.urls import (
    URL_USER,
    URL_USER_DEPOSIT,
    URL_USER_PROFILE,
    URL_USER_STATISTICS,
)

route_user = APIRouter()


## Output Schema
class StatisticsSchema(schemas.CamelModel):
    total_trips: int
    used_trips: int
    unused_trips: int
    expired_trips: int
    total_expense: schemas.Amount
    balance: schemas.Amount
    monthly_trips: int
    monthly_expense: schemas.Amount


## Input Bodies
class ProfileBody(schemas.CamelModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=50)
    phone_number: str | None = Field(
        default=None, pattern=REGEX_PHONE_NUMBER, max_length=32
    )
    photo: str | None = Field(default=None, max_length=2048)


class DepositBody(schemas.CamelModel):
    amount: float = Field(ge=MIN_DEPOSIT)
    payment_method: DepositMethod = Field(
        default=DepositMethod.CASH, description=enumStr(DepositMethod)
    )
    transaction_id: str | None = Field(default=None, min_length=1, max_length=128)


class UserUpdateBody(schemas.CamelModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = Field(default=None, max_length=256)
    phone_number: str | None = Field(
        default=None, pattern=REGEX_PHONE_NUMBER, max_length=32
    )
    role: UserRole | None = Field(default=None, description=enumStr(UserRole))
    is_active: bool | None = None
    balance: float | None = Field(default=None, ge=0)


## Query Parameters
class QueryParams(BaseModel):
    search: str | None = Field(Query(default=None, max_length=64))
    role: UserRole | None = Field(Query(default=None, description=enumStr(UserRole)))
    # Pagination
    page: int = Field(Query(default=1, ge=1))
    limit: int = Field(Query(default=DEFAULT_PAGE_LIMIT, gt=0, le=MAX_PAGE_LIMIT))


## API endpoints [Commuter]
@route_user.get(
    URL_USER_PROFILE,
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InactiveAccount()]
    ),
    description="""
    Returns the profile of the requesting user, including balance and trip statistics.
    """,
)
async def fetch_profile(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)
        return makeResponse(
            "Profile retrieved successfully",
            {"user": serialize(schemas.UserSchema, user)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.put(
    URL_USER_PROFILE,
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidInput("Please provide a valid phone number"),
            exceptions.DuplicateEntry("Phone number already exists"),
        ]
    ),
    description="""
    Updates the full name, phone number or photo of the requesting user.
    Only the provided fields are changed.
    The phone number must not belong to another account.
    """,
)
async def update_profile(
    body: ProfileBody,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        if body.phone_number is not None and body.phone_number != user.phone_number:
            existingUser = (
                session.query(User)
                .filter(User.phone_number == body.phone_number, User.id != user.id)
                .first()
            )
            if existingUser is not None:
                raise exceptions.DuplicateEntry("Phone number already exists")

        updateIfChanged(
            user, body, [User.full_name.key, User.phone_number.key, User.photo.key]
        )
        if session.is_modified(user):
            session.commit()
            session.refresh(user)
            logEvent(
                token,
                request_info,
                body.model_dump(exclude_none=True),
                user.role.value,
            )
        return makeResponse(
            "Profile updated successfully",
            {"user": serialize(schemas.UserSchema, user)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.post(
    URL_USER_DEPOSIT,
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidInput("Amount must be at least 1"),
            exceptions.InvalidAmount(),
        ]
    ),
    description="""
    Adds money to the prepaid balance of the requesting user.
    The amount must be at least MIN_DEPOSIT.
    The payment itself is settled outside this service, the transaction id is only echoed and logged.
    """,
)
async def create_deposit(
    body: DepositBody,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        user = ticketing.deposit(session, user, body.amount)

        depositData = {
            "amount": body.amount,
            "paymentMethod": body.payment_method.value,
            "transactionId": body.transaction_id,
            "timestamp": datetime.now(timezone.utc),
        }
        logEvent(token, request_info, depositData, user.role.value)
        return makeResponse(
            "Deposit successful",
            {
                "user": {
                    "id": user.id,
                    "fullName": user.full_name,
                    "balance": float(user.balance),
                },
                "deposit": depositData,
            },
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_USER_STATISTICS,
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Returns trip counters of the requesting user.
    Monthly figures cover trips redeemed since the first day of the current month (UTC).
    """,
)
async def fetch_statistics(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        current_time = datetime.now(timezone.utc)
        month_start = current_time.replace(
            day=1, hour=0, minute=0, second=0, microsecond=0
        )
        trips = session.query(Trip).filter(Trip.user_id == user.id)
        monthly = trips.filter(
            Trip.status == TripStatus.USED, Trip.used_at >= month_start
        )
        monthly_expense = (
            session.query(func.coalesce(func.sum(Trip.total_amount), 0))
            .filter(
                Trip.user_id == user.id,
                Trip.status == TripStatus.USED,
                Trip.used_at >= month_start,
            )
            .scalar()
        )

        statistics = StatisticsSchema(
            total_trips=trips.count(),
            used_trips=trips.filter(Trip.status == TripStatus.USED).count(),
            unused_trips=trips.filter(
                Trip.status == TripStatus.CREATED, Trip.expires_at > current_time
            ).count(),
            expired_trips=trips.filter(Trip.status == TripStatus.EXPIRED).count(),
            total_expense=user.total_expense,
            balance=user.balance,
            monthly_trips=monthly.count(),
            monthly_expense=monthly_expense,
        )
        return makeResponse(
            "Statistics retrieved successfully",
            {"statistics": statistics.model_dump(mode="json", by_alias=True)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_user.get(
    URL_USER,
    tags=["User"],
    response_model=schemas.PaginatedEnvelope,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Lists all accounts, newest first.
    Search matches the full name, email or phone number (case insensitive).
    Only administrators can list accounts.
    """,
)
async def fetch_users(qParam: QueryParams = Depends(), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        validators.adminRole(validators.activeUser(token, session))

        query = session.query(User)
        # Filters
        if qParam.search is not None:
            pattern = f"%{qParam.search}%"
            query = query.filter(
                or_(
                    User.full_name.ilike(pattern),
                    User.email.ilike(pattern),
                    User.phone_number.ilike(pattern),
                )
            )
        if qParam.role is not None:
            query = query.filter(User.role == qParam.role)

        total = query.count()
        users = (
            query.order_by(User.created_on.desc(), User.id.desc())
            .offset((qParam.page - 1) * qParam.limit)
            .limit(qParam.limit)
            .all()
        )
        return makePaginatedResponse(
            "Users retrieved successfully",
            [serialize(schemas.UserSchema, user) for user in users],
            qParam.page,
            qParam.limit,
            total,
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_USER + "/{user_id}",
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(User),
        ]
    ),
    description="""
    Returns any account by id. Only administrators can read other accounts.
    """,
)
async def fetch_user(user_id: int = Path(gt=0), bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        validators.adminRole(validators.activeUser(token, session))

        user = session.query(User).filter(User.id == user_id).first()
        if user is None:
            raise exceptions.InvalidIdentifier(User)
        return makeResponse(
            "User retrieved successfully",
            {"user": serialize(schemas.UserSchema, user)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.put(
    URL_USER + "/{user_id}",
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(User),
            exceptions.DuplicateEntry("Email or phone number already exists"),
        ]
    ),
    description="""
    Updates any account. Only administrators can update accounts.
    Email and phone number must stay unique across accounts.
    Setting the balance directly is an administrative correction, it can not be negative.
    """,
)
async def update_user(
    body: UserUpdateBody,
    user_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        user = session.query(User).filter(User.id == user_id).first()
        if user is None:
            raise exceptions.InvalidIdentifier(User)

        if body.email is not None:
            body.email = body.email.lower()
        if body.email is not None or body.phone_number is not None:
            existingUser = (
                session.query(User)
                .filter(
                    User.id != user.id,
                    or_(
                        User.email == (body.email or user.email),
                        User.phone_number == (body.phone_number or user.phone_number),
                    ),
                )
                .first()
            )
            if existingUser is not None:
                raise exceptions.DuplicateEntry("Email or phone number already exists")

        updateIfChanged(
            user,
            body,
            [
                User.full_name.key,
                User.email.key,
                User.phone_number.key,
                User.role.key,
                User.is_active.key,
            ],
        )
        if body.balance is not None and float(user.balance) != body.balance:
            user.balance = body.balance
        if session.is_modified(user):
            session.commit()
            session.refresh(user)
            logEvent(
                token,
                request_info,
                {"user_id": user.id, **body.model_dump(mode="json", exclude_none=True)},
                admin.role.value,
            )
        return makeResponse(
            "User updated successfully",
            {"user": serialize(schemas.UserSchema, user)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.delete(
    URL_USER + "/{user_id}",
    tags=["User"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(User),
        ]
    ),
    description="""
    Deactivates an account (soft delete). Deactivated users can no longer sign in or use their tokens.
    Only administrators can delete accounts.
    """,
)
async def delete_user(
    user_id: int = Path(gt=0),
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        admin = validators.activeUser(token, session)
        validators.adminRole(admin)

        user = session.query(User).filter(User.id == user_id).first()
        if user is None:
            raise exceptions.InvalidIdentifier(User)

        user.is_active = False
        session.commit()
        logEvent(token, request_info, {"user_id": user.id}, admin.role.value)
        return makeResponse("User deleted successfully")
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
