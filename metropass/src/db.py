from secrets import token_hex
from uuid import uuid4
from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    create_engine,
    func,
    text,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from metropass.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
    TRIP_CODE_PREFIX,
)
from metropass.src.enums import (
    FareType,
    PaymentMethod,
    PaymentStatus,
    PlatformType,
    TripStatus,
    UserRole,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


def enumType(enumClass) -> Enum:
    """Store a string enum by value in a VARCHAR column."""
    return Enum(
        enumClass,
        native_enum=False,
        length=16,
        values_callable=lambda members: [member.value for member in members],
    )


def makeTripCode() -> str:
    return f"{TRIP_CODE_PREFIX}-{uuid4().hex[:8].upper()}"


# ----------------------------------- General DB Models ---------------------------------------#
class User(ORMbase):
    """
    Represents a commuter (or an administrator) of the metro system.

    The user row doubles as the ledger for prepaid travel: the balance is
    credited by deposits and debited when a trip is paid from balance.
    Trip statistics are accumulated when a trip is redeemed at the gate.

    Table Constraints:
        - CheckConstraint(balance >= 0):
            The balance can never go negative. All debits are conditional
            updates, this constraint is the last line of enforcement.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the user.

        full_name (String(50)):
            Display name of the user, 2-50 characters long.

        email (String(256)):
            Login identifier. Stored in lowercase. Must be unique.

        phone_number (String(32)):
            Contact number. Digits, spaces, plus, minus and parentheses only.
            Must be unique.

        password (TEXT):
            Argon2 hash of the password. Plaintext is never stored.

        photo (TEXT):
            Optional URL of the profile picture.

        balance (Numeric):
            Prepaid balance available for trips. Defaults to zero, no upper bound.

        total_trips (Integer):
            Number of redeemed trips.

        total_expense (Numeric):
            Sum of the total amount of all redeemed trips.

        role (String(16)):
            Either `user` or `admin`. Admins manage stations, fares and users.

        is_active (Boolean):
            Soft-delete flag. Inactive users cannot log in.

        last_login (DateTime):
            Timestamp of the latest successful login or registration.

        updated_on (DateTime):
            Timestamp automatically updated whenever the user is modified.

        created_on (DateTime):
            Timestamp of when the user registered.
    """

    __tablename__ = "user"
    __table_args__ = (CheckConstraint("balance >= 0", name="user_balance_check"),)

    id = Column(Integer, primary_key=True)
    full_name = Column(String(50), nullable=False)
    email = Column(String(256), nullable=False, unique=True)
    phone_number = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    photo = Column(TEXT)
    # Ledger
    balance = Column(Numeric, nullable=False, default=0)
    total_trips = Column(Integer, nullable=False, default=0)
    total_expense = Column(Numeric, nullable=False, default=0)
    # Access
    role = Column(enumType(UserRole), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class UserToken(ORMbase):
    """
    Represents an authentication token issued to a user at login or registration.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        user_id (Integer):
            Foreign key referencing `user.id`.
            Cascades on delete.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.
            Used as the bearer credential on subsequent requests.

        expires_in (Integer):
            Token lifetime in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        platform_type (Integer):
            Enum value indicating the client platform type.
            Defaults to `PlatformType.OTHER`.

        client_details (TEXT):
            Optional description of the client device or environment.
            Maximum 1024 characters long.

        updated_on (DateTime):
            Timestamp automatically updated whenever the token record is modified.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "user_token"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Device related details
    platform_type = Column(Integer, default=PlatformType.OTHER)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Station(ORMbase):
    """
    Represents a metro station in the station directory.

    Columns:
        id (Integer):
            Primary key.

        name (String(100)):
            Unique human-readable station name.

        code (String(10)):
            Optional short code, stored in uppercase. Unique when present.

        latitude (Float), longitude (Float):
            Optional WGS 84 location. Either both are set or neither is.

        address (String(200)):
            Postal address of the station.

        zone (String(32)):
            Fare or administrative zone the station belongs to.

        facilities (JSON):
            List of amenity tags, see `Facility`.

        description (String(500)):
            Optional free text.

        is_active (Boolean):
            Soft-delete flag. Inactive stations are hidden from listings but
            remain resolvable from historical fares and trips.
    """

    __tablename__ = "station"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    code = Column(String(10), unique=True)
    latitude = Column(Float)
    longitude = Column(Float)
    address = Column(String(200), nullable=False)
    zone = Column(String(32), nullable=False, index=True)
    facilities = Column(JSON, nullable=False, default=list)
    description = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Fare(ORMbase):
    """
    Represents the price of travelling directly from one station to another.

    Fares are directed edges, the reverse direction is a separate record.
    Only direct edges exist, no multi-hop pricing is derived from them.

    Table Constraints:
        - Unique index on (from_station_id, to_station_id, fare_type) over active rows:
            At most one active fare exists for a route and fare type.
            Retired fares stay in the table to keep history resolvable.

    Columns:
        id (Integer):
            Primary key.

        from_station_id (Integer), to_station_id (Integer):
            Foreign keys referencing `station.id`.

        fare_type (String(16)):
            One of `FareType`. Defaults to regular.

        fare (Numeric(10, 2)):
            Price per passenger. Never negative.

        distance (Float):
            Route length in kilometers.

        duration (Integer):
            Travel time in minutes, at least 1.

        effective_from (DateTime), effective_to (DateTime):
            Validity window. A null `effective_to` means open ended.

        is_active (Boolean):
            Soft-delete flag.
    """

    __tablename__ = "fare"
    __table_args__ = (
        Index(
            "fare_active_route_idx",
            "from_station_id",
            "to_station_id",
            "fare_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        CheckConstraint("fare >= 0", name="fare_fare_check"),
    )

    id = Column(Integer, primary_key=True)
    from_station_id = Column(
        Integer, ForeignKey("station.id", ondelete="CASCADE"), nullable=False
    )
    to_station_id = Column(
        Integer, ForeignKey("station.id", ondelete="CASCADE"), nullable=False
    )
    fare_type = Column(enumType(FareType), nullable=False, default=FareType.REGULAR)
    fare = Column(Numeric(10, 2), nullable=False)
    distance = Column(Float, nullable=False)
    duration = Column(Integer, nullable=False)
    effective_from = Column(DateTime(timezone=True), nullable=False, default=func.now())
    effective_to = Column(DateTime(timezone=True))
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Trip(ORMbase):
    """
    Represents one purchased ticket for a journey between two stations.

    The price and the stations are captured at purchase time and are never
    written again. The status moves only forward, see
    `metropass.src.ticketing.TRIP_TRANSITIONS`.

    Columns:
        id (Integer):
            Primary key.

        trip_code (String(16)):
            Unique human-readable code printed on the ticket, `TRIP-XXXXXXXX`.

        user_id (Integer):
            Foreign key referencing the purchasing `user.id`.

        from_station_id (Integer), to_station_id (Integer):
            Foreign keys referencing `station.id`.

        fare (Numeric(10, 2)):
            Price per passenger at purchase time.

        number_of_passengers (Integer):
            Between 1 and 10.

        total_amount (Numeric(10, 2)):
            fare * number_of_passengers.

        status (String(16)):
            One of `TripStatus`. Starts as created.

        payment_method (String(16)), payment_status (String(16)):
            How the trip was paid and whether the payment has settled.

        expires_at (DateTime):
            Fixed at purchase time, 24 hours later by default.

        used_at, journey_start_time, journey_end_time (DateTime):
            Set on redemption and on journey completion.

        notes (String(200)):
            Optional free text.
    """

    __tablename__ = "trip"
    __table_args__ = (
        Index("trip_user_created_idx", "user_id", "created_on"),
        Index("trip_status_expiry_idx", "status", "expires_at"),
    )

    id = Column(Integer, primary_key=True)
    trip_code = Column(String(16), nullable=False, unique=True, default=makeTripCode)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    from_station_id = Column(
        Integer, ForeignKey("station.id", ondelete="CASCADE"), nullable=False
    )
    to_station_id = Column(
        Integer, ForeignKey("station.id", ondelete="CASCADE"), nullable=False
    )
    fare = Column(Numeric(10, 2), nullable=False)
    number_of_passengers = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(enumType(TripStatus), nullable=False, default=TripStatus.CREATED)
    payment_method = Column(
        enumType(PaymentMethod), nullable=False, default=PaymentMethod.BALANCE
    )
    payment_status = Column(
        enumType(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True))
    journey_start_time = Column(DateTime(timezone=True))
    journey_end_time = Column(DateTime(timezone=True))
    notes = Column(String(200))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
