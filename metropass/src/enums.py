from enum import Enum, IntEnum


class PlatformType(IntEnum):
    OTHER = 1
    WEB = 2
    NATIVE = 3
    SERVER = 4


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class Facility(str, Enum):
    PARKING = "parking"
    ELEVATOR = "elevator"
    ESCALATOR = "escalator"
    WHEELCHAIR = "wheelchair"
    RESTROOM = "restroom"
    FOOD = "food"
    ATM = "atm"
    WIFI = "wifi"


class FareType(str, Enum):
    REGULAR = "regular"
    PEAK = "peak"
    OFF_PEAK = "off-peak"
    STUDENT = "student"
    SENIOR = "senior"


class TripStatus(str, Enum):
    CREATED = "created"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    BALANCE = "balance"
    CASH = "cash"
    CARD = "card"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DepositMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE_BANKING = "mobile_banking"


class FareDirection(str, Enum):
    FROM = "from"
    TO = "to"
    BOTH = "both"
