"""
Application configuration and constants for Metro Pass API Server.

This module centralizes environment-based configuration, resource limits,
regular expressions, ticketing rules and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "Metro Pass API Server"
API_VERSION = environ.get("APP_VERSION", "1.0.0")


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@metropass.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "default")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "metropass-server")
OPENOBSERVE_TIMEOUT = float(environ.get("OPENOBSERVE_TIMEOUT", "5"))  # Seconds per request


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_USER_TOKENS = 5  # Maximum tokens per user
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_PHONE_NUMBER = r"^[0-9+\-\s()]+$"
REGEX_PASSWORD = r"^[a-zA-Z0-9-+,.@_$%&*#!^=/?]*$"


# ---------------------------------------------------------------------------
# Ticketing rules
# ---------------------------------------------------------------------------
TRIP_VALIDITY = 24 * 60 * 60  # Trip expiry after purchase (in seconds, 24 hours)
TRIP_CODE_PREFIX = "TRIP"
MIN_PASSENGERS = 1  # Minimum passengers per trip
MAX_PASSENGERS = 10  # Maximum passengers per trip
MIN_DEPOSIT = 1  # Smallest accepted deposit amount


# ---------------------------------------------------------------------------
# Geo constants
# ---------------------------------------------------------------------------
DEFAULT_NEARBY_DISTANCE = 5000  # Search radius for nearby stations (in meters)
GEOD_ELLIPSOID = "WGS84"


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
DEFAULT_PAGE_LIMIT = 20
TRIP_HISTORY_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
