"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the resources of the metro ticketing service.

These URLs are relative to the `/api` mount point of the main application.
"""

# -------------------------------
# Authentication & Tokens
# -------------------------------
URL_AUTH_REGISTER = "/auth/register"
URL_AUTH_LOGIN = "/auth/login"
URL_AUTH_ME = "/auth/me"
URL_AUTH_TOKEN = "/auth/token"

# -------------------------------
# Users & Ledger
# -------------------------------
URL_USER = "/users"
URL_USER_PROFILE = "/users/profile"
URL_USER_DEPOSIT = "/users/deposit"
URL_USER_STATISTICS = "/users/statistics"

# -------------------------------
# Station directory
# -------------------------------
URL_STATION = "/stations"
URL_STATION_NEARBY = "/stations/nearby"
URL_STATION_ZONE = "/stations/zone"

# -------------------------------
# Fare table
# -------------------------------
URL_FARE = "/fares"
URL_FARE_ROUTE = "/fares/route"
URL_FARE_IN_BETWEEN = "/fares/in-between"
URL_FARE_STATION = "/fares/station"

# -------------------------------
# Trips
# -------------------------------
URL_TRIP = "/trips"
URL_TRIP_HISTORY = "/trips/history"
URL_TRIP_UNUSED = "/trips/unused"
URL_TRIP_USE = "/trips/use"

# -------------------------------
# Service
# -------------------------------
URL_HEALTH = "/health"
