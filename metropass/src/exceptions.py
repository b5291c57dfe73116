"""
Centralized exception handling for Metro Pass API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException
from sqlalchemy.exc import DataError, IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.

    PostgreSQL reports the offending key in `diag.message_detail`, other
    drivers only carry the raw message.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage: str = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def formatDataError(e: DataError) -> str:
    """
    Reduce a database data error (numeric overflow, bad value for a column
    type) to the first line of the driver message.
    """
    lines = str(e.orig).strip().splitlines()
    return lines[0] if lines else "Invalid value"


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from the DB and Pydantic into
    corresponding APIException subclasses.
    """
    if isinstance(e, IntegrityError):
        sqlstate = getattr(getattr(e.orig, "diag", None), "sqlstate", None)
        if sqlstate == FOREIGN_KEY_VIOLATION:
            raise UnknownReference(formatIntegrityError(e))
        if sqlstate == UNIQUE_VIOLATION or "UNIQUE constraint" in str(e.orig):
            raise DuplicateEntry(formatIntegrityError(e))
    if isinstance(e, DataError):
        raise InvalidInput(formatDataError(e))
    if isinstance(e, ValidationError):
        raise InvalidInput(detail=e.errors()[0]["msg"])
    if isinstance(e, APIException):
        raise e

    logException(e)
    raise e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class InvalidInput(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "InvalidInput"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class DuplicateEntry(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "DuplicateEntry"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UnknownReference(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownReference"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class MissingParameter(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "MissingParameter"}

    def __init__(self, *parameters: str):
        detail = f"{' and '.join(parameters)} are required"
        super().__init__(detail=detail)


class NonEditableField(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "NonEditableField"}

    def __init__(self, fields: list, editable: list):
        detail = (
            f"Cannot edit the following fields: {', '.join(fields)}. "
            f"Only {', '.join(editable)} can be updated."
        )
        super().__init__(detail=detail)


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid credentials"
    headers = {"X-Error": "InvalidCredentials"}


class InactiveAccount(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Account is deactivated"
    headers = {"X-Error": "InactiveAccount"}


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class NoPermission(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This user has no permission to perform this action"
    headers = {"X-Error": "NoPermission"}


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "InvalidIdentifier"}

    def __init__(self, orm_class=None):
        name = orm_class.__name__ if orm_class is not None else "Resource"
        super().__init__(detail=f"{name} not found")


class FareNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Fare not found for this route"
    headers = {"X-Error": "FareNotFound"}


class InvalidTripCode(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid or already used trip code"
    headers = {"X-Error": "InvalidTripCode"}


class TripExpired(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Trip has expired"
    headers = {"X-Error": "TripExpired"}


class InvalidStateTransition(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class InvalidAmount(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Amount must be greater than zero"
    headers = {"X-Error": "InvalidAmount"}


class InsufficientFunds(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Insufficient balance"
    headers = {"X-Error": "InsufficientFunds"}
