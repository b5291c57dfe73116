from datetime import datetime, timezone
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from metropass.api import auth, user, station, fare, trip
from metropass.src import exceptions, schemas
from metropass.src.constants import API_TITLE, API_VERSION
from metropass.src.functions import makeResponse
from metropass.src.urls import URL_HEALTH


# ------------------------------------------------------
# Create the FastAPI app serving the metro domain
# ------------------------------------------------------
app_metro = FastAPI(title=API_TITLE, version=API_VERSION)


# ------------------------------------------------------
# Error envelope
# ------------------------------------------------------
def errorResponse(status_code: int, message: str, headers=None) -> JSONResponse:
    content = schemas.ErrorResponse(
        message=message, timestamp=datetime.now(timezone.utc)
    )
    return JSONResponse(
        status_code=status_code, content=jsonable_encoder(content), headers=headers
    )


@app_metro.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Error occurred"
    return errorResponse(exc.status_code, message, getattr(exc, "headers", None))


@app_metro.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid input"
    if errors:
        error = errors[0]
        ctxError = error.get("ctx", {}).get("error")
        message = str(ctxError) if ctxError is not None else error.get("msg", message)
    return errorResponse(
        status.HTTP_400_BAD_REQUEST, message, exceptions.InvalidInput.headers
    )


@app_metro.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    return errorResponse(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ------------------------------------------------------
# Routers
# ------------------------------------------------------
app_metro.include_router(auth.route_auth)
app_metro.include_router(user.route_user)
app_metro.include_router(station.route_station)
app_metro.include_router(fare.route_fare)
app_metro.include_router(trip.route_trip)


# Health check endpoint
@app_metro.get(URL_HEALTH, tags=["Health Check"], response_model=schemas.Envelope)
async def health_check():
    return makeResponse("OK", {"status": "OK", "version": API_VERSION})
