from datetime import datetime, timezone
from math import ceil
from typing import Any, Dict, List, Optional, Type
from pydantic import BaseModel
import pyproj

from metropass.src import schemas
from metropass.src.constants import GEOD_ELLIPSOID
from metropass.src.exceptions import APIException

geod = pyproj.Geod(ellps=GEOD_ELLIPSOID)


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"success": False, "message": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Example:
        >>> enumStr(FareType)
        'REGULAR: regular, PEAK: peak, OFF_PEAK: off-peak, STUDENT: student, SENIOR: senior'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    "CREATED": ["USED"],
                    "USED": [],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Example:
        >>> updateIfChanged(fare, fParam, [Fare.fare.key, Fare.distance.key])
        # fare will be updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def serialize(schema: Type[BaseModel], obj) -> dict:
    """Validate an ORM object through an output schema and dump it with camelCase keys."""
    return schema.model_validate(obj).model_dump(mode="json", by_alias=True)


def makeResponse(message: str, data: Optional[Any] = None) -> dict:
    """
    Build the success envelope returned by every endpoint.

    Example:
        >>> makeResponse("Trip used successfully", {"trip": {...}})
        {'success': True, 'message': 'Trip used successfully', 'data': {...}, 'timestamp': ...}
    """
    return {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": datetime.now(timezone.utc),
    }


def makePaginatedResponse(
    message: str, data: List[Any], page: int, limit: int, total: int
) -> dict:
    """
    Build the success envelope for list endpoints, with pagination metadata.

    `totalPages` is 0 for an empty collection. `hasNext` is true while
    items remain after the current page.
    """
    response = makeResponse(message, data)
    response["pagination"] = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": ceil(total / limit),
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }
    return response


def geodesicDistance(
    longitude1: float, latitude1: float, longitude2: float, latitude2: float
) -> float:
    """
    Distance in meters between two WGS 84 coordinates along the ellipsoid.

    Example:
        >>> round(geodesicDistance(90.4125, 23.8103, 90.4125, 23.8103))
        0
    """
    _, _, distance = geod.inv(longitude1, latitude1, longitude2, latitude2)
    return distance


def toUTC(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a client datetime to UTC. Naive values are taken as UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
