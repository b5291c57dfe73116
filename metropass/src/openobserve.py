import json
from requests import Response, Session

from metropass.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_TIMEOUT,
    OPENOBSERVE_USERNAME,
)

# JSON ingestion endpoint of the audit stream
streamURL = (
    f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
    f"/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"
)

# One pooled connection per worker, Basic auth on every request
httpSession = Session()
httpSession.auth = (OPENOBSERVE_USERNAME, OPENOBSERVE_PASSWORD)
httpSession.headers.update({"Content-type": "application/json"})


def logEvent(eventData: dict) -> Response:
    """
    Ship one audit event to the OpenObserve stream of the metro service.

    The stream accepts a JSON array of records. Values JSON can not encode
    (datetimes, decimals) are sent as their string form.

    Args:
        eventData (dict): Event payload, already enriched with request context.
            Example:
                {
                    "_method": "POST",
                    "_path": "/api/trips",
                    "_user_id": 7,
                    "_role": "user",
                    "tripCode": "TRIP-1A2B3C4D"
                }

    Returns:
        requests.Response: The HTTP response object returned by the OpenObserve API.
    """
    return httpSession.post(
        streamURL,
        data=json.dumps([eventData], default=str),
        timeout=OPENOBSERVE_TIMEOUT,
    )
