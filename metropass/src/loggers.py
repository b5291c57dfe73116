from typing import Optional
from metropass.src.db import UserToken
from metropass.src import openobserve
from metropass.src.schemas import RequestInfo

# Never shipped to the audit stream
SECRET_KEYS = ("password", "access_token", "accessToken", "token")


def logEvent(
    token: Optional[UserToken],
    requestInfo: RequestInfo,
    data: dict,
    role: Optional[str] = None,
) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        token (UserToken | None): Token of the acting user. Public endpoints
            such as trip redemption at the gate have no token.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.
        role (str | None): Role of the acting user, when known.

    Notes:
        - Automatically attaches `_method`, `_path` and `_user_id`.
        - Secret fields are dropped from `data` before shipping.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
    }
    if token is not None:
        logDetails["_user_id"] = token.user_id
    if role is not None:
        logDetails["_role"] = role

    logDetails.update({k: v for k, v in data.items() if k not in SECRET_KEYS})
    openobserve.logEvent(logDetails)
