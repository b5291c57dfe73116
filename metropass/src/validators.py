"""
Validation and permission checks for Metro Pass API.

This module centralizes guard logic such as:
- Token validation
- Role-based permission checks
- Coordinate pairing

All functions raise appropriate exceptions from `metropass.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm.session import Session

from metropass.src.db import User, UserToken
from metropass.src.enums import UserRole
from metropass.src import exceptions


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def userToken(
    bearer: Optional[HTTPAuthorizationCredentials], session: Session
) -> UserToken:
    """
    Validate the bearer credential of a request.

    Args:
        bearer (HTTPAuthorizationCredentials | None): Parsed `Authorization`
            header, None when the header is missing or malformed.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        UserToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the header is missing, or the token is
            not found or has expired.
    """
    if bearer is None:
        raise exceptions.InvalidToken()

    current_time = datetime.now(timezone.utc)
    token = (
        session.query(UserToken)
        .filter(
            UserToken.access_token == bearer.credentials,
            UserToken.expires_at > current_time,
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


def activeUser(token: UserToken, session: Session) -> User:
    """
    Resolve the owner of a token and make sure the account is still active.

    Raises:
        exceptions.InactiveAccount: If the user was deactivated after the
            token had been issued.
    """
    user = session.query(User).filter(User.id == token.user_id).first()
    if user is None or not user.is_active:
        raise exceptions.InactiveAccount()
    return user


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def adminRole(user: User) -> bool:
    """
    Validate that the user is an administrator.

    Raises:
        exceptions.NoPermission: If the user has the plain user role.
    """
    if user.role == UserRole.ADMIN:
        return True
    raise exceptions.NoPermission()


def ownerOrAdmin(user: User, owner_id: int) -> bool:
    """Validate that the user owns the resource or is an administrator."""
    if user.id == owner_id or user.role == UserRole.ADMIN:
        return True
    raise exceptions.NoPermission()


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def coordinates(latitude: Optional[float], longitude: Optional[float]) -> bool:
    """
    Validate that a location is given either completely or not at all.

    Returns:
        bool: True when both coordinates are present, False when both are absent.

    Raises:
        exceptions.MissingParameter: If only one of the two is provided.
    """
    if latitude is None and longitude is None:
        return False
    if latitude is None or longitude is None:
        raise exceptions.MissingParameter("latitude", "longitude")
    return True
