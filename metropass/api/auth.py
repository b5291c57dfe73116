from datetime import datetime, timedelta, timezone
from secrets import token_hex
from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field
from sqlalchemy import or_
from sqlalchemy.orm.session import Session

from metropass.api.bearer import bearer_user
from metropass.src.constants import (
    MAX_TOKEN_VALIDITY,
    MAX_USER_TOKENS,
    REGEX_PASSWORD,
    REGEX_PHONE_NUMBER,
)
from metropass.src.db import User, UserToken, sessionMaker
from metropass.src import argon2, exceptions, validators, getters, schemas
from metropass.src.enums import PlatformType
from metropass.src.loggers import logEvent
from metropass.src.functions import (
    enumStr,
    fuseExceptionResponses,
    makeResponse,
    serialize,
)
from metropass.src.urls import (
    URL_AUTH_LOGIN,
    URL_AUTH_ME,
    URL_AUTH_REGISTER,
    URL_AUTH_TOKEN,
)

route_auth = APIRouter()


## Input Bodies
class RegisterBody(schemas.CamelModel):
    full_name: str = Field(min_length=2, max_length=50)
    email: EmailStr = Field(max_length=256)
    phone_number: str = Field(pattern=REGEX_PHONE_NUMBER, max_length=32)
    password: str = Field(min_length=6, max_length=32, pattern=REGEX_PASSWORD)
    platform_type: PlatformType = Field(
        default=PlatformType.OTHER, description=enumStr(PlatformType)
    )
    client_details: str | None = Field(default=None, max_length=1024)


class LoginBody(schemas.CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=32)
    platform_type: PlatformType = Field(
        default=PlatformType.OTHER, description=enumStr(PlatformType)
    )
    client_details: str | None = Field(default=None, max_length=1024)


## Helpers
def issueToken(
    session: Session,
    user: User,
    platform_type: PlatformType,
    client_details: str | None,
) -> UserToken:
    """
    Create a new access token for the user, keeping at most MAX_USER_TOKENS.

    The oldest tokens are deleted first. The caller commits.
    """
    tokens = (
        session.query(UserToken)
        .filter(UserToken.user_id == user.id)
        .order_by(UserToken.created_on.desc(), UserToken.id.desc())
        .all()
    )
    for token in tokens[MAX_USER_TOKENS - 1 :]:
        session.delete(token)
    session.flush()

    expires_at = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
    token = UserToken(
        user_id=user.id,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=expires_at,
        platform_type=platform_type,
        client_details=client_details,
    )
    session.add(token)
    return token


def authData(user: User, token: UserToken) -> dict:
    return {
        "user": serialize(schemas.UserSchema, user),
        "token": serialize(schemas.TokenSchema, token),
    }


## API endpoints
@route_auth.post(
    URL_AUTH_REGISTER,
    tags=["Auth"],
    response_model=schemas.Envelope,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidInput("Please provide a valid email"),
            exceptions.DuplicateEntry(
                "User with this email or phone number already exists"
            ),
        ]
    ),
    description="""
    Registers a new commuter account and signs it in.
    The email is stored in lowercase and must be unique, as must the phone number.
    The password is stored as an Argon2 hash.
    Returns the created user together with a fresh access token.
    Logs the registration event for audit tracking.
    """,
)
async def register(
    body: RegisterBody,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        email = body.email.lower()
        existingUser = (
            session.query(User)
            .filter(or_(User.email == email, User.phone_number == body.phone_number))
            .first()
        )
        if existingUser is not None:
            raise exceptions.DuplicateEntry(
                "User with this email or phone number already exists"
            )

        user = User(
            full_name=body.full_name.strip(),
            email=email,
            phone_number=body.phone_number.strip(),
            password=argon2.makePassword(body.password),
            last_login=datetime.now(timezone.utc),
        )
        session.add(user)
        session.flush()
        token = issueToken(session, user, body.platform_type, body.client_details)
        session.commit()
        session.refresh(user)
        session.refresh(token)

        data = authData(user, token)
        logEvent(token, request_info, data["user"], user.role.value)
        return makeResponse("User registered successfully", data)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_auth.post(
    URL_AUTH_LOGIN,
    tags=["Auth"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.InvalidCredentials(), exceptions.InactiveAccount()]
    ),
    description="""
    Issues a new access token after validating the email and password.
    Deactivated accounts are refused.
    Limits active tokens using MAX_USER_TOKENS (token rotation).
    Sets expiration with expires_in=MAX_TOKEN_VALIDITY (in seconds).
    Updates last_login and logs the authentication event.
    """,
)
async def login(
    body: LoginBody,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = session.query(User).filter(User.email == body.email.lower()).first()
        if user is None:
            raise exceptions.InvalidCredentials()
        if not user.is_active:
            raise exceptions.InactiveAccount()
        if not argon2.checkPassword(body.password, user.password):
            raise exceptions.InvalidCredentials()

        token = issueToken(session, user, body.platform_type, body.client_details)
        user.last_login = datetime.now(timezone.utc)
        session.commit()
        session.refresh(user)
        session.refresh(token)

        logEvent(token, request_info, {"email": user.email}, user.role.value)
        return makeResponse("Login successful", authData(user, token))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_auth.get(
    URL_AUTH_ME,
    tags=["Auth"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InactiveAccount()]
    ),
    description="""
    Returns the account that owns the access token of the request.
    """,
)
async def fetch_me(bearer=Depends(bearer_user)):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)
        return makeResponse(
            "User profile retrieved successfully",
            {"user": serialize(schemas.UserSchema, user)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_auth.patch(
    URL_AUTH_TOKEN,
    tags=["Auth"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InactiveAccount()]
    ),
    description="""
    Refreshes the access token used in this request.
    Rotates the access_token value (invalidates the old token immediately).
    Restarts the validity window at MAX_TOKEN_VALIDITY seconds from now.
    Logs the refresh event for auditability.
    """,
)
async def refresh_token(
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        user = validators.activeUser(token, session)

        token.access_token = token_hex(32)
        token.expires_in = MAX_TOKEN_VALIDITY
        token.expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=MAX_TOKEN_VALIDITY
        )
        session.commit()
        session.refresh(token)

        logEvent(token, request_info, {"token_id": token.id}, user.role.value)
        return makeResponse(
            "Token refreshed successfully",
            {"token": serialize(schemas.TokenSchema, token)},
        )
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_auth.delete(
    URL_AUTH_TOKEN,
    tags=["Auth"],
    response_model=schemas.Envelope,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes the access token used in this request (logout).
    Other sessions of the same user stay signed in.
    """,
)
async def delete_token(
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.userToken(bearer, session)
        session.delete(token)
        session.commit()

        logEvent(token, request_info, {"token_id": token.id})
        return makeResponse("Logged out successfully")
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
