from datetime import datetime
from typing import Annotated, Any, Optional
from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from metropass.src.enums import UserRole


class CamelModel(BaseModel):
    """Base for request and response bodies exposed with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class RequestInfo(BaseModel):
    method: str
    path: str


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Envelope(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None
    timestamp: datetime


class PaginatedEnvelope(Envelope):
    pagination: Pagination


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    timestamp: datetime


# Money columns are Numeric, exposed as JSON numbers
Amount = Annotated[float, BeforeValidator(float)]


class UserSchema(CamelModel):
    id: int
    full_name: str
    email: str
    phone_number: str
    photo: Optional[str] = None
    balance: Amount
    total_trips: int
    total_expense: Amount
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    updated_on: Optional[datetime] = None
    created_on: datetime


class TokenSchema(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: datetime
