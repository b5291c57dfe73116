from __future__ import annotations

import pytest
from sqlalchemy.exc import DataError

from metropass.src import exceptions


def _dataError(message: str) -> DataError:
    return DataError('UPDATE "user" SET balance=balance + %(amount)s', {}, Exception(message))


def test_data_error_is_reported_as_invalid_input():
    e = _dataError("numeric field overflow\nDETAIL:  A field with precision 10, scale 2 ...")

    with pytest.raises(exceptions.InvalidInput) as info:
        exceptions.handle(e)
    assert info.value.status_code == 400
    assert info.value.detail == "numeric field overflow"
    assert info.value.headers == {"X-Error": "InvalidInput"}


def test_data_error_without_message():
    with pytest.raises(exceptions.InvalidInput) as info:
        exceptions.handle(_dataError(""))
    assert info.value.detail == "Invalid value"


def test_api_exceptions_pass_through():
    with pytest.raises(exceptions.TripExpired) as info:
        exceptions.handle(exceptions.TripExpired())
    assert info.value.status_code == 404


def test_unexpected_errors_are_reraised():
    with pytest.raises(ZeroDivisionError):
        exceptions.handle(ZeroDivisionError("boom"))
