import pytest
from fastapi import HTTPException

from errors import ErrorKind, Result, unwrap, validation_message


def test_unwrap_returns_value_on_success():
    assert unwrap(Result.success({"a": 1})) == {"a": 1}


def test_unwrap_raises_with_kind_and_status():
    with pytest.raises(HTTPException) as info:
        unwrap(Result.fail(ErrorKind.DUPLICATE_ENTRY, "Already there"))
    assert info.value.status_code == 400
    assert info.value.detail == {"kind": "DuplicateEntry", "message": "Already there"}


def test_validation_message():
    assert validation_message([{"loc": ("body", "email"), "msg": "bad email"}]) == "email: bad email"
    assert validation_message([{"loc": (), "msg": "bad"}]) == "bad"
    assert validation_message([]) == "Invalid request"
