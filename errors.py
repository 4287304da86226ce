"""
Error taxonomy shared by the services.

Services return a `Result` instead of raising; the HTTP layer turns a failed
result into a response with `unwrap`.
"""

from enum import Enum
from typing import Generic, List, Optional, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    INVALID_CREDENTIALS = "InvalidCredentials"
    EMAIL_NOT_VERIFIED = "EmailNotVerified"
    INVALID_OR_EXPIRED_TOKEN = "InvalidOrExpiredToken"
    NOT_FOUND = "NotFound"
    DUPLICATE_ENTRY = "DuplicateEntry"
    FORBIDDEN = "Forbidden"
    UNAUTHORIZED = "Unauthorized"
    DELIVERY_FAILED = "DeliveryFailed"


STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.EMAIL_NOT_VERIFIED: 401,
    ErrorKind.INVALID_OR_EXPIRED_TOKEN: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_ENTRY: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.DELIVERY_FAILED: 500,
}


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class Result(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(failure=Failure(kind=kind, message=message))


def validation_message(errors: List[dict]) -> str:
    """First pydantic error as "field: message"."""
    if not errors:
        return "Invalid request"
    err = errors[0]
    field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
    return f"{field}: {err['msg']}" if field else err["msg"]


def unwrap(result: Result[T]) -> T:
    if result.failure is not None:
        raise HTTPException(
            status_code=STATUS_CODES[result.failure.kind],
            detail=result.failure.to_dict(),
        )
    return result.value
