"""
Explicit outcome values returned by the message handlers.

A handler returns Ok(value) on success or Err(error, detail) when a
precondition fails. Routes translate Err into an HTTP error; store
failures are not represented here and propagate as exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from fastapi import HTTPException, status

T = TypeVar("T")


class MessageError(str, Enum):
    """Failure kinds a handler can report."""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    MessageError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    MessageError.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def result(self) -> str:
        return "ok"


@dataclass(frozen=True)
class Err:
    error: MessageError
    detail: str

    @property
    def result(self) -> str:
        return self.error.value

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.error.status_code, detail=self.detail)


Result = Union[Ok[T], Err]


def not_found(detail: str = "Message not found") -> Err:
    return Err(MessageError.NOT_FOUND, detail)


def unauthorized(detail: str = "Unauthorized") -> Err:
    return Err(MessageError.UNAUTHORIZED, detail)
