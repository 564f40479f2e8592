"""Outcome types returned by the catalog, identity and loan services.

Every service operation returns either :class:`Ok` carrying its payload or
:class:`Err` carrying an :class:`ErrorKind` and a single-line message that is
safe to show to the caller. Routes and the console menu project these onto
their own surfaces.
"""
import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    DUPLICATE = "DUPLICATE"
    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"
    ALREADY_ISSUED_BY_USER = "ALREADY_ISSUED_BY_USER"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    ALREADY_RETURNED = "ALREADY_RETURNED"
    BUSY = "BUSY"
    STORE_ERROR = "STORE_ERROR"
    AUTH_FAILED = "AUTH_FAILED"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None
    message: str = "SUCCESS"

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str

    @property
    def ok(self) -> bool:
        return False

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.STORE_ERROR


Result = Union[Ok[Any], Err]


class TransactionAborted(Exception):
    """Raised inside a unit of work to roll it back and report ``error``."""

    def __init__(self, error: Err):
        super().__init__(error.message)
        self.error = error
