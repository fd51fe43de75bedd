from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"
    not_found = "not_found"
    invalid_input = "invalid_input"
    conflict = "conflict"
    invalid_transition = "invalid_transition"
    invalid_credential = "invalid_credential"
    account_not_verified = "account_not_verified"
    not_in_family = "not_in_family"
    timeout = "timeout"
    store_unavailable = "store_unavailable"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of a service operation.

    Expected conditions (not found, forbidden, bad input...) come back as a failure
    with a kind; only infrastructure problems are raised.
    """

    ok: bool
    data: T | None = None
    kind: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, data: Any = None) -> Outcome[Any]:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> Outcome[Any]:
        return cls(ok=False, kind=kind, message=message)
