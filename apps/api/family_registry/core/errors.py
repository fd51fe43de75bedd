from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, NoReturn, TypeVar

from fastapi import HTTPException
from sqlalchemy.exc import DBAPIError, DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from family_registry.core.outcome import ErrorKind, Outcome

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# PostgreSQL "query_canceled", raised when statement_timeout fires.
_PG_QUERY_CANCELED = "57014"

_SECRET_ARGS = {"password", "password_hash", "token", "file_data", "avatar_data"}

_HTTP_STATUS = {
    ErrorKind.unauthenticated: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.invalid_input: 400,
    ErrorKind.conflict: 409,
    ErrorKind.invalid_transition: 409,
    ErrorKind.invalid_credential: 401,
    ErrorKind.account_not_verified: 403,
    ErrorKind.not_in_family: 400,
    ErrorKind.timeout: 503,
    ErrorKind.store_unavailable: 503,
}


class StoreUnavailableError(RuntimeError):
    kind = ErrorKind.store_unavailable
    retryable = False


class StoreTimeoutError(StoreUnavailableError):
    kind = ErrorKind.timeout
    retryable = True


def _context(fn: Callable[..., Any], args: tuple, kwargs: dict) -> dict[str, Any]:
    try:
        bound = inspect.signature(fn).bind_partial(*args, **kwargs)
    except TypeError:
        return {}
    return {
        name: value
        for name, value in bound.arguments.items()
        if name not in _SECRET_ARGS and isinstance(value, (int, str, bool)) and not isinstance(value, Session)
    }


def _safe_rollback(args: tuple, kwargs: dict) -> None:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Session):
            try:
                value.rollback()
            except DBAPIError:
                logger.warning("rollback after store failure also failed")
            return


def _is_timeout(exc: Exception) -> bool:
    if isinstance(exc, PoolTimeoutError):
        return True
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) == _PG_QUERY_CANCELED


def store_operation(name: str) -> Callable[[F], F]:
    """
    Translate infrastructure failures of a store-backed operation.

    Integrity errors are left to the operation (they are expected conditions);
    connectivity problems and timeouts are logged with the operation name and
    identifiers and re-raised as StoreUnavailableError / StoreTimeoutError.
    Nothing is retried here.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except IntegrityError:
                raise
            except (PoolTimeoutError, OperationalError, DisconnectionError, DBAPIError) as exc:
                context = _context(fn, args, kwargs)
                _safe_rollback(args, kwargs)
                if _is_timeout(exc):
                    logger.error("store timeout in %s %s", name, context)
                    raise StoreTimeoutError(f"{name} timed out") from exc
                logger.exception("store unavailable in %s %s", name, context)
                raise StoreUnavailableError(f"{name} failed") from exc

        return wrapper  # type: ignore[return-value]

    return decorator


def raise_for_outcome(outcome: Outcome[Any]) -> NoReturn:
    assert outcome.kind is not None
    raise HTTPException(status_code=_HTTP_STATUS[outcome.kind], detail=outcome.message)


def unwrap(outcome: Outcome[Any]) -> Any:
    if not outcome.ok:
        raise_for_outcome(outcome)
    return outcome.data
