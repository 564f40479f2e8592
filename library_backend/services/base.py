import logging
from functools import wraps
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from library_backend.database import SessionLocal, transaction
from library_backend.services.result import Err, ErrorKind, TransactionAborted

logger = logging.getLogger(__name__)


def store_operation(failure_message: str, on_integrity_error: Optional[Err] = None):
    """Turn store failures raised by a service method into ``Err`` results.

    ``TransactionAborted`` carries its own error out of a rolled-back unit of
    work. Constraint violations map to ``on_integrity_error`` when given;
    anything else from the store becomes a retryable STORE_ERROR.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except TransactionAborted as e:
                return e.error
            except IntegrityError as e:
                if on_integrity_error is not None:
                    logger.warning(f"{func.__qualname__} hit a constraint: {e.orig}")
                    return on_integrity_error
                logger.exception(f"{func.__qualname__} failed on a constraint")
                return Err(ErrorKind.STORE_ERROR, failure_message)
            except SQLAlchemyError:
                logger.exception(f"{func.__qualname__} failed")
                return Err(ErrorKind.STORE_ERROR, failure_message)
        return wrapper
    return decorator


# Largest value an INTEGER column holds on every supported store
MAX_INT = 2**31 - 1


def is_positive_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_INT


def is_blank(value) -> bool:
    return value is None or not str(value).strip()


def too_long(value, column) -> bool:
    """True when a stripped string would not fit the VARCHAR length of ``column``."""
    return value is not None and len(value.strip()) > column.type.length


class BaseService:
    """Stateless service bound to a session factory; safe to share across threads."""

    def __init__(self, session_factory: Optional[sessionmaker] = None, timeout_seconds: Optional[float] = None):
        self._session_factory = session_factory or SessionLocal
        self._timeout_seconds = timeout_seconds

    def _transaction(self):
        return transaction(self._session_factory, self._timeout_seconds)
