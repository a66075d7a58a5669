"""Persistence errors shared by the catalog repositories."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "RepositoryError",
    "NotFoundError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]

T = TypeVar("T")


class AppError(Exception):
    """Root of the non-HTTP error hierarchy."""


class RepositoryError(AppError):
    """A catalog read or write did not complete."""


class NotFoundError(RepositoryError):
    """Lookup by primary key found nothing."""


class IntegrityConstraintViolation(RepositoryError):
    """A unique or not-null constraint rejected the write (e.g. a reused storage path)."""


class DatabaseOperationError(RepositoryError):
    """The driver failed: locked database, lost connection and the like."""


def ensure_found(record: T | None, *, entity: str, identifier: str) -> T:
    if record is None:
        raise NotFoundError(f"{entity} '{identifier}' not found")
    return record


def _label(entity: str | None, message: str) -> str:
    return f"{entity}: {message}" if entity else message


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as :class:`RepositoryError` subclasses."""
    try:
        yield
    except sa_exc.IntegrityError as exc:
        raise IntegrityConstraintViolation(_label(entity, "integrity constraint violated")) from exc
    except sa_exc.DBAPIError as exc:
        raise DatabaseOperationError(_label(entity, "database operation failed")) from exc
    except sa_exc.SQLAlchemyError as exc:
        raise RepositoryError(_label(entity, str(exc))) from exc
