# Overview: Transaction boundary and row locking for balance-changing operations.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError, NotFoundError, ValidationError


class ConcurrencyConflictError(Exception):
    """
    Raised when another writer changed a party or a sequence between our
    read and our commit. Nothing was written; the caller may resubmit.
    """


# Driver messages (SQLite, PostgreSQL, MySQL) that mean "another writer got there first"
UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate key", "duplicate entry")
LOCK_ERROR_MARKERS = ("database is locked", "deadlock", "could not obtain lock", "lock wait timeout", "could not serialize")


def is_write_conflict(exc) -> bool:
    """
    True for a lost race: a unique violation (two writers seeding the same
    counter or number) or a lock/serialization failure. NOT NULL violations,
    missing tables and the like are real faults and return False.
    """
    if isinstance(exc, StaleDataError):
        return True
    message = str(getattr(exc, "orig", None) or exc).lower()
    if isinstance(exc, IntegrityError):
        return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)
    if isinstance(exc, OperationalError):
        return any(marker in message for marker in LOCK_ERROR_MARKERS)
    return False


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column on
    party rows still catches lost updates there at flush time.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work(label: str):
    """
    One commit for every balance update, ledger row, document row and
    sequence bump written inside the block; rollback on any failure.

    Lock/version conflicts and racing unique inserts become
    ConcurrencyConflictError; other database errors propagate unchanged.
    Amounts are never recomputed and retried automatically.
    """
    try:
        yield db.session
        db.session.commit()
    except (StaleDataError, OperationalError, IntegrityError) as exc:
        db.session.rollback()
        if not is_write_conflict(exc):
            current_app.logger.exception("%s rolled back", label)
            raise
        current_app.logger.warning("%s rolled back on write conflict: %s", label, exc)
        raise ConcurrencyConflictError(f"{label} conflicted with a concurrent update; nothing was saved") from exc
    except (ValidationError, NotFoundError, ConflictError) as exc:
        db.session.rollback()
        current_app.logger.info("%s rejected: %s", label, exc)
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("%s rolled back", label)
        raise
