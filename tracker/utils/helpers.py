"""Shared utility functions.

parse_date:       lenient date parsing (returns None on bad input)
parse_date_input: strict date parsing (raises ValueError on bad input)
commit_or_raise:  commits the session, translating failures into RepositoryError
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from tracker.core.exceptions import RepositoryError
from tracker.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Same as parse_date() but raises ValueError instead of returning None.
    """
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    return parsed


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(operation: str):
    """Commit the current SQLAlchemy session or roll back and raise RepositoryError.

    IntegrityError   → constraint violation (bad reference id, invalid status)
    OperationalError → connection / lock issues
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error during %s: %s", operation, exc.orig)
        raise RepositoryError(f"{operation} failed: constraint violation") from exc
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Database operational error during %s", operation)
        raise RepositoryError(f"{operation} failed: database unavailable") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Unexpected database error during %s", operation)
        raise RepositoryError(f"{operation} failed") from exc
