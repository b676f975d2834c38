"""Shared utility functions for services and blueprints.

atomic_command:  single transactional boundary for service-layer commands
parse_bool_arg:  tolerant boolean parsing for query-string flags
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from valuechain.core.exceptions import PersistenceError
from valuechain.models import db

logger = logging.getLogger(__name__)


# ── Database transaction helper ──────────────────────────────────────────────

@contextmanager
def atomic_command(operation):
    """Run one engine command as an all-or-nothing batch.

    The body stages its whole diff (adds, deletes, flushes); the commit
    happens once on exit. Any failure inside the body or at commit time rolls
    the session back, which also expires every loaded instance so the next
    read reflects the last committed state.

    Usage::

        with atomic_command("merge_chains"):
            db.session.add(merged)
            ...

    IntegrityError   → rollback, PersistenceError (constraint violation)
    Other SQLAlchemy → rollback, PersistenceError (connection / lock issues)
    Anything else    → rollback, re-raised unchanged (e.g. ValidationError)
    """
    try:
        yield
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error operation=%s: %s", operation, exc.orig)
        raise PersistenceError(operation, exc) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error operation=%s", operation)
        raise PersistenceError(operation, exc) from exc
    except Exception:
        db.session.rollback()
        raise


def parse_bool_arg(value, default=False):
    """Parse "true"/"1"/"yes"/"on" (any case) as True; None → default."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")
