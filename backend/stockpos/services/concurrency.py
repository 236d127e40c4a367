# Overview: Service-layer operations for concurrency; row locks and the transaction boundary.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the conditional stock UPDATE is what keeps stock non-negative.
    """
    return query.with_for_update()


@contextmanager
def atomic(failure_message: str = "Transaction failed"):
    """
    Run a block as one transaction on the scoped session.

    Commits on success. On any exception everything since the last commit is
    rolled back: LedgerError subclasses propagate unchanged, database errors
    (constraint violations, optimistic locking conflicts) become
    PersistenceError(failure_message). Nothing is retried.
    """
    try:
        yield db.session
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except (IntegrityError, StaleDataError) as exc:
        db.session.rollback()
        current_app.logger.warning("%s: %s", failure_message, exc)
        raise PersistenceError(failure_message) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(failure_message)
        raise PersistenceError(failure_message) from exc
    except Exception:
        db.session.rollback()
        raise
