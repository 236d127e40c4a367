# Overview: Service-layer operations for document numbering; per-day counters in the caller's transaction.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import PersistenceError, ValidationError
from ..extensions import db
from ..models import DocumentSequence, Sale, StockEntry
from ..time_utils import local_today


SALE = "SALE"
STOCK_ENTRY = "STOCK_ENTRY"

# Document type -> column holding the generated number
NUMBERED_COLUMNS = {
    SALE: Sale.invoice_number,
    STOCK_ENTRY: StockEntry.entry_number,
}


class DocumentSequenceError(PersistenceError):
    """Raised when a document number cannot be allocated safely."""
    code = "DOCUMENT_SEQUENCE_ERROR"


def format_document_number(prefix: str, day: str, number: int) -> str:
    return f"{prefix}-{day}-{number:04d}"


def _highest_existing(document_type: str, prefix: str, day: str) -> int:
    """
    Highest numeric suffix already used today for this prefix (0 if none).

    A record whose suffix is not numeric means the numbering is corrupt;
    guessing past it could reuse a number, so this fails instead.
    """
    column = NUMBERED_COLUMNS[document_type]
    stem = f"{prefix}-{day}-"
    rows = db.session.query(column).filter(column.like(f"{stem}%")).all()

    highest = 0
    for (value,) in rows:
        suffix = value[len(stem):]
        if not suffix.isdigit():
            raise DocumentSequenceError(
                f"Cannot continue numbering after {value!r}: suffix is not numeric",
                details={"document_type": document_type, "value": value},
            )
        highest = max(highest, int(suffix))
    return highest


def _allocated_from_counter(document_type: str, prefix: str, day: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, prefix=prefix, day=day)
        .scalar()
    )
    return current - 1


def next_document_number(document_type: str, prefix: str, now: datetime | None = None) -> str:
    """
    Allocate the next `{PREFIX}-{YYMMDD}-{NNNN}` number for a document type.

    The counter row is bumped with a single UPDATE, so two transactions never
    receive the same number. Runs inside the caller's transaction and never
    commits: if the caller rolls back, the number is released with it.
    The first allocation of a day seeds the counter from existing records.
    """
    if document_type not in NUMBERED_COLUMNS:
        raise ValidationError(f"Unknown document type: {document_type}")
    if not prefix:
        raise ValidationError("prefix is required")

    day = local_today(now).strftime("%y%m%d")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.prefix == prefix,
            DocumentSequence.day == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        number = _allocated_from_counter(document_type, prefix, day)
    else:
        highest = _highest_existing(document_type, prefix, day)
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    document_type=document_type,
                    prefix=prefix,
                    day=day,
                    next_number=highest + 2,
                ))
            number = highest + 1
        except IntegrityError:
            # Another transaction created today's counter first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"Could not allocate {document_type} number")
            number = _allocated_from_counter(document_type, prefix, day)

    return format_document_number(prefix, day, number)
