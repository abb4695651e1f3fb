# Overview: Invoice number allocation backed by DocumentSequence counters.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from pos_engine.time_utils import day_stamp


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, document_type: str, prefix: str, pad: int = 4) -> str:
    """
    Atomically allocate the next number in a sequence.

    Must run inside the caller's transaction; the counter row is updated
    in place so concurrent writers serialize on it. The first allocation
    for a new document_type inserts the row inside a savepoint.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            return f"{prefix}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"


def next_invoice_number(now: datetime, prefix: str = "INV") -> str:
    """Allocate the next invoice number for the day: INV-YYYYMMDD-NNNN."""
    day_prefix = f"{prefix}-{day_stamp(now)}"
    return next_document_number(document_type=day_prefix, prefix=day_prefix, pad=4)
