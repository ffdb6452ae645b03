# Overview: Atomic allocation of date-sequenced document numbers.

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from pettycash.time_utils import sequence_day


DOC_TRANSACTION = "transaction"
DOC_FUND_TRANSFER = "fund_transfer"

DOCUMENT_PREFIXES = {
    DOC_TRANSACTION: "PC",
    DOC_FUND_TRANSFER: "FT",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_number(document_type: str, day: date) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, sequence_date=day)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    day: date | None = None,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next number for a document type on a given day.

    Format: PREFIX-YYYYMMDD-NNNN, e.g. PC-20260301-0007. The counter restarts
    each day. Runs inside the caller's unit of work: the increment is a single
    UPDATE, so two writers can never receive the same number, and the first
    writer of the day races on the unique (document_type, sequence_date) key.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    day = day or sequence_day()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(document_type, day)
    else:
        seq = DocumentSequence(document_type=document_type, sequence_date=day, next_number=2)
        try:
            # Savepoint so a lost race does not discard the caller's pending work
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(document_type, day)

    return f"{prefix}-{day:%Y%m%d}-{next_num:0{pad}d}"
