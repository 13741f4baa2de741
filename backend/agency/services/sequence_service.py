# Overview: Database-backed counters for invoice and ticket numbers.

"""
Sequence allocator

- One row per document type in document_sequences, holding the last number issued.
- next_number() bumps the row with a single UPDATE ... SET last_number = last_number + 1,
  so two workers can never read the same value.
- A missing row is seeded from the highest number already present in the
  documents table (or the configured START), never from process memory.
- Numbers are issued inside the caller's transaction: a rolled-back invoice
  gives its number back.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence, Invoice, Ticket


DOCUMENT_INVOICE = "INVOICE"
DOCUMENT_TICKET = "TICKET"

# document_type -> (prefix, number column, config key for the start value)
SEQUENCES = {
    DOCUMENT_INVOICE: ("INV", Invoice.invoice_number, "INVOICE_NUMBER_START"),
    DOCUMENT_TICKET: ("TKT", Ticket.ticket_number, "TICKET_NUMBER_START"),
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _sequence(document_type: str):
    if document_type not in SEQUENCES:
        raise DocumentSequenceError(f"Unknown document type {document_type!r}")
    return SEQUENCES[document_type]


def format_number(document_type: str, number: int) -> str:
    prefix = _sequence(document_type)[0]
    return f"{prefix}-{number}"


def parse_number(document_type: str, value: str | None) -> int | None:
    """'INV-1042' -> 1042. Foreign or malformed values return None."""
    prefix = _sequence(document_type)[0]
    if not value or not value.startswith(f"{prefix}-"):
        return None
    digits = value[len(prefix) + 1:]
    if not digits.isdigit():
        return None
    return int(digits)


def highest_existing_number(document_type: str) -> int | None:
    column = _sequence(document_type)[1]
    highest = None
    for (value,) in db.session.query(column).all():
        number = parse_number(document_type, value)
        if number is not None and (highest is None or number > highest):
            highest = number
    return highest


def sync_sequence_from_existing(document_type: str) -> DocumentSequence:
    """
    Make sure the counter is at least max(START, highest issued number).

    Idempotent; never moves a counter backwards. Flushes, does not commit.
    """
    start = int(current_app.config[_sequence(document_type)[2]])
    floor = max(start, highest_existing_number(document_type) or start)

    seq = (
        db.session.query(DocumentSequence)
        .filter_by(document_type=document_type)
        .populate_existing()
        .first()
    )
    if seq is None:
        seq = DocumentSequence(document_type=document_type, last_number=floor)
        db.session.add(seq)
    elif seq.last_number < floor:
        seq.last_number = floor
    db.session.flush()
    return seq


def next_number(document_type: str) -> int:
    """
    Atomically allocate the next integer for document_type.

    The allocation belongs to the current transaction; commit or roll it
    back together with the document that uses it.
    """
    _sequence(document_type)
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(last_number=DocumentSequence.last_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        sync_sequence_from_existing(document_type)
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError(f"Could not allocate a {document_type} number")

    current = (
        db.session.query(DocumentSequence.last_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current


def next_document_number(document_type: str) -> str:
    return format_number(document_type, next_number(document_type))


def list_sequences() -> list[DocumentSequence]:
    return db.session.query(DocumentSequence).order_by(DocumentSequence.document_type.asc()).all()
