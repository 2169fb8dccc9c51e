# Overview: Service-layer operations for document numbering; durable per-key counters.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidInput
from ..extensions import db
from ..models import DocumentSequence
from stockflow.time_utils import utcnow


DOCUMENT_TYPE_PURCHASE_ORDER = "PO"
DOCUMENT_TYPE_SALES_TRANSACTION = "TRX"


def _current_number(sequence_key: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(sequence_key=sequence_key)
        .scalar()
    )


def next_number(sequence_key: str) -> int:
    """
    Atomically allocate the next number for a sequence key.

    Must run inside the caller's transaction (see concurrency.write_transaction);
    this function only flushes. The UPDATE takes a row-level write lock that
    is held until the caller commits, so concurrent callers serialize here
    and a rolled-back caller releases its number with everything else.
    """
    if not sequence_key:
        raise InvalidInput("sequence_key is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.sequence_key == sequence_key)
        .values(next_number=DocumentSequence.next_number + 1, updated_at=utcnow())
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_number(sequence_key) - 1

    # First number for this key. The SAVEPOINT keeps a losing insert race
    # from aborting the caller's transaction.
    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(sequence_key=sequence_key, next_number=2))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current_number(sequence_key) - 1


def format_document_number(prefix: str, number: int, *, period: str | int | None = None, pad: int = 4) -> str:
    """
    Format a sequence value for humans.

    >>> format_document_number("PO", 7, period=2026)
    'PO-2026-0007'
    """
    if number < 1:
        raise InvalidInput("sequence numbers start at 1")
    parts = [prefix]
    if period is not None:
        parts.append(str(period))
    parts.append(f"{number:0{pad}d}")
    return "-".join(parts)


def sequence_key_for(document_type: str, period: str | int | None = None) -> str:
    if period is None:
        return document_type
    return f"{document_type}:{period}"


def next_document_number(
    document_type: str,
    prefix: str,
    *,
    pad: int = 4,
    period: str | int | None = None,
) -> str:
    """Allocate and format the next number for a document type, scoped by period."""
    number = next_number(sequence_key_for(document_type, period))
    return format_document_number(prefix, number, period=period, pad=pad)


def next_po_number() -> str:
    """PO-YYYY-NNNN, counter reset every calendar year."""
    cfg = current_app.config
    return next_document_number(
        DOCUMENT_TYPE_PURCHASE_ORDER,
        cfg.get("PO_NUMBER_PREFIX", "PO"),
        pad=cfg.get("PO_NUMBER_PAD", 4),
        period=utcnow().year,
    )


def next_transaction_number() -> str:
    """TRX-YYYY-NNNNNN, counter reset every calendar year."""
    cfg = current_app.config
    return next_document_number(
        DOCUMENT_TYPE_SALES_TRANSACTION,
        cfg.get("TRX_NUMBER_PREFIX", "TRX"),
        pad=cfg.get("TRX_NUMBER_PAD", 6),
        period=utcnow().year,
    )
