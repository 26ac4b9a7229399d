# Overview: Sequential document numbers (INV, JE, SET and EST, each YYYY-NNNN).

from __future__ import annotations

from typing import Optional

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentCounter
from ..time_utils import utctoday

INVOICE_PREFIX = "INV"
JOURNAL_PREFIX = "JE"
SETTLEMENT_PREFIX = "SET"
ESTIMATE_PREFIX = "EST"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_value(counter_key: str) -> int:
    return (
        db.session.query(DocumentCounter.counter_value)
        .filter_by(counter_key=counter_key)
        .scalar()
    )


def next_document_number(prefix: str, *, year: Optional[int] = None, pad: int = 4) -> str:
    """
    Allocate the next number for prefix within a year.

    Counters are keyed per prefix and year, so numbering restarts at 0001
    each January. The increment is a single UPDATE so concurrent callers
    serialize on the counter row. Runs inside the caller's transaction
    (flushes, never commits).
    """
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    year = year or utctoday().year
    counter_key = f"{prefix}-{year}"

    stmt = (
        update(DocumentCounter)
        .where(DocumentCounter.counter_key == counter_key)
        .values(counter_value=DocumentCounter.counter_value + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_value(counter_key)
    else:
        # First number of the year. A concurrent first insert fails on the
        # unique counter_key and the caller's transaction rolls back.
        db.session.add(DocumentCounter(counter_key=counter_key, prefix=prefix, counter_value=1))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{year}-{next_num:0{pad}d}"


def next_invoice_number(year: Optional[int] = None) -> str:
    return next_document_number(INVOICE_PREFIX, year=year)


def next_journal_number(year: Optional[int] = None) -> str:
    return next_document_number(JOURNAL_PREFIX, year=year)


def next_settlement_number(year: Optional[int] = None) -> str:
    return next_document_number(SETTLEMENT_PREFIX, year=year)


def next_estimate_number(year: Optional[int] = None) -> str:
    return next_document_number(ESTIMATE_PREFIX, year=year)
