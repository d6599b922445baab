# Overview: Service-layer operations for document numbers; encapsulates sequence allocation.

from __future__ import annotations

import re
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import today
from .concurrency import run_with_retry


PREFIX_TRANSACTION = "TRX"
PREFIX_VISIT = "VST"
PREFIX_STOCK_MOVEMENT = "STK"

REFERENCE_PATTERN = re.compile(r"^[A-Z]{2,16}-\d{8}-\d{4,}$")


def format_reference_number(prefix: str, on_date: date, number: int, pad: int = 4) -> str:
    return f"{prefix}-{on_date:%Y%m%d}-{number:0{pad}d}"


def allocate_reference_number(prefix: str, on_date: date | None = None, pad: int = 4) -> str:
    """
    Allocate the next {PREFIX}-{YYYYMMDD}-{NNNN} number without retry or commit.

    Callers already inside a run_with_retry unit of work use this directly.
    Uses a row-level UPDATE on (prefix, sequence_date) so two concurrent
    allocations can never read the same counter.
    """
    if not prefix:
        raise ValidationError("prefix is required")
    on_date = on_date or today()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.prefix == prefix,
            DocumentSequence.sequence_date == on_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(prefix=prefix, sequence_date=on_date)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(prefix=prefix, sequence_date=on_date, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Lost the race to create today's row; let the retry loop start over.
            raise StaleDataError(f"document sequence {prefix}/{on_date} created concurrently") from exc
        next_num = 1

    return format_reference_number(prefix, on_date, next_num, pad)


def next_reference_number(prefix: str, on_date: date | None = None, pad: int = 4) -> str:
    """Allocate and commit the next reference number for a prefix/day."""
    def _op() -> str:
        number = allocate_reference_number(prefix, on_date, pad)
        db.session.commit()
        return number

    return run_with_retry(_op)


def is_reference_number(value: str) -> bool:
    return bool(value) and bool(REFERENCE_PATTERN.match(value))
