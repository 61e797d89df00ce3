# Overview: Receipt number allocation.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..errors import ValidationError
from agripos.time_utils import utcnow


RECEIPT_PREFIX_SALE = "RCP"
RECEIPT_PREFIX_REFUND = "RFD"


def _bump_sequence(prefix: str, period: str) -> int | None:
    """Take the next number from an existing sequence row; None if the row is missing."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.prefix == prefix,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    if not db.session.execute(stmt).rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(prefix=prefix, period=period)
        .scalar()
    )
    return current - 1


def next_receipt_number(prefix: str, *, on: datetime | None = None, pad: int = 4) -> str:
    """
    Allocate the next receipt number for a prefix and business day,
    e.g. "RCP-20261019-0001".

    Increments the sequence row with a single UPDATE so two callers never
    receive the same number. Runs inside the caller's unit of work (no commit).

    The first number of a day inserts the row inside a savepoint. If another
    unit inserted it first, the unique constraint fails, the savepoint is
    rolled back and the number is taken from the winner's row instead.
    """
    if not prefix:
        raise ValidationError("prefix is required")

    period = (on or utcnow()).strftime("%Y%m%d")
    number = _bump_sequence(prefix, period)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(prefix=prefix, period=period, next_number=2))
            number = 1
        except IntegrityError:
            current_app.logger.info("Sequence %s/%s created concurrently; retrying increment", prefix, period)
            number = _bump_sequence(prefix, period)
            if number is None:
                raise

    return f"{prefix}-{period}-{str(number).zfill(pad)}"
