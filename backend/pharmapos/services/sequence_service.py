# Overview: Date-scoped invoice numbering backed by an atomic counter row.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import InvoiceSequence
from ..time_utils import business_date

INVOICE_PREFIX = "INV"
INVOICE_PAD = 4


def _sequence_key(now: datetime) -> str:
    tz_name = current_app.config.get("BUSINESS_TIMEZONE", "UTC")
    return business_date(now, tz_name).strftime("%Y%m%d")


def format_invoice_number(day_key: str, number: int) -> str:
    """INV + YYYYMMDD + zero-padded daily sequence, e.g. INV202401150007."""
    return f"{INVOICE_PREFIX}{day_key}{number:0{INVOICE_PAD}d}"


def next_invoice_number(now: datetime) -> str:
    """
    Atomically allocate the next invoice number for the calendar day of `now`.

    Must run inside the invoice's own transaction: the UPDATE row lock
    serializes concurrent checkouts, and a rollback of the invoice also
    rolls back the number, so a day's sequence has neither duplicates nor gaps.
    """
    if now is None:
        raise ValidationError("now is required")
    day_key = _sequence_key(now)

    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.sequence_date == day_key)
        .values(next_number=InvoiceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First invoice of the day. Savepoint so a racing insert does not
        # abort the surrounding invoice transaction.
        try:
            with db.session.begin_nested():
                db.session.add(InvoiceSequence(sequence_date=day_key, next_number=2))
            return format_invoice_number(day_key, 1)
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(sequence_date=day_key)
        .scalar()
    )
    return format_invoice_number(day_key, current - 1)


def peek_next_invoice_number(now: datetime) -> str:
    """The number the next invoice today would get. Reserves nothing."""
    day_key = _sequence_key(now)
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(sequence_date=day_key)
        .scalar()
    )
    return format_invoice_number(day_key, current or 1)
