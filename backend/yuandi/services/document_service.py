# Overview: Document number allocation (order numbers, SKU serials).

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from yuandi.time_utils import local_date_key, to_local, utcnow


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_sequence_value(*, document_type: str, period_key: str = "") -> int:
    """
    Atomically allocate the next number for (document_type, period_key).

    Uses a single UPDATE ... SET next_number = next_number + 1 so two callers
    can never receive the same value. Runs inside the caller's transaction
    (flush only, no commit).
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period_key == period_key,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        seq = DocumentSequence(document_type=document_type, period_key=period_key, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            # Another writer created the row first; fall through to the increment
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"could not allocate {document_type} number")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period_key=period_key)
        .scalar()
    )
    return current - 1


def format_order_number(sequence: int, local_dt: datetime) -> str:
    """ORD-YYMMDD-NNN, e.g. ORD-240101-001."""
    return f"ORD-{local_dt:%y%m%d}-{sequence:03d}"


def next_order_number(now: datetime | None = None) -> str:
    """Allocate the next order number; the sequence resets daily at local midnight."""
    offset = current_app.config.get("ORDER_NUMBER_UTC_OFFSET_HOURS", 9)
    now = now or utcnow()
    local_dt = to_local(now, offset)
    period_key = local_date_key(now, offset)
    seq = next_sequence_value(document_type="ORDER", period_key=period_key)
    return format_order_number(seq, local_dt)
