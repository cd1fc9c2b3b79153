# Overview: Cashbook (running cash ledger); every money movement lands here.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import CashbookTransaction
from ..models.cashbook import CASHBOOK_ADJUSTMENT, CASHBOOK_TYPES
from .concurrency import begin_immediate, lock_for_update, run_with_retry
"""
Cashbook Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- amount is signed KRW: inbound, shipping, refund < 0; sales, shipping_refund > 0;
  adjustment may be either sign.
- balance of a row == balance of the previous row (by id) + amount, so the
  latest balance == SUM(amount).
- Entries are written in the same transaction as the stock/order change
  they pay for.
"""


def _latest_entry(*, lock: bool = False) -> CashbookTransaction | None:
    q = db.session.query(CashbookTransaction).order_by(CashbookTransaction.id.desc())
    if lock:
        q = lock_for_update(q)
    return q.first()


def append_cashbook_entry(
    *,
    type: str,
    amount: int,
    description: str | None = None,
    product_id: int | None = None,
    order_id: int | None = None,
    supplier: str | None = None,
    invoice_number: str | None = None,
    courier_company: str | None = None,
    customer_name: str | None = None,
    refund_reason: str | None = None,
    currency: str = "KRW",
    fx_rate: Decimal | float | None = None,
    original_amount: Decimal | float | None = None,
    transaction_date: datetime | None = None,
) -> CashbookTransaction:
    """
    Append one entry and carry the running balance forward.

    Locks the latest row so concurrent appends serialize on Postgres; on
    SQLite the workflow's BEGIN IMMEDIATE does the same. Flushes, never commits.
    """
    if type not in CASHBOOK_TYPES:
        raise ValueError(f"unknown cashbook type: {type}")

    previous = _latest_entry(lock=True)
    previous_balance = previous.balance if previous is not None else 0

    entry = CashbookTransaction(
        type=type,
        amount=int(amount),
        description=description,
        product_id=product_id,
        order_id=order_id,
        supplier=supplier,
        invoice_number=invoice_number,
        courier_company=courier_company,
        customer_name=customer_name,
        refund_reason=refund_reason,
        currency=currency,
        fx_rate=Decimal(str(fx_rate)) if fx_rate is not None else None,
        original_amount=Decimal(str(original_amount)) if original_amount is not None else None,
        balance=previous_balance + int(amount),
    )
    if transaction_date is not None:
        entry.transaction_date = transaction_date
    db.session.add(entry)
    db.session.flush()
    return entry


def record_adjustment(*, amount: int, description: str) -> CashbookTransaction:
    """Manual correction (other income/expense). Either sign, never zero."""
    if not amount:
        raise ValueError("amount must be non-zero")
    if not description or not description.strip():
        raise ValueError("description is required")

    def _op():
        begin_immediate()
        entry = append_cashbook_entry(
            type=CASHBOOK_ADJUSTMENT,
            amount=amount,
            description=description.strip(),
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def record_opening_balance(amount: int) -> CashbookTransaction:
    """Seed the cashbook with the cash on hand when bookkeeping starts."""
    return record_adjustment(amount=amount, description="기초잔액")


def get_current_balance() -> int:
    latest = _latest_entry()
    return latest.balance if latest is not None else 0


def get_amount_sum() -> int:
    return int(
        db.session.query(func.coalesce(func.sum(CashbookTransaction.amount), 0)).scalar() or 0
    )


def list_cashbook_transactions(
    *,
    type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    order_id: int | None = None,
    limit: int = 100,
) -> list[CashbookTransaction]:
    """Newest first. start/end are inclusive on transaction_date."""
    q = db.session.query(CashbookTransaction)
    if type:
        q = q.filter(CashbookTransaction.type == type)
    if order_id is not None:
        q = q.filter(CashbookTransaction.order_id == order_id)
    if start is not None:
        q = q.filter(CashbookTransaction.transaction_date >= start)
    if end is not None:
        q = q.filter(CashbookTransaction.transaction_date <= end)
    return q.order_by(CashbookTransaction.id.desc()).limit(limit).all()
