from __future__ import annotations

from ..extensions import db
from yuandi.time_utils import to_utc_z, utcnow


CASHBOOK_INBOUND = "inbound"
CASHBOOK_SALES = "sales"
CASHBOOK_SHIPPING = "shipping"
CASHBOOK_REFUND = "refund"
CASHBOOK_SHIPPING_REFUND = "shipping_refund"
CASHBOOK_ADJUSTMENT = "adjustment"

CASHBOOK_TYPES = (
    CASHBOOK_INBOUND,
    CASHBOOK_SALES,
    CASHBOOK_SHIPPING,
    CASHBOOK_REFUND,
    CASHBOOK_SHIPPING_REFUND,
    CASHBOOK_ADJUSTMENT,
)


class CashbookTransaction(db.Model):
    """
    Append-only cash ledger entry.

    amount is signed KRW (negative = outflow). balance is the running total
    after this row, in id order. Rows are never updated or deleted.
    """
    __tablename__ = "cashbook_transactions"
    __table_args__ = (
        db.Index("ix_cashbook_type_date", "type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)

    # Source currency for entries booked from a foreign amount (e.g. CNY purchases)
    currency = db.Column(db.String(3), nullable=False, default="KRW")
    fx_rate = db.Column(db.Numeric(12, 4), nullable=True)
    original_amount = db.Column(db.Numeric(14, 2), nullable=True)

    description = db.Column(db.String(255), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    supplier = db.Column(db.String(128), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    courier_company = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(100), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    balance = db.Column(db.Integer, nullable=False)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<CashbookTransaction id={self.id} type={self.type} amount={self.amount} balance={self.balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "currency": self.currency,
            "fx_rate": float(self.fx_rate) if self.fx_rate is not None else None,
            "original_amount": float(self.original_amount) if self.original_amount is not None else None,
            "description": self.description,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "supplier": self.supplier,
            "invoice_number": self.invoice_number,
            "courier_company": self.courier_company,
            "customer_name": self.customer_name,
            "refund_reason": self.refund_reason,
            "balance": self.balance,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
