# Overview: Read-only reconciliation of denormalized values against history.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CashbookTransaction, InventoryMovement, Order, Product, Refund, Shipment
from ..models.orders import ORDER_STATUS_DELIVERED, ORDER_STATUS_REFUNDED, ORDER_STATUS_SHIPPED


@dataclass
class IntegrityReport:
    inventory: bool
    cashbook: bool
    orders: bool
    issues: List[str] = field(default_factory=list)

    @property
    def overall(self) -> bool:
        return self.inventory and self.cashbook and self.orders

    def to_dict(self) -> dict:
        return {
            "inventory": self.inventory,
            "cashbook": self.cashbook,
            "orders": self.orders,
            "overall": self.overall,
            "issues": list(self.issues),
        }


class DatabaseIntegrityValidator:
    """
    Recomputes expected values from history and compares them with the
    stored ones:

    - Product.on_hand vs SUM(InventoryMovement.quantity_delta)
    - cashbook running balances vs prefix sums of amount
    - order status vs the presence of Shipment / Refund rows

    Never writes and never repairs; problems are reported, not raised.
    `issues` holds the violations found by the most recent check.
    """

    def __init__(self):
        self.issues: list[str] = []

    def _flag(self, message: str) -> None:
        self.issues.append(message)
        current_app.logger.warning("Integrity violation: %s", message)

    def validate_inventory_integrity(self, product_id: int | None = None) -> bool:
        self.issues = []
        movement_sums = (
            db.session.query(
                InventoryMovement.product_id,
                func.coalesce(func.sum(InventoryMovement.quantity_delta), 0),
            )
            .group_by(InventoryMovement.product_id)
        )
        products = db.session.query(Product.id, Product.sku, Product.on_hand)
        if product_id is not None:
            movement_sums = movement_sums.filter(InventoryMovement.product_id == product_id)
            products = products.filter(Product.id == product_id)

        expected = {pid: int(total) for pid, total in movement_sums.all()}

        ok = True
        for pid, sku, on_hand in products.order_by(Product.id.asc()).all():
            expected_on_hand = expected.get(pid, 0)
            if on_hand != expected_on_hand:
                ok = False
                self._flag(f"product {sku} on_hand={on_hand} but movements sum to {expected_on_hand}")
        return ok

    def validate_cashbook_integrity(self) -> bool:
        self.issues = []
        running = 0
        ok = True
        rows = (
            db.session.query(CashbookTransaction.id, CashbookTransaction.amount, CashbookTransaction.balance)
            .order_by(CashbookTransaction.id.asc())
            .all()
        )
        for entry_id, amount, balance in rows:
            running += amount
            if balance != running:
                ok = False
                self._flag(f"cashbook entry {entry_id} balance={balance} but running total is {running}")
        return ok

    def validate_order_status_integrity(self, order_id: int | None = None) -> bool:
        self.issues = []
        ok = True

        shipped_statuses = (ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED)
        unshipped = (
            db.session.query(Order.id, Order.order_number, Order.status)
            .filter(Order.status.in_(shipped_statuses))
            .filter(~db.session.query(Shipment.id).filter(Shipment.order_id == Order.id).exists())
        )
        unrefunded = (
            db.session.query(Order.id, Order.order_number, Order.status)
            .filter(Order.status == ORDER_STATUS_REFUNDED)
            .filter(~db.session.query(Refund.id).filter(Refund.order_id == Order.id).exists())
        )
        if order_id is not None:
            unshipped = unshipped.filter(Order.id == order_id)
            unrefunded = unrefunded.filter(Order.id == order_id)

        for _, number, status in unshipped.all():
            ok = False
            self._flag(f"order {number} is {status} but has no shipment")
        for _, number, status in unrefunded.all():
            ok = False
            self._flag(f"order {number} is {status} but has no refund")
        return ok

    def validate_system_integrity(self) -> IntegrityReport:
        issues: list[str] = []
        inventory_ok = self.validate_inventory_integrity()
        issues += self.issues
        cashbook_ok = self.validate_cashbook_integrity()
        issues += self.issues
        orders_ok = self.validate_order_status_integrity()
        issues += self.issues
        self.issues = issues
        return IntegrityReport(
            inventory=inventory_ok,
            cashbook=cashbook_ok,
            orders=orders_ok,
            issues=list(issues),
        )
