# Overview: Stock movements; the only code that changes Product.on_hand.

# backend/yuandi/services/inventory_service.py

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, InventoryMovement
from ..models.cashbook import CASHBOOK_INBOUND
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INBOUND,
    MOVEMENT_TYPES,
)
from .audit_service import append_event
from .cashbook_service import append_cashbook_entry
from .concurrency import begin_immediate, run_with_retry
"""
Inventory Invariants (authoritative)

- Product.on_hand is denormalized; InventoryMovement is the history.
  on_hand == SUM(quantity_delta) over the product's movements, always.
- on_hand never goes negative: decrements are a single conditional
  UPDATE ... WHERE on_hand >= :q, never read-then-write.
- Every on_hand change writes exactly one movement row, in the same
  transaction, carrying balance_before/balance_after.
- Movements are append-only.
"""


class StockUnavailableError(ValueError):
    """A conditional decrement matched no row: not enough stock at write time."""

    def __init__(self, product_id: int, requested: int):
        super().__init__(f"insufficient stock for product {product_id}")
        self.product_id = product_id
        self.requested = requested


def _ensure_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ValueError("product not found")
    if require_active and not product.is_active:
        raise ValueError("product is inactive")
    return product


def _current_on_hand(product_id: int) -> int:
    return int(
        db.session.query(Product.on_hand).filter(Product.id == product_id).scalar() or 0
    )


def apply_stock_delta(
    *,
    product_id: int,
    quantity_delta: int,
    movement_type: str,
    ref_type: str | None = None,
    ref_id: int | None = None,
    ref_no: str | None = None,
    unit_cost_krw: int | None = None,
    total_cost_krw: int | None = None,
    note: str | None = None,
) -> InventoryMovement:
    """
    Change on_hand atomically and record the movement.

    Negative deltas only apply while on_hand stays >= 0; otherwise
    StockUnavailableError is raised and nothing is written. Flushes but does
    not commit: callers own the transaction.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type: {movement_type}")
    if quantity_delta == 0:
        raise ValueError("quantity_delta must be non-zero")

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(on_hand=Product.on_hand + quantity_delta)
        .execution_options(synchronize_session=False)
    )
    if quantity_delta < 0:
        stmt = stmt.where(Product.on_hand >= -quantity_delta)

    result = db.session.execute(stmt)
    if not result.rowcount:
        if quantity_delta < 0:
            raise StockUnavailableError(product_id, -quantity_delta)
        raise ValueError("product not found")

    balance_after = _current_on_hand(product_id)

    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.expire(product, ["on_hand"])

    movement = InventoryMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        balance_before=balance_after - quantity_delta,
        balance_after=balance_after,
        ref_type=ref_type,
        ref_id=ref_id,
        ref_no=ref_no,
        unit_cost_krw=unit_cost_krw,
        total_cost_krw=total_cost_krw,
        note=note,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def compute_total_cost_krw(
    *,
    total_cost_krw: int | None,
    cost_cny: Decimal | float | None,
    exchange_rate: Decimal | float | None,
) -> int:
    """
    Inbound cost in KRW.

    An explicit total wins; otherwise cost_cny * exchange_rate, rounded
    half-up to whole won, with the configured default rate when none is given.
    """
    if total_cost_krw is not None:
        return int(total_cost_krw)
    if cost_cny is None:
        return 0
    rate = exchange_rate
    if rate is None:
        rate = current_app.config.get("DEFAULT_CNY_KRW_RATE", 180)
    krw = Decimal(str(cost_cny)) * Decimal(str(rate))
    return int(krw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def receive_inbound(
    *,
    product_id: int,
    quantity: int,
    cost_cny: Decimal | float | None = None,
    exchange_rate: Decimal | float | None = None,
    total_cost_krw: int | None = None,
    supplier: str | None = None,
    invoice_number: str | None = None,
    note: str | None = None,
) -> InventoryMovement:
    """
    Receive stock: on_hand += quantity, then book the purchase as an outflow.

    Both writes commit together. If the stock update fails the cashbook
    entry is never attempted; if the cashbook entry fails the stock update
    is rolled back.
    """
    if quantity is None or quantity <= 0:
        raise ValueError("quantity must be > 0 for inbound")

    def _op():
        begin_immediate()
        product = _ensure_product(product_id, require_active=True)

        total_krw = compute_total_cost_krw(
            total_cost_krw=total_cost_krw,
            cost_cny=cost_cny,
            exchange_rate=exchange_rate,
        )
        if total_krw < 0:
            raise ValueError("total cost must be >= 0")

        movement = apply_stock_delta(
            product_id=product.id,
            quantity_delta=quantity,
            movement_type=MOVEMENT_INBOUND,
            ref_type="inbound",
            ref_no=invoice_number,
            unit_cost_krw=(total_krw // quantity) if total_krw else None,
            total_cost_krw=total_krw or None,
            note=note,
        )

        # Free stock (samples, replacements) moves inventory but not cash
        if total_krw > 0:
            fx_rate = None
            if cost_cny is not None:
                fx_rate = exchange_rate
                if fx_rate is None:
                    fx_rate = current_app.config.get("DEFAULT_CNY_KRW_RATE", 180)
            append_cashbook_entry(
                type=CASHBOOK_INBOUND,
                amount=-total_krw,
                description=f"제품입고 - {product.sku}",
                product_id=product.id,
                supplier=supplier,
                invoice_number=invoice_number,
                currency="CNY" if cost_cny is not None else "KRW",
                fx_rate=fx_rate,
                original_amount=cost_cny,
            )

        append_event(
            table_name="products",
            record_id=product.id,
            action="inbound",
            payload={
                "movement_id": movement.id,
                "quantity": quantity,
                "total_cost_krw": total_krw,
                "supplier": supplier,
                "invoice_number": invoice_number,
            },
        )

        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_inventory(*, product_id: int, quantity_delta: int, note: str | None = None) -> InventoryMovement:
    """
    Manual stock correction (count discrepancies, damage, loss).

    No cashbook effect. Rejected if on_hand would go negative.
    """
    if not quantity_delta:
        raise ValueError("quantity_delta must be non-zero for adjustment")

    def _op():
        begin_immediate()
        _ensure_product(product_id)
        try:
            movement = apply_stock_delta(
                product_id=product_id,
                quantity_delta=quantity_delta,
                movement_type=MOVEMENT_ADJUSTMENT,
                ref_type="adjustment",
                note=note,
            )
        except StockUnavailableError:
            raise ValueError("adjustment would make on-hand negative")

        append_event(
            table_name="products",
            record_id=product_id,
            action="adjust",
            payload={"movement_id": movement.id, "quantity_delta": quantity_delta, "note": note},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def get_movement_quantity_sum(product_id: int) -> int:
    """SUM(quantity_delta) for a product; what on_hand must equal."""
    return int(
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity_delta), 0))
        .filter(InventoryMovement.product_id == product_id)
        .scalar()
        or 0
    )


def list_movements(*, product_id: int, limit: int = 200) -> list[InventoryMovement]:
    _ensure_product(product_id)
    return (
        db.session.query(InventoryMovement)
        .filter_by(product_id=product_id)
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
