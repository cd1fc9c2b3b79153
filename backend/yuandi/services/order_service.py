"""
Order Service - order intake and the order status machine

Creating an order is the one place where three records must move together:
the order itself, on_hand for every line's product, and the cashbook. All
of it happens in one transaction.

STATUS MACHINE:
    paid -> shipped -> delivered
    paid | shipped | delivered -> refunded
Anything else raises InvalidTransitionError.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, Product
from ..models.cashbook import CASHBOOK_SALES
from ..models.inventory import MOVEMENT_SALE
from ..models.orders import (
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_REFUNDED,
    ORDER_STATUS_SHIPPED,
)
from yuandi.time_utils import utcnow
from .audit_service import append_event
from .cashbook_service import append_cashbook_entry
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .document_service import next_order_number
from .inventory_service import StockUnavailableError, apply_stock_delta


INSUFFICIENT_STOCK_MESSAGE = "재고 부족"

ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PAID: {ORDER_STATUS_SHIPPED, ORDER_STATUS_REFUNDED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED, ORDER_STATUS_REFUNDED},
    ORDER_STATUS_DELIVERED: {ORDER_STATUS_REFUNDED},
    ORDER_STATUS_REFUNDED: set(),
}


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFoundError(OrderError):
    pass


class InsufficientStockError(OrderError):
    def __init__(self, items: list[dict]):
        super().__init__(INSUFFICIENT_STOCK_MESSAGE, details={"items": items})


class InvalidTransitionError(OrderError):
    def __init__(self, order: Order, target: str):
        super().__init__(
            f"Cannot move order {order.order_number} from {order.status} to {target}",
            details={"order_id": order.id, "status": order.status, "target": target},
        )


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def require_transition(order: Order, target: str) -> None:
    if not can_transition(order.status, target):
        raise InvalidTransitionError(order, target)


def load_order_for_update(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    return order


def _requested_quantities(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def check_stock(items: list[dict]) -> None:
    """
    Verify every product can cover its summed quantity. Read-only.

    Raises OrderError for unknown/inactive products and InsufficientStockError
    listing every short product.
    """
    insufficient = []
    for product_id, qty in _requested_quantities(items).items():
        product = db.session.get(Product, product_id)
        if product is None:
            raise OrderError(f"Product {product_id} not found")
        if not product.is_active:
            raise OrderError(f"Product {product.sku} is inactive")
        if product.on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "sku": product.sku,
                "requested_quantity": qty,
                "on_hand": product.on_hand,
            })

    if insufficient:
        raise InsufficientStockError(insufficient)


def create_order(
    *,
    customer_name: str,
    customer_phone: str,
    pccc: str,
    shipping_address: str,
    items: list[dict],
    total_amount: int | None = None,
    shipping_fee: int | None = None,
) -> Order:
    """
    Create a paid order.

    Steps, all in one transaction:
    1. stock check for every line (no writes before it passes)
    2. insert order + lines
    3. conditional decrement per line, one sale movement each
    4. sales entry in the cashbook (+total_amount)

    items: [{"product_id": int, "quantity": int, "price": int}, ...]
    total_amount defaults to the sum of price * quantity.

    Raises:
        InsufficientStockError: any line short, at check time or at write time
        OrderError: no items / unknown or inactive product
    """
    if not items:
        raise OrderError("Order must have at least one item")
    for index, item in enumerate(items):
        if item.get("quantity") is None or int(item["quantity"]) <= 0:
            raise OrderError(f"Item {index + 1}: quantity must be positive")

    def _op():
        begin_immediate()
        check_stock(items)

        computed_total = sum(int(i["price"]) * int(i["quantity"]) for i in items)
        order_total = int(total_amount) if total_amount is not None else computed_total

        order = Order(
            order_number=next_order_number(),
            customer_name=customer_name,
            customer_phone=customer_phone,
            pccc=pccc,
            shipping_address=shipping_address,
            status=ORDER_STATUS_PAID,
            total_amount=order_total,
            shipping_fee=shipping_fee,
        )
        db.session.add(order)
        db.session.flush()

        for item in items:
            line = OrderItem(
                order_id=order.id,
                product_id=item["product_id"],
                quantity=int(item["quantity"]),
                unit_price=int(item["price"]),
                line_total=int(item["price"]) * int(item["quantity"]),
            )
            db.session.add(line)
            db.session.flush()

            try:
                apply_stock_delta(
                    product_id=line.product_id,
                    quantity_delta=-line.quantity,
                    movement_type=MOVEMENT_SALE,
                    ref_type="order",
                    ref_id=order.id,
                    ref_no=order.order_number,
                )
            except StockUnavailableError as e:
                # Lost a race after check_stock passed
                raise InsufficientStockError([{
                    "product_id": e.product_id,
                    "requested_quantity": e.requested,
                    "on_hand": db.session.query(Product.on_hand).filter_by(id=e.product_id).scalar(),
                }])

        append_cashbook_entry(
            type=CASHBOOK_SALES,
            amount=order_total,
            description=f"주문매출 - {order.order_number}",
            order_id=order.id,
            customer_name=customer_name,
        )

        append_event(
            table_name="orders",
            record_id=order.id,
            action="create",
            payload={"order_number": order.order_number, "total_amount": order_total},
        )

        db.session.commit()
        return order

    return run_with_retry(_op)


def complete_order(order_id: int) -> Order:
    """Mark a shipped order delivered. No stock or cashbook effect."""
    def _op():
        begin_immediate()
        order = load_order_for_update(order_id)
        require_transition(order, ORDER_STATUS_DELIVERED)

        order.status = ORDER_STATUS_DELIVERED
        order.delivered_at = utcnow()

        append_event(
            table_name="orders",
            record_id=order.id,
            action="complete",
            payload={"status": ORDER_STATUS_DELIVERED},
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order | None:
    return db.session.get(Order, order_id)


def get_order_by_number(order_number: str) -> Order | None:
    return db.session.query(Order).filter_by(order_number=order_number).first()


def list_orders(
    *,
    status: str | None = None,
    pccc: str | None = None,
    limit: int = 100,
) -> list[Order]:
    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == status)
    if pccc:
        q = q.filter(Order.pccc == pccc)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
