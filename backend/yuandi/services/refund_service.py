"""
Refund Service

Refunding reverses an order's effects:
- order status -> refunded (from paid, shipped or delivered)
- stock restored per order line, using the quantities recorded on the
  order (never quantities from the request)
- refund outflow in the cashbook, plus an optional shipping-refund inflow
  when the carrier returns the shipping fee

All of it commits together or not at all.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Refund
from ..models.cashbook import CASHBOOK_REFUND, CASHBOOK_SHIPPING_REFUND
from ..models.inventory import MOVEMENT_REFUND
from ..models.orders import ORDER_STATUS_REFUNDED
from yuandi.time_utils import utcnow
from .audit_service import append_event
from .cashbook_service import append_cashbook_entry
from .concurrency import begin_immediate, run_with_retry
from .inventory_service import apply_stock_delta
from .order_service import OrderError, load_order_for_update, require_transition


class RefundError(OrderError):
    """Raised for refund operation errors."""
    pass


def process_refund(
    *,
    order_id: int,
    reason: str,
    refund_amount: int | None = None,
    refund_fee: int = 0,
    shipping_refund: int | None = None,
) -> Refund:
    """
    Refund an order.

    Args:
        order_id: Order to refund
        reason: Why (required; stored on the order and the refund)
        refund_amount: KRW paid back to the customer; defaults to the order total
        refund_fee: Fee withheld from the customer, recorded on the refund
        shipping_refund: Shipping fee recovered from the carrier, booked as income

    Raises:
        OrderNotFoundError: unknown order
        InvalidTransitionError: order already refunded
        RefundError: invalid amounts or missing reason
    """
    if not reason or not reason.strip():
        raise RefundError("refund reason is required")
    if refund_fee is None or refund_fee < 0:
        raise RefundError("refund_fee must be >= 0")
    if shipping_refund is not None and shipping_refund < 0:
        raise RefundError("shipping_refund must be >= 0")

    def _op():
        begin_immediate()
        order = load_order_for_update(order_id)
        require_transition(order, ORDER_STATUS_REFUNDED)

        amount = order.total_amount if refund_amount is None else int(refund_amount)
        if amount <= 0:
            raise RefundError("refund amount must be > 0")
        if amount > order.total_amount:
            raise RefundError(
                f"Cannot refund {amount}. Order total is {order.total_amount}.",
                details={"order_total": order.total_amount, "refund_amount": amount},
            )

        refund = Refund(
            order_id=order.id,
            reason=reason.strip(),
            amount=amount,
            refund_fee=int(refund_fee),
            shipping_refund=int(shipping_refund) if shipping_refund else None,
        )
        db.session.add(refund)
        db.session.flush()

        order.status = ORDER_STATUS_REFUNDED
        order.refund_reason = refund.reason
        order.refunded_at = utcnow()

        for line in order.items:
            apply_stock_delta(
                product_id=line.product_id,
                quantity_delta=line.quantity,
                movement_type=MOVEMENT_REFUND,
                ref_type="refund",
                ref_id=refund.id,
                ref_no=order.order_number,
            )

        append_cashbook_entry(
            type=CASHBOOK_REFUND,
            amount=-amount,
            description=f"환불 - {order.order_number}",
            order_id=order.id,
            refund_reason=refund.reason,
        )

        if shipping_refund:
            append_cashbook_entry(
                type=CASHBOOK_SHIPPING_REFUND,
                amount=int(shipping_refund),
                description=f"배송비 환불 - {order.order_number}",
                order_id=order.id,
            )

        append_event(
            table_name="orders",
            record_id=order.id,
            action="refund",
            payload={
                "refund_id": refund.id,
                "status": ORDER_STATUS_REFUNDED,
                "refund_reason": refund.reason,
                "refund_amount": amount,
                "refund_fee": refund.refund_fee,
                "shipping_refund": refund.shipping_refund,
            },
        )

        db.session.commit()
        return refund

    return run_with_retry(_op)


def get_order_refunds(order_id: int) -> list[Refund]:
    return db.session.query(Refund).filter_by(order_id=order_id).order_by(Refund.id.asc()).all()
