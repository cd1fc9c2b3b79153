"""
Shipment Service

Shipping an order writes three things together: the Shipment row, the
order's status/tracking fields, and the shipping-fee outflow in the
cashbook. Only paid orders can ship, and each order ships once.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Shipment
from ..models.cashbook import CASHBOOK_SHIPPING
from ..models.orders import ORDER_STATUS_SHIPPED
from yuandi.time_utils import utcnow
from .audit_service import append_event
from .cashbook_service import append_cashbook_entry
from .concurrency import begin_immediate, run_with_retry
from .order_service import OrderError, load_order_for_update, require_transition


class ShipmentError(OrderError):
    """Raised for shipment operation errors."""
    pass


def create_shipment(
    *,
    order_id: int,
    courier_company: str,
    tracking_number: str,
    shipping_fee: int = 0,
    shipping_date: datetime | None = None,
) -> Shipment:
    """
    Register the outbound parcel for an order.

    Args:
        order_id: Order being shipped (must be paid)
        courier_company: Carrier name, e.g. "CJ대한통운"
        tracking_number: Carrier waybill number
        shipping_fee: Fee paid to the carrier in KRW (booked as an outflow)
        shipping_date: When the parcel left; defaults to now

    Raises:
        OrderNotFoundError: unknown order
        InvalidTransitionError: order not in paid status
        ShipmentError: bad courier/tracking/fee input
    """
    if not courier_company or not courier_company.strip():
        raise ShipmentError("courier_company is required")
    if not tracking_number or not tracking_number.strip():
        raise ShipmentError("tracking_number is required")
    if shipping_fee is None or shipping_fee < 0:
        raise ShipmentError("shipping_fee must be >= 0")

    def _op():
        begin_immediate()
        order = load_order_for_update(order_id)
        require_transition(order, ORDER_STATUS_SHIPPED)

        now = utcnow()
        shipment = Shipment(
            order_id=order.id,
            courier_company=courier_company.strip(),
            tracking_number=tracking_number.strip(),
            shipping_fee=int(shipping_fee),
            shipping_date=shipping_date or now,
        )
        db.session.add(shipment)
        db.session.flush()

        order.status = ORDER_STATUS_SHIPPED
        order.courier_company = shipment.courier_company
        order.tracking_number = shipment.tracking_number
        order.shipped_at = now

        if shipment.shipping_fee > 0:
            append_cashbook_entry(
                type=CASHBOOK_SHIPPING,
                amount=-shipment.shipping_fee,
                description=f"배송비 - {order.order_number}",
                order_id=order.id,
                courier_company=shipment.courier_company,
            )

        append_event(
            table_name="orders",
            record_id=order.id,
            action="ship",
            payload={
                "shipment_id": shipment.id,
                "courier_company": shipment.courier_company,
                "tracking_number": shipment.tracking_number,
                "shipping_fee": shipment.shipping_fee,
            },
        )

        db.session.commit()
        return shipment

    return run_with_retry(_op)


def get_order_shipments(order_id: int) -> list[Shipment]:
    return db.session.query(Shipment).filter_by(order_id=order_id).order_by(Shipment.id.asc()).all()
