# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/yuandi/routes/orders.py
"""
Order API Routes

DESIGN:
- Create orders (stock check, stock decrement and sales entry in one step)
- Ship, complete and refund through the order status machine
- Every mutation commits atomically with its inventory and cashbook effects

ERRORS:
- 400 invalid input
- 404 unknown order
- 409 insufficient stock ("재고 부족") or invalid status transition
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import Column, Integer, String

from ..models import Order, Shipment
from ..models.orders import ORDER_STATUSES
from ..services import order_service, shipment_service, refund_service
from ..services.audit_service import list_events
from ..services.order_service import (
    OrderError,
    OrderNotFoundError,
    InsufficientStockError,
    InvalidTransitionError,
)
from ..validation import (
    ModelValidationPolicy,
    payload_columns,
    validate_payload,
    ValidationError,
    enforce_rules_order,
    enforce_rules_order_item,
    enforce_rules_shipment,
    enforce_rules_refund,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_phone",
        "pccc",
        "shipping_address",
        "total_amount",
        "shipping_fee",
    },
    required_on_create={"customer_name", "customer_phone", "pccc", "shipping_address"},
)

ORDER_ITEM_COLUMNS = payload_columns(
    Column("product_id", Integer, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("price", Integer, nullable=False),
)

ORDER_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=set(ORDER_ITEM_COLUMNS),
    required_on_create={"product_id", "quantity", "price"},
)

SHIPMENT_POLICY = ModelValidationPolicy(
    writable_fields={"courier_company", "tracking_number", "shipping_fee", "shipping_date"},
    required_on_create={"courier_company", "tracking_number"},
)

REFUND_COLUMNS = payload_columns(
    Column("reason", String(255), nullable=False),
    Column("refund_amount", Integer),
    Column("refund_fee", Integer),
    Column("shipping_refund", Integer),
)

REFUND_POLICY = ModelValidationPolicy(
    writable_fields=set(REFUND_COLUMNS),
    required_on_create={"reason"},
)


def _order_error_response(e: OrderError):
    if isinstance(e, OrderNotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, (InsufficientStockError, InvalidTransitionError)):
        return jsonify({"error": str(e), "details": e.details}), 409
    return jsonify({"error": str(e)}), 400


def _validate_order_payload(payload: dict) -> tuple[dict, list[dict]]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    header = {k: v for k, v in payload.items() if k != "items"}
    patch = validate_payload(model=Order, payload=header, policy=ORDER_POLICY, partial=False)
    enforce_rules_order(patch)

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must have at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index + 1}: must be an object")
        item = validate_payload(
            columns=ORDER_ITEM_COLUMNS,
            payload=raw,
            policy=ORDER_ITEM_POLICY,
            partial=False,
        )
        enforce_rules_order_item(item, index)
        items.append(item)

    return patch, items


# =============================================================================
# ORDER CREATION & QUERIES
# =============================================================================

@orders_bp.post("")
def create_order_route():
    """
    Create a paid order.

    Request body:
    {
        "customer_name": "홍길동",
        "customer_phone": "010-1234-5678",
        "pccc": "P123456789012",
        "shipping_address": "서울시 ...",
        "items": [{"product_id": 1, "quantity": 2, "price": 1200000}],
        "total_amount": 2400000,  (optional, default: sum of lines)
        "shipping_fee": 0          (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        409: Insufficient stock (nothing written)
    """
    try:
        patch, items = _validate_order_payload(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        order = order_service.create_order(items=items, **patch)
        return jsonify({"order": order.to_dict()}), 201

    except OrderError as e:
        return _order_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - status: paid | shipped | delivered | refunded (optional)
    - pccc: exact customs code (optional)
    - order_number: exact order number, e.g. ORD-240101-001 (optional)
    - limit: max rows (default 100)
    """
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(ORDER_STATUSES)}"}), 400

    limit = request.args.get("limit", default=100, type=int)
    if limit <= 0:
        return jsonify({"error": "limit must be > 0"}), 400

    order_number = request.args.get("order_number")
    if order_number:
        order = order_service.get_order_by_number(order_number)
        orders = [order] if order is not None else []
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}), 200

    orders = order_service.list_orders(
        status=status,
        pccc=request.args.get("pccc"),
        limit=min(limit, 500),
    )
    return jsonify({"orders": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}), 200


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    """Order with lines, shipment, refunds and its event trail."""
    order = order_service.get_order(order_id)
    if order is None:
        return jsonify({"error": "Order not found"}), 404

    return jsonify({
        "order": order.to_dict(),
        "shipments": [s.to_dict() for s in shipment_service.get_order_shipments(order_id)],
        "refunds": [r.to_dict() for r in refund_service.get_order_refunds(order_id)],
        "events": [e.to_dict() for e in list_events(table_name="orders", record_id=order_id)],
    }), 200


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

@orders_bp.patch("/<int:order_id>/ship")
def ship_order_route(order_id: int):
    """
    Ship a paid order.

    Request body:
    {
        "courier_company": "CJ대한통운",
        "tracking_number": "1234567890",
        "shipping_fee": 5000,      (optional, default: 0)
        "shipping_date": "..."     (optional ISO-8601, default: now)
    }
    """
    try:
        patch = validate_payload(
            model=Shipment,
            payload=request.get_json(silent=True) or {},
            policy=SHIPMENT_POLICY,
            partial=False,
        )
        enforce_rules_shipment(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        shipment = shipment_service.create_shipment(
            order_id=order_id,
            courier_company=patch["courier_company"],
            tracking_number=patch["tracking_number"],
            shipping_fee=patch.get("shipping_fee") or 0,
            shipping_date=patch.get("shipping_date"),
        )
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict(), "shipment": shipment.to_dict()}), 200

    except OrderError as e:
        return _order_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to ship order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/complete")
def complete_order_route(order_id: int):
    """Mark a shipped order delivered."""
    try:
        order = order_service.complete_order(order_id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderError as e:
        return _order_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/refund")
def refund_order_route(order_id: int):
    """
    Refund an order and restore its stock.

    Request body:
    {
        "reason": "고객 변심",
        "refund_amount": 1200000,  (optional, default: order total)
        "refund_fee": 1000,        (optional, default: 0)
        "shipping_refund": 3000    (optional)
    }
    """
    try:
        patch = validate_payload(
            columns=REFUND_COLUMNS,
            payload=request.get_json(silent=True) or {},
            policy=REFUND_POLICY,
            partial=False,
        )
        enforce_rules_refund(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        refund = refund_service.process_refund(
            order_id=order_id,
            reason=patch["reason"],
            refund_amount=patch.get("refund_amount"),
            refund_fee=patch.get("refund_fee") or 0,
            shipping_refund=patch.get("shipping_refund"),
        )
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict(), "refund": refund.to_dict()}), 200

    except OrderError as e:
        return _order_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
