# backend/yuandi/routes/inventory.py
"""
Inventory routes: inbound receipts, manual adjustments, movement history.

Inbound is the only way stock enters; it books the purchase cost in the
cashbook in the same transaction.
"""
from flask import Blueprint, request, current_app
from sqlalchemy import Column, Integer, Numeric, String

from ..models import InventoryMovement
from ..services.inventory_service import (
    receive_inbound,
    adjust_inventory,
    list_movements,
)
from ..services.products_service import get_product
from ..validation import (
    ModelValidationPolicy,
    payload_columns,
    validate_payload,
    ValidationError,
    enforce_rules_inbound,
    enforce_rules_adjustment,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INBOUND_COLUMNS = payload_columns(
    Column("product_id", Integer, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("cost_cny", Numeric(12, 2)),
    Column("exchange_rate", Numeric(10, 4)),
    Column("total_cost_krw", Integer),
    Column("supplier", String(128)),
    Column("invoice_number", String(64)),
    Column("note", String(255)),
)

INBOUND_POLICY = ModelValidationPolicy(
    writable_fields=set(INBOUND_COLUMNS),
    required_on_create={"product_id", "quantity"},
)

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity_delta", "note"},
    required_on_create={"product_id", "quantity_delta"},
)


@inventory_bp.post("/inbound")
def inbound_route():
    """
    Receive stock for a product.

    Request body:
    {
        "product_id": 1,
        "quantity": 100,
        "cost_cny": 50.00,          (optional)
        "exchange_rate": 180.5,     (optional, default DEFAULT_CNY_KRW_RATE)
        "total_cost_krw": 902500,   (optional, overrides cost_cny * rate)
        "supplier": "...",          (optional)
        "invoice_number": "...",    (optional)
        "note": "..."               (optional)
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            columns=INBOUND_COLUMNS,
            payload=payload,
            policy=INBOUND_POLICY,
            partial=False,
        )
        enforce_rules_inbound(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    product = get_product(patch["product_id"])
    if product is None:
        return {"error": "Product not found"}, 404

    try:
        movement = receive_inbound(
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            cost_cny=patch.get("cost_cny"),
            exchange_rate=patch.get("exchange_rate"),
            total_cost_krw=patch.get("total_cost_krw"),
            supplier=patch.get("supplier"),
            invoice_number=patch.get("invoice_number"),
            note=patch.get("note"),
        )
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to receive inbound stock")
        return {"error": "Internal server error"}, 500

    return {"movement": movement.to_dict(), "product": get_product(patch["product_id"]).to_dict()}, 201


@inventory_bp.post("/adjust")
def adjust_route():
    """
    Manual stock correction (count discrepancy, damage, loss).

    No cashbook effect. Rejected when on_hand would go negative.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryMovement,
            payload=payload,
            policy=ADJUST_POLICY,
            partial=False,
        )
        enforce_rules_adjustment(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    if get_product(patch["product_id"]) is None:
        return {"error": "Product not found"}, 404

    try:
        movement = adjust_inventory(
            product_id=patch["product_id"],
            quantity_delta=patch["quantity_delta"],
            note=patch.get("note"),
        )
    except ValueError as e:
        return {"error": str(e)}, 400

    return {"movement": movement.to_dict(), "product": get_product(patch["product_id"]).to_dict()}, 201


@inventory_bp.get("/<int:product_id>/movements")
def movements_route(product_id: int):
    """Movement history for a product, newest first."""
    limit = request.args.get("limit", default=200, type=int)
    if limit <= 0:
        return {"error": "limit must be > 0"}, 400

    if get_product(product_id) is None:
        return {"error": "Product not found"}, 404

    movements = list_movements(product_id=product_id, limit=min(limit, 1000))
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}, 200
