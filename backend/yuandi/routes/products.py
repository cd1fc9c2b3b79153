# Overview: Flask API routes for product registry operations; parses input and returns JSON responses.

# backend/yuandi/routes/products.py
from flask import Blueprint, request, current_app
from ..services.products_service import (
    list_products as list_products_service,
    register_product,
    update_product,
    deactivate_product,
    get_low_stock_products,
    get_product,
)
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category",
        "model",
        "color",
        "brand",
        "cost_cny",
        "sale_price_krw",
        "low_stock_threshold",
    },
    required_on_create={"name"},
)

# SKU and on_hand are not patchable: SKU identifies the product, stock moves
# only through inbound/order/refund/adjustment.
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_POLICY.writable_fields - {"sku"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products with optional pagination.

    Query params:
    - include_inactive: bool (optional) - include deactivated products
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    return list_products_service(include_inactive=include_inactive, page=page, per_page=per_page)


@products_bp.get("/low-stock")
def low_stock_route():
    """Active products at or below their threshold (or ?threshold=N for all)."""
    threshold = request.args.get("threshold", type=int)
    if threshold is not None and threshold < 0:
        return {"error": "threshold must be >= 0"}, 400
    items = get_low_stock_products(threshold=threshold)
    return {"items": items, "count": len(items)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = get_product(product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
def create_product_route():
    """
    Register a new product.

    SKU is optional; when omitted it is generated from category/model/color.
    New products start with on_hand = 0.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = register_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValueError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to register product")
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch, is_create=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    if get_product(product_id) is None:
        return {"error": "Product not found"}, 404

    try:
        updated = update_product(product_id, patch=patch)
    except ValueError as e:
        return {"error": str(e)}, 400

    return updated.to_dict(), 200


@products_bp.post("/<int:product_id>/deactivate")
def deactivate_product_route(product_id: int):
    """Soft-delete; movement and order history keep pointing at the row."""
    if get_product(product_id) is None:
        return {"error": "Product not found"}, 404

    product = deactivate_product(product_id)
    return product.to_dict(), 200
