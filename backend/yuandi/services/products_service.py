# backend/yuandi/services/products_service.py
"""
Product registry.

Products are registered with on_hand = 0; stock only enters through the
inbound workflow so that every unit on hand has a movement row behind it.
Products are never deleted, only deactivated.
"""
from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..validation import ConflictError
from .audit_service import append_event
from .concurrency import run_with_retry
from .document_service import next_sequence_value

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "model",
    "color",
    "brand",
    "cost_cny",
    "sale_price_krw",
    "low_stock_threshold",
}

CATEGORY_CODES = {
    "electronics": "ELEC",
    "fashion": "FASH",
    "home": "HOME",
    "beauty": "BEAU",
    "food": "FOOD",
    "sports": "SPOR",
    "toys": "TOYS",
    "books": "BOOK",
    "office": "OFFI",
    "other": "OTHR",
}

_SKU_PART_RE = re.compile(r"[^a-zA-Z0-9가-힣]")
SKU_PATTERN = re.compile(r"^[A-Z]{4}-[A-Za-z0-9가-힣]+-[A-Za-z0-9가-힣]+-\d{6}$")


def category_code(category: str | None) -> str:
    return CATEGORY_CODES.get((category or "").strip().lower(), "OTHR")


def build_sku(*, category: str | None, model: str, color: str, serial: int) -> str:
    """CATE-Model-Color-NNNNNN, e.g. ELEC-iPhone15Pro-Black-000001."""
    model_part = _SKU_PART_RE.sub("", model or "")[:30]
    color_part = _SKU_PART_RE.sub("", color or "")[:20]
    if not model_part or not color_part:
        raise ValueError("model and color are required to generate a SKU")
    return "-".join([category_code(category), model_part, color_part, f"{serial:06d}"])


def is_valid_sku(sku: str) -> bool:
    return bool(SKU_PATTERN.match(sku or ""))


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def list_products(*, include_inactive: bool = False, page: int | None = None, per_page: int | None = None) -> dict:
    """
    Product listing with optional pagination.

    Args:
        include_inactive: include deactivated products
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def register_product(*, patch: dict) -> Product:
    """
    Register a product from a validated patch dict.

    If no SKU is supplied one is generated from category/model/color.

    Raises:
        ConflictError: SKU already exists
        ValueError: SKU cannot be generated (model/color missing)
    """
    def _op():
        sku = patch.get("sku")
        if not sku:
            serial = next_sequence_value(document_type="SKU")
            sku = build_sku(
                category=patch.get("category"),
                model=patch.get("model") or "",
                color=patch.get("color") or "",
                serial=serial,
            )

        if db.session.query(Product.id).filter_by(sku=sku).first() is not None:
            raise ConflictError(f"SKU already exists: {sku}")

        product = Product(
            sku=sku,
            name=patch["name"],
            on_hand=0,
            low_stock_threshold=current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5),
            is_active=True,
        )
        apply_product_patch(product, patch)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"SKU already exists: {sku}")

        append_event(
            table_name="products",
            record_id=product.id,
            action="register",
            payload={"sku": product.sku, "name": product.name},
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, *, patch: dict) -> Product:
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValueError("product not found")
        apply_product_patch(product, patch)
        append_event(
            table_name="products",
            record_id=product.id,
            action="update",
            payload={k: (str(v) if v is not None else None) for k, v in patch.items()},
        )
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft-delete: the row stays so movements and order lines keep their reference."""
    def _op():
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValueError("product not found")
        if product.is_active:
            product.is_active = False
            append_event(table_name="products", record_id=product.id, action="deactivate")
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_low_stock_products(threshold: int | None = None) -> list[dict]:
    """
    Active products at or below their low-stock threshold.

    An explicit threshold overrides every product's own low_stock_threshold.
    """
    q = db.session.query(Product).filter(Product.is_active.is_(True))
    if threshold is not None:
        q = q.filter(Product.on_hand <= threshold)
    else:
        q = q.filter(Product.on_hand <= Product.low_stock_threshold)

    rows = []
    for p in q.order_by(Product.on_hand.asc(), Product.id.asc()).all():
        limit = threshold if threshold is not None else p.low_stock_threshold
        rows.append({
            "product_id": p.id,
            "sku": p.sku,
            "name": p.name,
            "on_hand": p.on_hand,
            "low_stock_threshold": limit,
            "stock_shortage": limit - p.on_hand,
        })
    return rows
