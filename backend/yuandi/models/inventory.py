from __future__ import annotations

from ..extensions import db
from yuandi.time_utils import to_utc_z, utcnow


MOVEMENT_INBOUND = "inbound"
MOVEMENT_SALE = "sale"
MOVEMENT_REFUND = "refund"
MOVEMENT_ADJUSTMENT = "adjustment"

MOVEMENT_TYPES = (MOVEMENT_INBOUND, MOVEMENT_SALE, MOVEMENT_REFUND, MOVEMENT_ADJUSTMENT)


class Product(db.Model):
    """
    Product master data.

    on_hand is a denormalized counter. The authoritative history is the
    InventoryMovement table; the integrity validator compares the two.

    Products are never deleted. Discontinued items are deactivated so that
    historic orders and movements keep a valid foreign key.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("on_hand >= 0", name="ck_products_on_hand_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(100), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(64), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(64), nullable=True)

    # Purchase cost in CNY (informational); sale price in KRW
    cost_cny = db.Column(db.Numeric(12, 2), nullable=True)
    sale_price_krw = db.Column(db.Integer, nullable=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} on_hand={self.on_hand}>"

    @property
    def is_low_stock(self) -> bool:
        return self.on_hand <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "model": self.model,
            "color": self.color,
            "brand": self.brand,
            "cost_cny": float(self.cost_cny) if self.cost_cny is not None else None,
            "sale_price_krw": self.sale_price_krw,
            "on_hand": self.on_hand,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """Append-only stock movement history. One row per stock change."""
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    # Signed: positive for inbound/refund, negative for sale
    quantity_delta = db.Column(db.Integer, nullable=False)
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    # What caused the movement: ("order", 12), ("refund", 3), ...
    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)
    ref_no = db.Column(db.String(64), nullable=True)

    unit_cost_krw = db.Column(db.Integer, nullable=True)
    total_cost_krw = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "ref_no": self.ref_no,
            "unit_cost_krw": self.unit_cost_krw,
            "total_cost_krw": self.total_cost_krw,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
