from __future__ import annotations

from ..extensions import db
from yuandi.time_utils import to_utc_z, utcnow


ORDER_STATUS_PAID = "paid"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_REFUNDED = "refunded"

ORDER_STATUSES = (
    ORDER_STATUS_PAID,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_REFUNDED,
)

# Carrier tracking pages; the tracking number is appended verbatim
TRACKING_URL_PATTERNS = {
    "CJ대한통운": "https://www.cjlogistics.com/ko/tool/parcel/tracking?gnbInvcNo=",
    "한진택배": "https://www.hanjin.com/kor/CMS/DeliveryMgr/WaybillResult.do?mCode=MN038&schLang=KR&wblnumText2=",
    "롯데택배": "https://www.lotteglogis.com/mobile/reservation/tracking/index?InvNo=",
    "우체국택배": "https://service.epost.go.kr/trace.RetrieveDomRigiTraceList.comm?sid1=",
    "로젠택배": "https://www.ilogen.com/web/personal/trace/",
    "DHL": "https://www.dhl.com/kr-ko/home/tracking/tracking-express.html?submit=1&tracking-id=",
    "FedEx": "https://www.fedex.com/fedextrack/?tracknumbers=",
    "UPS": "https://www.ups.com/track?loc=ko_KR&tracknum=",
}


def tracking_url(courier_company: str | None, tracking_number: str | None) -> str | None:
    if not courier_company or not tracking_number:
        return None
    prefix = TRACKING_URL_PATTERNS.get(courier_company)
    if prefix is None:
        return None
    return f"{prefix}{tracking_number}"


class Order(db.Model):
    """
    Customer order.

    Status moves strictly forward: paid -> shipped -> delivered, with
    refunded reachable from any non-refunded state. Orders are never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=False)
    pccc = db.Column(db.String(13), nullable=False, index=True)
    shipping_address = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PAID, index=True)

    # KRW
    total_amount = db.Column(db.Integer, nullable=False)
    shipping_fee = db.Column(db.Integer, nullable=True)

    courier_company = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    shipments = db.relationship("Shipment", backref="order", lazy=True, order_by="Shipment.id")
    refunds = db.relationship("Refund", backref="order", lazy=True, order_by="Refund.id")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "pccc": self.pccc,
            "shipping_address": self.shipping_address,
            "status": self.status,
            "total_amount": self.total_amount,
            "shipping_fee": self.shipping_fee,
            "courier_company": self.courier_company,
            "tracking_number": self.tracking_number,
            "tracking_url": tracking_url(self.courier_company, self.tracking_number),
            "refund_reason": self.refund_reason,
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "sku": self.product.sku if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


class Shipment(db.Model):
    """One shipment per order, immutable once written."""
    __tablename__ = "shipments"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_shipments_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    courier_company = db.Column(db.String(64), nullable=False)
    tracking_number = db.Column(db.String(64), nullable=False)
    shipping_fee = db.Column(db.Integer, nullable=False, default=0)
    shipping_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "courier_company": self.courier_company,
            "tracking_number": self.tracking_number,
            "tracking_url": tracking_url(self.courier_company, self.tracking_number),
            "shipping_fee": self.shipping_fee,
            "shipping_date": to_utc_z(self.shipping_date),
            "created_at": to_utc_z(self.created_at),
        }


class Refund(db.Model):
    __tablename__ = "refunds"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    reason = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    refund_fee = db.Column(db.Integer, nullable=False, default=0)
    shipping_refund = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "reason": self.reason,
            "amount": self.amount,
            "refund_fee": self.refund_fee,
            "shipping_refund": self.shipping_refund,
            "created_at": to_utc_z(self.created_at),
        }
