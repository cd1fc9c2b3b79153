# Overview: Pytest coverage for the HTTP API (status codes and payload shapes).

from yuandi.extensions import db
from yuandi.models import CashbookTransaction, Order


ORDER_BODY = {
    "customer_name": "홍길동",
    "customer_phone": "010-1234-5678",
    "pccc": "P123456789012",
    "shipping_address": "서울특별시 강남구 테헤란로 1",
}


def _order_body(product_id, quantity=2, price=1_200_000, **extra):
    body = dict(ORDER_BODY, items=[{"product_id": product_id, "quantity": quantity, "price": price}])
    body.update(extra)
    return body


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_integrity_report(self, client, paid_order):
        resp = client.get("/api/system/integrity")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["overall"] is True
        assert body["issues"] == []


class TestProductRoutes:

    def test_register_with_generated_sku(self, client, db_session):
        resp = client.post("/api/products", json={
            "name": "AirPods Pro",
            "category": "electronics",
            "model": "AirPods Pro",
            "color": "White",
            "cost_cny": "1200.50",
            "sale_price_krw": 329_000,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sku"] == "ELEC-AirPodsPro-White-000001"
        assert body["on_hand"] == 0
        assert body["cost_cny"] == 1200.5

    def test_register_requires_model_and_color_without_sku(self, client, db_session):
        resp = client.post("/api/products", json={"name": "Mystery"})
        assert resp.status_code == 400

    def test_on_hand_not_writable(self, client, db_session):
        resp = client.post("/api/products", json={"sku": "X-1", "name": "X", "on_hand": 10})
        assert resp.status_code == 400
        assert "on_hand" in resp.get_json()["error"]

    def test_duplicate_sku_conflict(self, client, product):
        resp = client.post("/api/products", json={"sku": product.sku, "name": "Dup"})
        assert resp.status_code == 409

    def test_patch_and_deactivate(self, client, product):
        resp = client.patch(f"/api/products/{product.id}", json={"name": "iPhone 15 Pro Max"})
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "iPhone 15 Pro Max"

        resp = client.post(f"/api/products/{product.id}/deactivate")
        assert resp.status_code == 200
        assert resp.get_json()["is_active"] is False

        assert client.get("/api/products").get_json()["count"] == 0

    def test_patch_rejects_sku(self, client, product):
        resp = client.patch(f"/api/products/{product.id}", json={"sku": "NEW"})
        assert resp.status_code == 400

    def test_unknown_product(self, client, db_session):
        assert client.patch("/api/products/999", json={"name": "x"}).status_code == 404
        assert client.post("/api/products/999/deactivate").status_code == 404
        assert client.get("/api/products/999").status_code == 404

    def test_low_stock(self, client, product):
        resp = client.get("/api/products/low-stock")
        assert resp.status_code == 200
        assert resp.get_json()["items"][0]["sku"] == product.sku


class TestInventoryRoutes:

    def test_inbound_books_cost(self, client, product, opening_balance):
        resp = client.post("/api/inventory/inbound", json={
            "product_id": product.id,
            "quantity": 100,
            "total_cost_krw": 902_500,
            "supplier": "Shenzhen Co.",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["product"]["on_hand"] == 100
        assert body["movement"]["quantity_delta"] == 100

        cash = client.get("/api/cashbook").get_json()
        assert cash["balance"] == 9_097_500
        assert cash["items"][0]["supplier"] == "Shenzhen Co."

    def test_inbound_rejects_non_positive_quantity(self, client, product):
        resp = client.post("/api/inventory/inbound", json={"product_id": product.id, "quantity": 0})
        assert resp.status_code == 400

    def test_inbound_rejects_float_quantity(self, client, product):
        resp = client.post("/api/inventory/inbound", json={"product_id": product.id, "quantity": 1.5})
        assert resp.status_code == 400

    def test_inbound_unknown_product(self, client, db_session):
        resp = client.post("/api/inventory/inbound", json={"product_id": 999, "quantity": 1})
        assert resp.status_code == 404

    def test_adjust_and_movements(self, client, stocked_product):
        resp = client.post("/api/inventory/adjust", json={
            "product_id": stocked_product.id,
            "quantity_delta": -5,
            "note": "count",
        })
        assert resp.status_code == 201
        assert resp.get_json()["product"]["on_hand"] == 95

        movements = client.get(f"/api/inventory/{stocked_product.id}/movements").get_json()
        assert [m["movement_type"] for m in movements["items"]] == ["adjustment", "inbound"]

    def test_adjust_below_zero(self, client, product):
        resp = client.post("/api/inventory/adjust", json={"product_id": product.id, "quantity_delta": -1})
        assert resp.status_code == 400


class TestOrderRoutes:

    def test_create_order(self, client, stocked_product):
        resp = client.post("/api/orders", json=_order_body(stocked_product.id))
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["status"] == "paid"
        assert order["total_amount"] == 2_400_000
        assert order["items"][0]["sku"] == stocked_product.sku

    def test_insufficient_stock_409(self, client, stocked_product):
        resp = client.post("/api/orders", json=_order_body(stocked_product.id, quantity=101))
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "재고 부족"
        assert body["details"]["items"][0]["on_hand"] == 100
        assert db.session.query(Order).count() == 0

    def test_invalid_phone_and_pccc(self, client, stocked_product):
        resp = client.post("/api/orders", json=_order_body(stocked_product.id, customer_phone="02-123"))
        assert resp.status_code == 400
        resp = client.post("/api/orders", json=_order_body(stocked_product.id, pccc="123"))
        assert resp.status_code == 400

    def test_items_required(self, client, stocked_product):
        body = dict(ORDER_BODY, items=[])
        assert client.post("/api/orders", json=body).status_code == 400

    def test_item_quantity_must_be_positive(self, client, stocked_product):
        resp = client.post("/api/orders", json=_order_body(stocked_product.id, quantity=0))
        assert resp.status_code == 400

    def test_lifecycle(self, client, paid_order):
        resp = client.patch(f"/api/orders/{paid_order.id}/complete")
        assert resp.status_code == 409

        resp = client.patch(f"/api/orders/{paid_order.id}/ship", json={
            "courier_company": "CJ대한통운",
            "tracking_number": "123456789012",
            "shipping_fee": 5000,
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["order"]["status"] == "shipped"
        assert body["shipment"]["tracking_url"].endswith("123456789012")

        resp = client.patch(f"/api/orders/{paid_order.id}/complete")
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "delivered"

        resp = client.patch(f"/api/orders/{paid_order.id}/refund", json={
            "reason": "고객 변심",
            "refund_amount": 1_200_000,
            "refund_fee": 1_000,
        })
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "refunded"

        resp = client.patch(f"/api/orders/{paid_order.id}/refund", json={"reason": "again"})
        assert resp.status_code == 409

        detail = client.get(f"/api/orders/{paid_order.id}").get_json()
        assert len(detail["shipments"]) == 1
        assert len(detail["refunds"]) == 1
        assert [e["action"] for e in detail["events"]] == ["create", "ship", "complete", "refund"]

        assert client.get("/api/cashbook").get_json()["balance"] == 10_292_500

    def test_refund_requires_reason(self, client, paid_order):
        resp = client.patch(f"/api/orders/{paid_order.id}/refund", json={})
        assert resp.status_code == 400

    def test_unknown_order_404(self, client, db_session):
        assert client.get("/api/orders/999").status_code == 404
        assert client.patch("/api/orders/999/complete").status_code == 404
        resp = client.patch("/api/orders/999/ship", json={"courier_company": "CJ대한통운", "tracking_number": "1"})
        assert resp.status_code == 404

    def test_list_orders_filters(self, client, paid_order):
        assert client.get("/api/orders").get_json()["count"] == 1
        assert client.get("/api/orders?status=shipped").get_json()["count"] == 0
        assert client.get("/api/orders?status=lost").status_code == 400

        found = client.get(f"/api/orders?order_number={paid_order.order_number}").get_json()
        assert found["orders"][0]["id"] == paid_order.id
        assert client.get("/api/orders?order_number=ORD-000000-999").get_json()["count"] == 0


class TestCashbookRoutes:

    def test_adjustment(self, client, opening_balance):
        resp = client.post("/api/cashbook/adjustment", json={"amount": -15_000, "description": "은행 수수료"})
        assert resp.status_code == 201
        assert resp.get_json()["balance"] == 9_985_000
        assert db.session.query(CashbookTransaction).count() == 2

    def test_adjustment_validation(self, client, db_session):
        assert client.post("/api/cashbook/adjustment", json={"amount": 100}).status_code == 400
        assert client.post("/api/cashbook/adjustment", json={"amount": 0, "description": "x"}).status_code == 400

    def test_filter_by_type(self, client, paid_order):
        body = client.get("/api/cashbook?type=sales").get_json()
        assert body["count"] == 1
        assert body["items"][0]["amount"] == 2_400_000
        assert client.get("/api/cashbook?type=bogus").status_code == 400
