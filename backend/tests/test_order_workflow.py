# Overview: Pytest coverage for the inventory/order/cashbook workflow end to end.

"""
Order Workflow Tests

Walks one product through inbound -> order -> ship -> complete -> refund and
checks after every step that stock, cashbook balance and the integrity
validator agree.

Test Coverage:
- Balances and on_hand at every step of the reference scenario
- Cashbook sign convention per entry type
- Stock conservation (on_hand == SUM(movements))
- Rejected orders leave no writes behind
- Multi-item orders
- Status machine rejections
"""

from decimal import Decimal

import pytest

from yuandi.extensions import db
from yuandi.models import (
    CashbookTransaction, EventLog, InventoryMovement, Order, OrderItem, Product, Refund, Shipment,
)
from yuandi.services.cashbook_service import get_amount_sum, get_current_balance
from yuandi.services.integrity_service import DatabaseIntegrityValidator
from yuandi.services.inventory_service import get_movement_quantity_sum, receive_inbound
from yuandi.services.order_service import (
    INSUFFICIENT_STOCK_MESSAGE,
    InsufficientStockError,
    InvalidTransitionError,
    OrderError,
    OrderNotFoundError,
    complete_order,
    create_order,
)
from yuandi.services.refund_service import RefundError, process_refund
from yuandi.services.shipment_service import ShipmentError, create_shipment


CUSTOMER = {
    "customer_name": "홍길동",
    "customer_phone": "010-1234-5678",
    "pccc": "P123456789012",
    "shipping_address": "서울특별시 강남구 테헤란로 1",
}


def _on_hand(product_id):
    return db.session.get(Product, product_id).on_hand


def _counts():
    return {
        "orders": db.session.query(Order).count(),
        "order_items": db.session.query(OrderItem).count(),
        "movements": db.session.query(InventoryMovement).count(),
        "cashbook": db.session.query(CashbookTransaction).count(),
        "events": db.session.query(EventLog).count(),
    }


def _assert_consistent():
    report = DatabaseIntegrityValidator().validate_system_integrity()
    assert report.overall, report.issues


class TestReferenceScenario:
    """The full lifecycle with known numbers."""

    def test_full_lifecycle(self, product, opening_balance):
        assert get_current_balance() == 10_000_000
        assert _on_hand(product.id) == 0

        receive_inbound(product_id=product.id, quantity=100, total_cost_krw=902_500)
        assert _on_hand(product.id) == 100
        assert get_current_balance() == 9_097_500
        _assert_consistent()

        order = create_order(
            items=[{"product_id": product.id, "quantity": 2, "price": 1_200_000}],
            **CUSTOMER,
        )
        assert order.status == "paid"
        assert order.total_amount == 2_400_000
        assert _on_hand(product.id) == 98
        assert get_current_balance() == 11_497_500
        _assert_consistent()

        create_shipment(
            order_id=order.id,
            courier_company="CJ대한통운",
            tracking_number="123456789012",
            shipping_fee=5_000,
        )
        assert db.session.get(Order, order.id).status == "shipped"
        assert get_current_balance() == 11_492_500
        _assert_consistent()

        complete_order(order.id)
        assert db.session.get(Order, order.id).status == "delivered"
        assert get_current_balance() == 11_492_500
        _assert_consistent()

        process_refund(order_id=order.id, reason="고객 변심", refund_amount=1_200_000, refund_fee=1_000)
        refunded = db.session.get(Order, order.id)
        assert refunded.status == "refunded"
        assert refunded.refund_reason == "고객 변심"
        assert _on_hand(product.id) == 100
        assert get_current_balance() == 10_292_500
        _assert_consistent()

    def test_shipping_refund_is_income(self, paid_order):
        create_shipment(order_id=paid_order.id, courier_company="한진택배", tracking_number="555", shipping_fee=5_000)
        before = get_current_balance()

        process_refund(order_id=paid_order.id, reason="파손", refund_amount=1_200_000, shipping_refund=3_000)

        assert get_current_balance() == before - 1_200_000 + 3_000
        entry = (
            db.session.query(CashbookTransaction)
            .filter_by(type="shipping_refund")
            .one()
        )
        assert entry.amount == 3_000
        assert entry.description.startswith("배송비 환불 - ORD-")


class TestLedgerSigns:
    """Every workflow entry carries the sign of its cash direction."""

    def test_entry_signs_and_descriptions(self, paid_order, stocked_product):
        create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="1", shipping_fee=5_000)
        process_refund(order_id=paid_order.id, reason="불량")

        entries = {e.type: e for e in db.session.query(CashbookTransaction).all()}

        assert entries["inbound"].amount == -902_500
        assert entries["inbound"].description == f"제품입고 - {stocked_product.sku}"
        assert entries["sales"].amount == 2_400_000
        assert entries["sales"].description == f"주문매출 - {paid_order.order_number}"
        assert entries["sales"].customer_name == "홍길동"
        assert entries["shipping"].amount == -5_000
        assert entries["shipping"].courier_company == "CJ대한통운"
        assert entries["refund"].amount == -2_400_000
        assert entries["refund"].refund_reason == "불량"

    def test_running_balance_matches_sum(self, paid_order):
        assert get_current_balance() == get_amount_sum()

    def test_inbound_from_cny_uses_exchange_rate(self, product, opening_balance):
        receive_inbound(product_id=product.id, quantity=10, cost_cny=Decimal("50.00"), exchange_rate=Decimal("180.5"))

        entry = db.session.query(CashbookTransaction).filter_by(type="inbound").one()
        assert entry.amount == -9_025
        assert entry.currency == "CNY"

    def test_inbound_defaults_to_configured_rate(self, product, opening_balance):
        receive_inbound(product_id=product.id, quantity=1, cost_cny=100)

        entry = db.session.query(CashbookTransaction).filter_by(type="inbound").one()
        assert entry.amount == -18_000

    def test_free_inbound_writes_no_cashbook_entry(self, product, opening_balance):
        receive_inbound(product_id=product.id, quantity=5)

        assert _on_hand(product.id) == 5
        assert db.session.query(CashbookTransaction).filter_by(type="inbound").count() == 0

    def test_free_shipping_writes_no_cashbook_entry(self, paid_order):
        create_shipment(order_id=paid_order.id, courier_company="우체국택배", tracking_number="9", shipping_fee=0)

        assert db.session.query(CashbookTransaction).filter_by(type="shipping").count() == 0


class TestStockRejection:
    """Orders that cannot be covered write nothing."""

    def test_insufficient_stock_leaves_no_trace(self, product, opening_balance):
        receive_inbound(product_id=product.id, quantity=1, total_cost_krw=10_000)
        before = _counts()
        balance = get_current_balance()

        with pytest.raises(InsufficientStockError) as exc:
            create_order(items=[{"product_id": product.id, "quantity": 5, "price": 1_000}], **CUSTOMER)

        assert str(exc.value) == INSUFFICIENT_STOCK_MESSAGE
        assert exc.value.details["items"][0]["requested_quantity"] == 5
        assert exc.value.details["items"][0]["on_hand"] == 1
        assert _counts() == before
        assert get_current_balance() == balance
        assert _on_hand(product.id) == 1

    def test_one_short_line_rejects_whole_order(self, stocked_product, second_product):
        before = _counts()

        with pytest.raises(InsufficientStockError) as exc:
            create_order(
                items=[
                    {"product_id": stocked_product.id, "quantity": 1, "price": 1_200_000},
                    {"product_id": second_product.id, "quantity": 1, "price": 45_000},
                ],
                **CUSTOMER,
            )

        short = exc.value.details["items"]
        assert [i["product_id"] for i in short] == [second_product.id]
        assert _counts() == before
        assert _on_hand(stocked_product.id) == 100

    def test_duplicate_lines_are_summed(self, product, opening_balance):
        receive_inbound(product_id=product.id, quantity=3)

        with pytest.raises(InsufficientStockError):
            create_order(
                items=[
                    {"product_id": product.id, "quantity": 2, "price": 100},
                    {"product_id": product.id, "quantity": 2, "price": 100},
                ],
                **CUSTOMER,
            )
        assert _on_hand(product.id) == 3

    def test_unknown_product_is_order_error(self, opening_balance):
        with pytest.raises(OrderError):
            create_order(items=[{"product_id": 9999, "quantity": 1, "price": 100}], **CUSTOMER)

    def test_empty_order_rejected(self, opening_balance):
        with pytest.raises(OrderError):
            create_order(items=[], **CUSTOMER)


class TestMultiItemOrders:

    def test_every_line_decrements_its_product(self, stocked_product, second_product):
        receive_inbound(product_id=second_product.id, quantity=10, total_cost_krw=200_000)

        order = create_order(
            items=[
                {"product_id": stocked_product.id, "quantity": 3, "price": 1_200_000},
                {"product_id": second_product.id, "quantity": 4, "price": 45_000},
            ],
            **CUSTOMER,
        )

        assert order.total_amount == 3 * 1_200_000 + 4 * 45_000
        assert _on_hand(stocked_product.id) == 97
        assert _on_hand(second_product.id) == 6
        sale_movements = db.session.query(InventoryMovement).filter_by(movement_type="sale").all()
        assert sorted(m.quantity_delta for m in sale_movements) == [-4, -3]
        _assert_consistent()

        process_refund(order_id=order.id, reason="주문 취소")

        assert _on_hand(stocked_product.id) == 100
        assert _on_hand(second_product.id) == 10
        _assert_consistent()

    def test_explicit_total_overrides_line_sum(self, stocked_product):
        order = create_order(
            items=[{"product_id": stocked_product.id, "quantity": 1, "price": 1_200_000}],
            total_amount=1_150_000,
            **CUSTOMER,
        )
        assert order.total_amount == 1_150_000
        sale = db.session.query(CashbookTransaction).filter_by(type="sales").one()
        assert sale.amount == 1_150_000


class TestStatusMachine:

    def test_cannot_complete_paid_order(self, paid_order):
        with pytest.raises(InvalidTransitionError):
            complete_order(paid_order.id)
        assert db.session.get(Order, paid_order.id).status == "paid"

    def test_cannot_ship_twice(self, paid_order):
        create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="1", shipping_fee=5_000)
        balance = get_current_balance()

        with pytest.raises(InvalidTransitionError):
            create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="2", shipping_fee=5_000)

        assert db.session.query(Shipment).count() == 1
        assert get_current_balance() == balance

    def test_cannot_refund_twice(self, paid_order):
        process_refund(order_id=paid_order.id, reason="취소")
        on_hand = _on_hand(paid_order.items[0].product_id)

        with pytest.raises(InvalidTransitionError):
            process_refund(order_id=paid_order.id, reason="취소")

        assert db.session.query(Refund).count() == 1
        assert _on_hand(paid_order.items[0].product_id) == on_hand

    def test_cannot_ship_refunded_order(self, paid_order):
        process_refund(order_id=paid_order.id, reason="취소")
        with pytest.raises(InvalidTransitionError):
            create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="1")

    def test_paid_order_can_be_refunded(self, paid_order, stocked_product):
        process_refund(order_id=paid_order.id, reason="취소")
        assert _on_hand(stocked_product.id) == 100
        _assert_consistent()

    def test_unknown_order(self, db_session):
        with pytest.raises(OrderNotFoundError):
            complete_order(12345)
        with pytest.raises(OrderNotFoundError):
            create_shipment(order_id=12345, courier_company="CJ대한통운", tracking_number="1")
        with pytest.raises(OrderNotFoundError):
            process_refund(order_id=12345, reason="x")


class TestRefundRules:

    def test_refund_above_total_rejected(self, paid_order):
        with pytest.raises(RefundError):
            process_refund(order_id=paid_order.id, reason="x", refund_amount=paid_order.total_amount + 1)
        assert db.session.get(Order, paid_order.id).status == "paid"

    def test_reason_required(self, paid_order):
        with pytest.raises(RefundError):
            process_refund(order_id=paid_order.id, reason="  ")

    def test_refund_fee_recorded_on_refund(self, paid_order):
        refund = process_refund(order_id=paid_order.id, reason="x", refund_amount=1_200_000, refund_fee=1_000)
        assert refund.refund_fee == 1_000
        assert refund.amount == 1_200_000

    def test_shipment_requires_tracking(self, paid_order):
        with pytest.raises(ShipmentError):
            create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="")


class TestStockConservation:

    def test_on_hand_equals_movement_sum_after_every_step(self, paid_order, stocked_product):
        assert _on_hand(stocked_product.id) == get_movement_quantity_sum(stocked_product.id)

        create_shipment(order_id=paid_order.id, courier_company="CJ대한통운", tracking_number="1", shipping_fee=5_000)
        complete_order(paid_order.id)
        process_refund(order_id=paid_order.id, reason="반품")

        assert _on_hand(stocked_product.id) == get_movement_quantity_sum(stocked_product.id) == 100

    def test_movements_carry_balances(self, paid_order, stocked_product):
        sale = db.session.query(InventoryMovement).filter_by(movement_type="sale").one()
        assert sale.balance_before == 100
        assert sale.balance_after == 98
        assert sale.ref_no == paid_order.order_number

    def test_workflow_events_logged(self, paid_order):
        actions = [
            e.action
            for e in db.session.query(EventLog).filter_by(table_name="orders", record_id=paid_order.id).all()
        ]
        assert actions == ["create"]


class TestAtomicity:
    """A failure part-way through a workflow leaves nothing behind."""

    def test_cashbook_failure_rolls_back_inbound_stock(self, product, opening_balance, monkeypatch):
        from yuandi.services import inventory_service

        def _fail(**kwargs):
            raise RuntimeError("cashbook unavailable")

        monkeypatch.setattr(inventory_service, "append_cashbook_entry", _fail)
        balance = get_current_balance()

        with pytest.raises(RuntimeError):
            receive_inbound(product_id=product.id, quantity=10, total_cost_krw=50_000)

        assert _on_hand(product.id) == 0
        assert db.session.query(InventoryMovement).count() == 0
        assert get_current_balance() == balance

    def test_lost_stock_race_rolls_back_order(self, stocked_product, monkeypatch):
        from yuandi.services import order_service

        # Stock check passes, so the conditional decrement is what rejects
        monkeypatch.setattr(order_service, "check_stock", lambda items: None)
        before = _counts()

        with pytest.raises(InsufficientStockError) as exc:
            create_order(
                items=[{"product_id": stocked_product.id, "quantity": 500, "price": 1_000}],
                **CUSTOMER,
            )

        assert exc.value.details["items"][0]["requested_quantity"] == 500
        assert exc.value.details["items"][0]["on_hand"] == 100
        assert db.session.query(Order).count() == 0
        assert _counts() == before
        assert _on_hand(stocked_product.id) == 100

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_quantity_is_order_error(self, stocked_product, quantity):
        before = _counts()

        with pytest.raises(OrderError, match="quantity must be positive"):
            create_order(
                items=[{"product_id": stocked_product.id, "quantity": quantity, "price": 1_000}],
                **CUSTOMER,
            )

        assert _counts() == before
        assert _on_hand(stocked_product.id) == 100


class TestTransactionHelpers:

    def test_begin_immediate_on_idle_and_open_session(self, db_session):
        from yuandi.services.concurrency import begin_immediate

        db.session.commit()
        begin_immediate()
        assert db.session().in_transaction()
        # Already inside a transaction: must be a no-op, not a nested BEGIN
        begin_immediate()
        db.session.rollback()
