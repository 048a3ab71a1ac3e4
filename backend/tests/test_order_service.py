"""
Order aggregate tests.

Creating an order fixes its total, takes the goods out of stock with one OUT
movement per line, and does all of it in one transaction.
"""

import pytest

from depot.extensions import db
from depot.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from depot.models import Client, Order, OrderItem, Product, StockMovement
from depot.services import catalog_service, delivery_service, order_service, payment_service, stock_service
from depot.services.order_service import REASON_CUSTOMER_ORDER, REASON_ORDER_CANCELLED


def _stock(product_id: int) -> int:
    return db.session.get(Product, product_id).current_stock


def test_order_lifecycle_create_then_pay_in_full(product, hotel):
    order = order_service.create_order(
        hotel.id,
        [{"product_id": product.id, "quantity": 2}],
        actor_id="cashier-1",
    )

    assert order.order_number == "CMD-000001"
    assert order.total_cents == 2000
    assert order.paid_cents == 0
    assert order.remaining_cents == 2000
    assert order.delivery_status == "PENDING"
    assert order.payment_status == "UNPAID"
    assert order.created_by_actor_id == "cashier-1"
    assert _stock(product.id) == 8

    outs = stock_service.list_movements(product_id=product.id, movement_type="OUT")
    assert len(outs) == 1
    assert outs[0].quantity == 2
    assert outs[0].reference == "CMD-000001"
    assert outs[0].reason == REASON_CUSTOMER_ORDER
    assert order.items[0].movement_id == outs[0].id

    order = payment_service.record_payment(order.id, 2000, "CASH", actor_id="cashier-1")
    assert order.payment_status == "PAID"
    assert order.remaining_cents == 0


def test_unit_price_defaults_to_product_price_and_can_be_overridden(product, second_product, hotel):
    order = order_service.create_order(
        hotel.id,
        [
            {"product_id": product.id, "quantity": 3},
            {"product_id": second_product.id, "quantity": 2, "unit_price_cents": 1200},
        ],
    )

    items = order.items
    assert [(i.unit_price_cents, i.amount_cents) for i in items] == [(1000, 3000), (1200, 2400)]
    assert order.total_cents == 5400


def test_price_is_frozen_on_the_line(product, hotel):
    order = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])
    catalog_service.update_product(product.id, patch={"unit_price_cents": 5000})

    assert db.session.get(OrderItem, order.items[0].id).unit_price_cents == 1000
    assert db.session.get(Order, order.id).total_cents == 1000


def test_order_numbers_are_sequential(product, hotel):
    numbers = [
        order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}]).order_number
        for _ in range(3)
    ]
    assert numbers == ["CMD-000001", "CMD-000002", "CMD-000003"]


def test_insufficient_stock_rolls_back_everything(product, second_product, hotel):
    with pytest.raises(InsufficientStockError) as exc:
        order_service.create_order(
            hotel.id,
            [
                {"product_id": product.id, "quantity": 2},
                {"product_id": second_product.id, "quantity": 6},
            ],
        )

    assert exc.value.details["product_id"] == second_product.id
    assert exc.value.details["requested"] == 6
    assert exc.value.details["available"] == 5
    assert db.session.query(Order).count() == 0
    assert db.session.query(OrderItem).count() == 0
    assert db.session.query(StockMovement).filter_by(type="OUT").count() == 0
    assert _stock(product.id) == 10
    assert _stock(second_product.id) == 5


def test_repeated_product_lines_are_checked_against_stock_together(product, hotel):
    with pytest.raises(InsufficientStockError):
        order_service.create_order(
            hotel.id,
            [
                {"product_id": product.id, "quantity": 6},
                {"product_id": product.id, "quantity": 5},
            ],
        )
    assert _stock(product.id) == 10


def test_failed_order_does_not_consume_an_order_number(product, hotel):
    with pytest.raises(InsufficientStockError):
        order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 50}])

    order = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])
    assert order.order_number == "CMD-000001"


@pytest.mark.parametrize("line_items", [
    [],
    None,
    [{"product_id": 1}],
    [{"product_id": 1, "quantity": 0}],
    [{"product_id": 1, "quantity": 2, "unit_price_cents": -5}],
    [{"quantity": 2}],
    ["not a line"],
])
def test_malformed_line_items_are_rejected(hotel, line_items):
    with pytest.raises(ValidationError):
        order_service.create_order(hotel.id, line_items)
    assert db.session.query(Order).count() == 0


def test_zero_total_is_rejected(product, hotel):
    with pytest.raises(ValidationError):
        order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1, "unit_price_cents": 0}])
    assert _stock(product.id) == 10


def test_unknown_or_inactive_client_and_product(product, hotel):
    with pytest.raises(NotFoundError):
        order_service.create_order(9999, [{"product_id": product.id, "quantity": 1}])
    with pytest.raises(NotFoundError):
        order_service.create_order(hotel.id, [{"product_id": 9999, "quantity": 1}])

    catalog_service.deactivate_product(product.id)
    with pytest.raises(ValidationError):
        order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])

    inactive = Client(name="Closed Inn", address="Nowhere", is_active=False)
    db.session.add(inactive)
    db.session.commit()
    with pytest.raises(ValidationError):
        order_service.create_order(inactive.id, [{"product_id": product.id, "quantity": 1}])


def test_cancel_returns_goods_to_stock(product, hotel, driver):
    order = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 4}])
    delivery_service.assign_driver(order.id, driver.id)

    cancelled = order_service.cancel_order(order.id, "client closed", actor_id="cashier-1")

    assert cancelled.delivery_status == "CANCELLED"
    assert cancelled.cancel_reason == "client closed"
    assert cancelled.cancelled_at is not None
    assert _stock(product.id) == 10
    ins = stock_service.list_movements(product_id=product.id, reference=order.order_number, movement_type="IN")
    assert len(ins) == 1
    assert ins[0].reason == REASON_ORDER_CANCELLED
    assert driver.status == "AVAILABLE"
    assert stock_service.audit_stock_ledger() == []


def test_cancel_is_refused_once_paid_or_delivered(product, hotel, driver):
    paid = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])
    payment_service.record_payment(paid.id, 500, "CASH")
    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order(paid.id, "changed mind")

    delivered = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])
    delivery_service.assign_driver(delivered.id, driver.id)
    delivery_service.confirm_delivery(delivered.id)
    with pytest.raises(InvalidTransitionError):
        order_service.cancel_order(delivered.id, "too late")

    with pytest.raises(ValidationError):
        order_service.cancel_order(delivered.id, "")

    assert _stock(product.id) == 8


def test_order_detail_and_listing(product, hotel):
    first = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 1}])
    second = order_service.create_order(hotel.id, [{"product_id": product.id, "quantity": 2}])
    payment_service.record_payment(second.id, 2000, "BANK", reference="TRX-1")

    detail = order_service.order_detail(second.id)
    assert detail["client_name"] == "Hotel Atlantic"
    assert len(detail["items"]) == 1
    assert detail["items"][0]["product_name"] == "Mineral water 1.5L"
    assert detail["payments"][0]["reference"] == "TRX-1"

    listed = order_service.list_orders(payment_status="UNPAID")
    assert [o["id"] for o in listed["items"]] == [first.id]

    paged = order_service.list_orders(client_id=hotel.id, page=1, per_page=1)
    assert paged["count"] == 1
    assert paged["pagination"]["total"] == 2
    assert paged["pagination"]["has_next"] is True

    with pytest.raises(ValidationError):
        order_service.list_orders(delivery_status="LOST")
