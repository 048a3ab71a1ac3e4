# Overview: Order aggregate manager; creates orders with line items and takes them out of stock.

"""
Order Aggregate Manager

WORKFLOW (one database transaction):
    validate cart -> check stock for every product -> allocate order number
    -> insert order -> insert line items -> one OUT movement per line -> commit

If any step fails nothing is written: no order header without its items, no
order whose stock was only partly taken. The stock check happens before the
first write; the conditional UPDATE in the movement recorder re-checks it
under the row lock, so a concurrent order that slipped in between still
fails cleanly instead of driving stock negative.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Client, Order, OrderItem, Product
from ..errors import (
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .stock_service import MOVEMENT_IN, MOVEMENT_OUT, _apply_movement_inner
from .payment_service import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
)
from .delivery_service import (
    DELIVERY_CANCELLED,
    DELIVERY_PENDING,
    VALID_DELIVERY_STATUSES,
    release_driver,
    require_transition,
)


ORDER_DOCUMENT_TYPE = "ORDER"
REASON_CUSTOMER_ORDER = "customer order"
REASON_ORDER_CANCELLED = "order cancelled"


def _normalize_line_items(line_items) -> list[dict]:
    if not isinstance(line_items, list) or not line_items:
        raise ValidationError("Order must contain at least one line item")

    lines = []
    for index, raw in enumerate(line_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line {index + 1} must be an object", details={"line": index + 1})

        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        unit_price = raw.get("unit_price_cents")

        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"Line {index + 1}: product_id is required", details={"line": index + 1})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                f"Line {index + 1}: quantity must be a positive integer",
                details={"line": index + 1, "product_id": product_id, "quantity": quantity},
            )
        if unit_price is not None and (
            isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0
        ):
            raise ValidationError(
                f"Line {index + 1}: unit_price_cents must be a non-negative integer",
                details={"line": index + 1, "product_id": product_id, "unit_price_cents": unit_price},
            )

        lines.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})
    return lines


def _validate_on_hand(products: dict[int, Product], lines: list[dict]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]

    for product_id, qty in requested.items():
        product = products[product_id]
        if product.current_stock < qty:
            raise InsufficientStockError(
                product_id=product_id,
                product_name=product.name,
                requested=qty,
                available=product.current_stock,
            )


def create_order(
    client_id: int,
    line_items: list[dict],
    notes: str | None = None,
    *,
    actor_id: str | None = None,
) -> Order:
    """
    Create an order with its line items and take the goods out of stock.

    Each line item is {"product_id", "quantity", "unit_price_cents"?}; a
    missing unit price is taken from the product at order time and frozen
    on the line.

    Raises:
        ValidationError: empty cart, bad quantity/price, inactive client or product, zero total
        NotFoundError: unknown client or product
        InsufficientStockError: a product lacks stock for the requested quantity
    """
    lines = _normalize_line_items(line_items)

    def _op():
        client = db.session.get(Client, client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} not found", details={"client_id": client_id})
        if not client.is_active:
            raise ValidationError(f"Client {client.name} is inactive", details={"client_id": client_id})

        products: dict[int, Product] = {}
        for line in lines:
            product_id = line["product_id"]
            if product_id in products:
                continue
            product = db.session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
            if not product.is_active:
                raise ValidationError(
                    f"Product {product.name} is inactive",
                    details={"product_id": product_id},
                )
            products[product_id] = product

        _validate_on_hand(products, lines)

        priced = []
        for line in lines:
            unit_price = line["unit_price_cents"]
            if unit_price is None:
                unit_price = products[line["product_id"]].unit_price_cents
            priced.append((line["product_id"], line["quantity"], unit_price, line["quantity"] * unit_price))

        total = sum(amount for _, _, _, amount in priced)
        if total <= 0:
            raise ValidationError("Order total must be greater than zero")

        order_number = next_document_number(
            document_type=ORDER_DOCUMENT_TYPE,
            prefix=current_app.config.get("ORDER_NUMBER_PREFIX", "CMD"),
        )

        order = Order(
            order_number=order_number,
            client_id=client.id,
            delivery_status=DELIVERY_PENDING,
            payment_status=PAYMENT_STATUS_UNPAID,
            total_cents=total,
            paid_cents=0,
            remaining_cents=total,
            notes=notes,
            created_by_actor_id=actor_id,
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.flush()

        items = []
        for product_id, quantity, unit_price, amount in priced:
            item = OrderItem(
                order_id=order.id,
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=unit_price,
                amount_cents=amount,
            )
            db.session.add(item)
            items.append(item)
        db.session.flush()

        for item in items:
            movement = _apply_movement_inner(
                product_id=item.product_id,
                movement_type=MOVEMENT_OUT,
                quantity=item.quantity,
                reference=order_number,
                reason=REASON_CUSTOMER_ORDER,
                actor_id=actor_id,
            )
            item.movement_id = movement.id

        db.session.commit()
        current_app.logger.info(
            "Order %s created for client %s: %d line(s), total %d",
            order.order_number, client.id, len(items), total,
        )
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, reason: str, *, actor_id: str | None = None) -> Order:
    """
    Cancel an order and return its goods to stock (PENDING | IN_PROGRESS -> CANCELLED).

    Only unpaid orders can be cancelled; money already received has to be
    settled outside the ledger first.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("A cancellation reason is required")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})

        require_transition(order, DELIVERY_CANCELLED)
        if order.paid_cents > 0:
            raise InvalidTransitionError(
                f"Order {order.order_number} has payments and cannot be cancelled",
                details={"order_id": order.id, "order_number": order.order_number, "paid_cents": order.paid_cents},
            )

        for item in order.items:
            _apply_movement_inner(
                product_id=item.product_id,
                movement_type=MOVEMENT_IN,
                quantity=item.quantity,
                reference=order.order_number,
                reason=REASON_ORDER_CANCELLED,
                actor_id=actor_id,
            )

        release_driver(order.driver_id, exclude_order_id=order.id)
        order.delivery_status = DELIVERY_CANCELLED
        order.cancelled_at = utcnow()
        order.cancel_reason = reason

        db.session.commit()
        current_app.logger.info("Order %s cancelled by %s: %s", order.order_number, actor_id, reason)
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def order_detail(order_id: int) -> dict:
    """Order header with its line items and payments."""
    order = get_order(order_id)
    data = order.to_dict()
    data["items"] = [item.to_dict() for item in order.items]
    data["payments"] = [payment.to_dict() for payment in order.payments]
    return data


def list_orders(
    *,
    delivery_status: str | None = None,
    payment_status: str | None = None,
    client_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Orders, newest first, with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    if delivery_status is not None and delivery_status not in VALID_DELIVERY_STATUSES:
        raise ValidationError(f"Invalid delivery status: {delivery_status}")
    if payment_status is not None and payment_status not in (PAYMENT_STATUS_UNPAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID):
        raise ValidationError(f"Invalid payment status: {payment_status}")

    base_query = db.session.query(Order)
    if delivery_status is not None:
        base_query = base_query.filter(Order.delivery_status == delivery_status)
    if payment_status is not None:
        base_query = base_query.filter(Order.payment_status == payment_status)
    if client_id is not None:
        base_query = base_query.filter(Order.client_id == client_id)
    base_query = base_query.order_by(Order.created_at.desc(), Order.id.desc())

    if page is None:
        orders = base_query.all()
        return {"items": [o.to_dict() for o in orders], "count": len(orders)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    orders = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
