# Overview: Dashboard counters and the sales report; read-only aggregates over orders, payments and stock.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from ..extensions import db
from ..models import Client, Order, OrderItem, Payment, Product
from ..errors import ValidationError
from ..time_utils import parse_iso_datetime, utcnow, to_utc_z
from .delivery_service import DELIVERY_CANCELLED, DELIVERY_DELIVERED, VALID_DELIVERY_STATUSES
from .lot_service import count_lots_by_status, LOT_EXPIRED, LOT_NEAR_EXPIRY
from .payment_service import PAYMENT_STATUS_UNPAID, VALID_PAYMENT_MODES

TOP_LIMIT = 5


def _parse_bound(value, name: str) -> datetime | None:
    if not value or isinstance(value, datetime):
        return value or None
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={name: value}) from exc


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    start_dt = _parse_bound(start, "start")
    end_dt = _parse_bound(end, "end")
    if start_dt and end_dt and end_dt < start_dt:
        raise ValidationError("end must not be before start", details={"start": to_utc_z(start_dt), "end": to_utc_z(end_dt)})
    return start_dt, end_dt


def dashboard_summary(now: datetime | None = None) -> dict:
    """
    Counters for the warehouse dashboard.

    Cancelled orders are left out of the money totals.
    """
    now = now or utcnow()

    product_count = db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar() or 0
    low_stock_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.minimum_stock)
        .scalar()
        or 0
    )
    client_count = db.session.query(func.count(Client.id)).filter(Client.is_active.is_(True)).scalar() or 0

    by_status = dict(
        db.session.query(Order.delivery_status, func.count(Order.id))
        .group_by(Order.delivery_status)
        .all()
    )

    live = db.session.query(Order).filter(Order.delivery_status != DELIVERY_CANCELLED)
    billed, outstanding = live.with_entities(
        func.coalesce(func.sum(Order.total_cents), 0),
        func.coalesce(func.sum(Order.remaining_cents), 0),
    ).one()
    unpaid_count = live.filter(Order.payment_status == PAYMENT_STATUS_UNPAID).count()

    lots = count_lots_by_status(now)

    return {
        "as_of": to_utc_z(now),
        "products": int(product_count),
        "low_stock_products": int(low_stock_count),
        "clients": int(client_count),
        "orders_by_delivery_status": {s: int(by_status.get(s) or 0) for s in VALID_DELIVERY_STATUSES},
        "unpaid_orders": unpaid_count,
        "total_billed_cents": int(billed or 0),
        "total_outstanding_cents": int(outstanding or 0),
        "near_expiry_lots": lots[LOT_NEAR_EXPIRY],
        "expired_lots": lots[LOT_EXPIRED],
    }


def sales_report(*, start=None, end=None) -> dict:
    """
    Sales between start and end (inclusive, by order creation time).

    Collections are counted by payment time over the same window, so money
    received this month for last month's orders shows up this month.
    """
    start_dt, end_dt = _parse_range(start, end)

    orders = db.session.query(Order).filter(Order.delivery_status != DELIVERY_CANCELLED)
    if start_dt:
        orders = orders.filter(Order.created_at >= start_dt)
    if end_dt:
        orders = orders.filter(Order.created_at <= end_dt)
    order_ids = orders.with_entities(Order.id).subquery()

    order_count, billed, outstanding = orders.with_entities(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_cents), 0),
        func.coalesce(func.sum(Order.remaining_cents), 0),
    ).one()
    delivered_count = orders.filter(Order.delivery_status == DELIVERY_DELIVERED).count()
    unpaid_count = orders.filter(Order.payment_status == PAYMENT_STATUS_UNPAID).count()

    units_sold = (
        db.session.query(func.coalesce(func.sum(OrderItem.quantity), 0))
        .filter(OrderItem.order_id.in_(select(order_ids.c.id)))
        .scalar()
    )

    top_products = (
        db.session.query(
            Product.id,
            Product.name,
            func.sum(OrderItem.quantity).label("quantity"),
            func.sum(OrderItem.amount_cents).label("amount_cents"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .filter(OrderItem.order_id.in_(select(order_ids.c.id)))
        .group_by(Product.id, Product.name)
        .order_by(func.sum(OrderItem.quantity).desc(), Product.id.asc())
        .limit(TOP_LIMIT)
        .all()
    )

    top_clients = (
        db.session.query(
            Client.id,
            Client.name,
            func.count(Order.id).label("orders"),
            func.sum(Order.total_cents).label("billed_cents"),
        )
        .join(Order, Order.client_id == Client.id)
        .filter(Order.id.in_(select(order_ids.c.id)))
        .group_by(Client.id, Client.name)
        .order_by(func.sum(Order.total_cents).desc(), Client.id.asc())
        .limit(TOP_LIMIT)
        .all()
    )

    payments = db.session.query(Payment.mode, func.sum(Payment.amount_cents))
    if start_dt:
        payments = payments.filter(Payment.paid_at >= start_dt)
    if end_dt:
        payments = payments.filter(Payment.paid_at <= end_dt)
    by_mode = dict(payments.group_by(Payment.mode).all())
    collections = {mode: int(by_mode.get(mode) or 0) for mode in VALID_PAYMENT_MODES}

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "orders": int(order_count or 0),
        "delivered_orders": delivered_count,
        "unpaid_orders": unpaid_count,
        "billed_cents": int(billed or 0),
        "collected_cents": sum(collections.values()),
        "outstanding_cents": int(outstanding or 0),
        "units_sold": int(units_sold or 0),
        "top_products": [
            {"product_id": r.id, "name": r.name, "quantity": int(r.quantity), "amount_cents": int(r.amount_cents)}
            for r in top_products
        ],
        "top_clients": [
            {"client_id": r.id, "name": r.name, "orders": int(r.orders), "billed_cents": int(r.billed_cents)}
            for r in top_clients
        ],
        "collections_by_mode": collections,
    }
