# Overview: Delivery state machine for orders and driver assignment.

"""
Delivery State Machine

STATE MACHINE:
    PENDING -> IN_PROGRESS -> DELIVERED
    PENDING | IN_PROGRESS -> CANCELLED

    PENDING:     Order created, stock reserved, waiting for a driver
    IN_PROGRESS: Driver assigned and on the road
    DELIVERED:   Terminal. Client received the goods
    CANCELLED:   Terminal. Stock returned to the warehouse (see order_service)

RULES:
1. Cannot skip states (PENDING -> DELIVERED is forbidden)
2. Terminal states never move again
3. No transition touches payment fields; delivery and payment are orthogonal
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Order, Driver
from ..models.partners import DRIVER_AVAILABLE, DRIVER_ON_DELIVERY, DRIVER_UNAVAILABLE
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


DELIVERY_PENDING = "PENDING"
DELIVERY_IN_PROGRESS = "IN_PROGRESS"
DELIVERY_DELIVERED = "DELIVERED"
DELIVERY_CANCELLED = "CANCELLED"
VALID_DELIVERY_STATUSES = [DELIVERY_PENDING, DELIVERY_IN_PROGRESS, DELIVERY_DELIVERED, DELIVERY_CANCELLED]

VALID_TRANSITIONS = {
    (DELIVERY_PENDING, DELIVERY_IN_PROGRESS),
    (DELIVERY_IN_PROGRESS, DELIVERY_DELIVERED),
    (DELIVERY_PENDING, DELIVERY_CANCELLED),
    (DELIVERY_IN_PROGRESS, DELIVERY_CANCELLED),
}


def validate_status(status: str) -> None:
    if status not in VALID_DELIVERY_STATUSES:
        raise ValidationError(
            f"Invalid delivery status '{status}'. Must be one of: {', '.join(VALID_DELIVERY_STATUSES)}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """Check a delivery transition against the state machine (no same-state no-ops)."""
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def require_transition(order: Order, to_status: str) -> None:
    if not can_transition(order.delivery_status, to_status):
        raise InvalidTransitionError(
            f"Order {order.order_number} cannot move from {order.delivery_status} to {to_status}",
            details={
                "order_id": order.id,
                "order_number": order.order_number,
                "from": order.delivery_status,
                "to": to_status,
            },
        )


def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _locked_driver(driver_id: int) -> Driver | None:
    return lock_for_update(db.session.query(Driver).filter_by(id=driver_id)).first()


def release_driver(driver_id: int | None, *, exclude_order_id: int | None = None) -> None:
    """Put a driver back to AVAILABLE once none of their orders is still on the road."""
    if driver_id is None:
        return
    # Locked so concurrent confirmations for one driver run one after the other
    driver = _locked_driver(driver_id)
    if driver is None or driver.status != DRIVER_ON_DELIVERY:
        return

    query = db.session.query(Order.id).filter(
        Order.driver_id == driver_id,
        Order.delivery_status == DELIVERY_IN_PROGRESS,
    )
    if exclude_order_id is not None:
        query = query.filter(Order.id != exclude_order_id)
    if query.first() is None:
        driver.status = DRIVER_AVAILABLE


def assign_driver(order_id: int, driver_id: int, *, actor_id: str | None = None, now: datetime | None = None) -> Order:
    """
    Assign a driver and send the order out (PENDING -> IN_PROGRESS).

    Raises:
        NotFoundError: order or driver missing
        ValidationError: driver inactive or marked unavailable
        InvalidTransitionError: order is not PENDING
    """
    def _op():
        order = _locked_order(order_id)
        require_transition(order, DELIVERY_IN_PROGRESS)

        driver = _locked_driver(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found", details={"driver_id": driver_id})
        if not driver.is_active or driver.status == DRIVER_UNAVAILABLE:
            raise ValidationError(
                f"Driver {driver.name} is not available",
                details={"driver_id": driver_id, "status": driver.status},
            )

        order.driver_id = driver.id
        order.departed_at = now or utcnow()
        order.delivery_status = DELIVERY_IN_PROGRESS
        driver.status = DRIVER_ON_DELIVERY

        db.session.commit()
        current_app.logger.info(
            "Order %s assigned to driver %s by %s", order.order_number, driver.id, actor_id
        )
        return order

    return run_with_retry(_op)


def confirm_delivery(
    order_id: int,
    notes: str | None = None,
    *,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    """
    Confirm the client received the order (IN_PROGRESS -> DELIVERED).

    Raises:
        NotFoundError: order missing
        InvalidTransitionError: order is not IN_PROGRESS
    """
    def _op():
        order = _locked_order(order_id)
        require_transition(order, DELIVERY_DELIVERED)

        order.delivered_at = now or utcnow()
        order.delivery_notes = notes
        order.delivery_status = DELIVERY_DELIVERED
        release_driver(order.driver_id, exclude_order_id=order.id)

        db.session.commit()
        current_app.logger.info("Order %s delivered (confirmed by %s)", order.order_number, actor_id)
        return order

    return run_with_retry(_op)


def list_deliveries(*, status: str | None = None, driver_id: int | None = None) -> list[Order]:
    """Orders on the delivery board; cancelled orders only when asked for explicitly."""
    query = db.session.query(Order)
    if status is not None:
        validate_status(status)
        query = query.filter(Order.delivery_status == status)
    else:
        query = query.filter(Order.delivery_status != DELIVERY_CANCELLED)
    if driver_id is not None:
        query = query.filter(Order.driver_id == driver_id)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()
