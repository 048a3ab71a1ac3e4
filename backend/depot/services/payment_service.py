# Overview: Payment ledger; records payments against orders and re-derives payment status.

"""
Payment Ledger

DESIGN PRINCIPLES:
- Payments are separate from orders (many-to-one relationship)
- Split and partial payments are normal (credit clients pay over time)
- Payments are append-only; an order's money triple is updated in the same
  transaction as the payment insert, so both are visible or neither is
- The order row is locked (and version-checked) before the remaining-amount
  check, so two concurrent payments cannot both pass it against a stale value
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, Payment
from ..errors import InvalidTransitionError, NotFoundError, OverpaymentError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# PAYMENT MODES (CONSTANTS)
# =============================================================================

MODE_CASH = "CASH"
MODE_MOBILE_MONEY = "MOBILE_MONEY"
MODE_BANK = "BANK"
MODE_CHEQUE = "CHEQUE"

VALID_PAYMENT_MODES = [
    MODE_CASH,
    MODE_MOBILE_MONEY,
    MODE_BANK,
    MODE_CHEQUE,
]


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"


def derive_payment_status(total_cents: int, paid_cents: int) -> str:
    """
    Payment status from the money triple. Order of checks matters:

    - remaining == 0      -> PAID
    - remaining < total   -> PARTIAL
    - otherwise           -> UNPAID (only before any payment)
    """
    remaining = total_cents - paid_cents
    if remaining == 0:
        return PAYMENT_STATUS_PAID
    if remaining < total_cents:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(
    order_id: int,
    amount_cents: int,
    mode: str,
    reference: str | None = None,
    notes: str | None = None,
    *,
    actor_id: str | None = None,
) -> Order:
    """
    Record a payment against an order.

    Args:
        order_id: Order being paid
        amount_cents: Amount received (in cents), 0 < amount <= remaining
        mode: CASH, MOBILE_MONEY, BANK, CHEQUE
        reference: Transfer id, cheque number, etc. (optional)
        notes: Free text (optional)
        actor_id: Identity of the cashier recording it

    Returns:
        The updated order

    Raises:
        ValidationError: non-positive amount or unknown mode
        NotFoundError: order missing
        InvalidTransitionError: order is cancelled
        OverpaymentError: amount exceeds the remaining balance
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer", details={"amount_cents": amount_cents})
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive", details={"amount_cents": amount_cents})
    if mode not in VALID_PAYMENT_MODES:
        raise ValidationError(f"Invalid payment mode: {mode}. Must be one of {VALID_PAYMENT_MODES}")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})

        if order.delivery_status == "CANCELLED":
            raise InvalidTransitionError(
                f"Cannot add payment to cancelled order {order.order_number}",
                details={"order_id": order.id, "order_number": order.order_number},
            )

        if amount_cents > order.remaining_cents:
            raise OverpaymentError(
                order_id=order.id,
                order_number=order.order_number,
                amount_cents=amount_cents,
                remaining_cents=order.remaining_cents,
            )

        payment = Payment(
            order_id=order.id,
            amount_cents=amount_cents,
            mode=mode,
            reference=reference,
            notes=notes,
            actor_id=actor_id,
            paid_at=utcnow(),
        )
        db.session.add(payment)

        order.paid_cents = order.paid_cents + amount_cents
        order.remaining_cents = order.total_cents - order.paid_cents
        order.payment_status = derive_payment_status(order.total_cents, order.paid_cents)

        db.session.commit()

        current_app.logger.info(
            "Payment %s of %d on order %s (%s), remaining %d",
            mode, amount_cents, order.order_number, order.payment_status, order.remaining_cents,
        )
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(order_id: int) -> list[Payment]:
    """Payments for an order, in the order they were recorded."""
    return db.session.query(Payment).filter_by(order_id=order_id).order_by(Payment.id).all()


def payment_summary(order_id: int) -> dict:
    """
    Payment summary for an order.

    Returns:
        - total_cents / paid_cents / remaining_cents
        - payment_status
        - by_mode: collected amount per payment mode
        - payments: list of payment records
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})

    by_mode = dict(
        db.session.query(Payment.mode, func.sum(Payment.amount_cents))
        .filter(Payment.order_id == order_id)
        .group_by(Payment.mode)
        .all()
    )

    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total_cents": order.total_cents,
        "paid_cents": order.paid_cents,
        "remaining_cents": order.remaining_cents,
        "payment_status": order.payment_status,
        "by_mode": {mode: int(by_mode.get(mode) or 0) for mode in VALID_PAYMENT_MODES},
        "payments": [p.to_dict() for p in list_payments(order_id)],
    }
