# Overview: Flask API routes for orders and their payments; parses input and returns JSON responses.

# backend/depot/routes/orders.py
"""
Order and Payment API Routes

DESIGN:
- Create an order from line items; stock leaves the warehouse in the same transaction
- Record payments against an order (split payments allowed, never above the remaining amount)
- Cancel an unpaid order; its goods return to stock

SECURITY:
- CASHIER role required for creating, cancelling and paying orders
- Every role can read orders
"""

from flask import Blueprint, request, current_app

from ..services import order_service, payment_service
from ..errors import DepotError, ValidationError
from ..validation import text_field
from ..decorators import require_actor, require_role, current_actor_id, ROLE_CASHIER


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.get("")
@require_actor
def list_orders_route():
    """
    List orders, newest first.

    Query params:
    - delivery_status: PENDING, IN_PROGRESS, DELIVERED, CANCELLED
    - payment_status: UNPAID, PARTIAL, PAID
    - client_id: int
    - page / per_page: optional pagination (default 20, max 100)
    """
    try:
        result = order_service.list_orders(
            delivery_status=request.args.get("delivery_status"),
            payment_status=request.args.get("payment_status"),
            client_id=request.args.get("client_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return result, 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@orders_bp.post("")
@require_actor
@require_role(ROLE_CASHIER)
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "client_id": 3,
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 4, "quantity": 1, "unit_price_cents": 1500}
        ],
        "notes": "deliver before noon"  (optional)
    }

    Returns:
        201: Order with items
        400: Invalid input
        404: Unknown client or product
        409: Insufficient stock (details name the product, requested and available)
    """
    payload = request.get_json(silent=True) or {}
    try:
        client_id = payload.get("client_id")
        if isinstance(client_id, bool) or not isinstance(client_id, int):
            raise ValidationError("client_id is required")

        order = order_service.create_order(
            client_id,
            payload.get("items"),
            text_field(payload, "notes"),
            actor_id=current_actor_id(),
        )
        return order_service.order_detail(order.id), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return {"error": "Internal server error"}, 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        return order_service.order_detail(order_id), 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
@require_role(ROLE_CASHIER)
def cancel_order_route(order_id: int):
    """Cancel an unpaid order. Body: {"reason": "..."}"""
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.cancel_order(order_id, text_field(payload, "reason"), actor_id=current_actor_id())
        return order.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return {"error": "Internal server error"}, 500


# =============================================================================
# PAYMENTS
# =============================================================================

@orders_bp.get("/<int:order_id>/payments")
@require_actor
def get_order_payments_route(order_id: int):
    """
    Payment summary for an order.

    Returns total/paid/remaining, payment_status, amounts per mode and the payment list.
    """
    try:
        return payment_service.payment_summary(order_id), 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@orders_bp.post("/<int:order_id>/payments")
@require_actor
@require_role(ROLE_CASHIER)
def record_payment_route(order_id: int):
    """
    Record a payment.

    Request body:
    {
        "amount_cents": 10000,
        "mode": "CASH",
        "reference": "TRX-8841",  (optional)
        "notes": "..."  (optional)
    }

    MODES: CASH, MOBILE_MONEY, BANK, CHEQUE

    Returns:
        201: Updated order and payment summary
        400: Invalid amount or mode
        409: Amount exceeds the remaining balance, or order cancelled
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = payment_service.record_payment(
            order_id,
            payload.get("amount_cents"),
            payload.get("mode"),
            text_field(payload, "reference"),
            text_field(payload, "notes"),
            actor_id=current_actor_id(),
        )
        return {
            "order": order.to_dict(),
            "summary": payment_service.payment_summary(order.id),
        }, 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return {"error": "Internal server error"}, 500
