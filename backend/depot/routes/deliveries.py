# Overview: Flask API routes for the delivery board.

"""
Delivery routes.

PENDING -> IN_PROGRESS (assign) -> DELIVERED (confirm). Cancellation lives
with the orders routes because it also returns stock.

SECURITY: WAREHOUSE assigns drivers; WAREHOUSE or DRIVER confirms.
"""
from flask import Blueprint, request, current_app

from ..services import delivery_service
from ..errors import DepotError, ValidationError
from ..validation import text_field
from ..decorators import require_actor, require_role, current_actor_id, ROLE_DRIVER, ROLE_WAREHOUSE


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.get("")
@require_actor
def list_deliveries_route():
    """Query params: status, driver_id. Cancelled orders are hidden unless status=CANCELLED."""
    try:
        orders = delivery_service.list_deliveries(
            status=request.args.get("status"),
            driver_id=request.args.get("driver_id", type=int),
        )
        return {"items": [o.to_dict() for o in orders], "count": len(orders)}, 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@deliveries_bp.post("/<int:order_id>/assign")
@require_actor
@require_role(ROLE_WAREHOUSE)
def assign_driver_route(order_id: int):
    """Body: {"driver_id": 2}"""
    payload = request.get_json(silent=True) or {}
    try:
        driver_id = payload.get("driver_id")
        if isinstance(driver_id, bool) or not isinstance(driver_id, int):
            raise ValidationError("driver_id is required")
        order = delivery_service.assign_driver(order_id, driver_id, actor_id=current_actor_id())
        return order.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to assign driver")
        return {"error": "Internal server error"}, 500


@deliveries_bp.post("/<int:order_id>/confirm")
@require_actor
@require_role(ROLE_WAREHOUSE, ROLE_DRIVER)
def confirm_delivery_route(order_id: int):
    """Body: {"notes": "received by reception"} (optional)"""
    payload = request.get_json(silent=True) or {}
    try:
        order = delivery_service.confirm_delivery(order_id, text_field(payload, "notes"), actor_id=current_actor_id())
        return order.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm delivery")
        return {"error": "Internal server error"}, 500
