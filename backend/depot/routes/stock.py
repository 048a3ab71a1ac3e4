# Overview: Flask API routes for stock movements, losses, lot receipts and the ledger audit.

# backend/depot/routes/stock.py
"""
Stock routes.

SECURITY: All routes require an actor. Writes require WAREHOUSE.

Stock only changes through these endpoints (and through order creation and
cancellation); each call writes exactly one movement per product touched.
"""
from flask import Blueprint, request, current_app

from ..services import stock_service, lot_service, catalog_service
from ..services.stock_service import MOVEMENT_ADJUST, MOVEMENT_LOSS
from ..errors import DepotError, ValidationError
from ..validation import text_field
from ..time_utils import parse_iso_date, to_utc_z
from ..decorators import require_actor, require_role, current_actor_id, ROLE_WAREHOUSE


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


def _int_field(payload: dict, name: str, *, required: bool = True):
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    return value


def _date_field(payload: dict, name: str):
    try:
        return parse_iso_date(payload.get(name))
    except ValueError as exc:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date", details={name: payload.get(name)}) from exc


# =============================================================================
# MOVEMENTS
# =============================================================================

@stock_bp.get("/stock/movements")
@require_actor
def list_movements_route():
    """
    Movement journal, newest first.

    Query params: product_id, type, reference, limit (default 200, max 1000)
    """
    movements = stock_service.list_movements(
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        reference=request.args.get("reference"),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}, 200


@stock_bp.post("/stock/movements")
@require_actor
@require_role(ROLE_WAREHOUSE)
def apply_movement_route():
    """
    Record an IN or OUT movement.

    Request body:
    {
        "product_id": 1,
        "type": "IN",
        "quantity": 10,
        "reference": "BL-2024-001",  (optional)
        "reason": "supplier delivery",  (optional)
        "lot_id": 3  (optional)
    }

    ADJUST goes through /stock/adjust and LOSS through /stock/losses.
    """
    payload = request.get_json(silent=True) or {}
    try:
        movement_type = payload.get("type")
        if movement_type in (MOVEMENT_ADJUST, MOVEMENT_LOSS):
            raise ValidationError(
                f"Use the dedicated endpoint for {movement_type} movements",
                details={"type": movement_type},
            )
        movement = stock_service.apply_movement(
            product_id=_int_field(payload, "product_id"),
            movement_type=movement_type,
            quantity=_int_field(payload, "quantity"),
            reference=text_field(payload, "reference"),
            reason=text_field(payload, "reason"),
            actor_id=current_actor_id(),
            lot_id=_int_field(payload, "lot_id", required=False),
        )
        return movement.to_dict(), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return {"error": "Internal server error"}, 500


@stock_bp.post("/stock/adjust")
@require_actor
@require_role(ROLE_WAREHOUSE)
def adjust_stock_route():
    """Signed correction after a physical count. Body: product_id, quantity_delta, reason."""
    payload = request.get_json(silent=True) or {}
    try:
        movement = stock_service.adjust_stock(
            product_id=_int_field(payload, "product_id"),
            quantity_delta=_int_field(payload, "quantity_delta"),
            reason=text_field(payload, "reason"),
            actor_id=current_actor_id(),
            reference=text_field(payload, "reference"),
        )
        return movement.to_dict(), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500


@stock_bp.get("/stock/products/<int:product_id>/balance")
@require_actor
def ledger_balance_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except DepotError as e:
        return e.to_dict(), e.status_code

    balance = stock_service.ledger_balance(product_id)
    return {
        "product_id": product.id,
        "current_stock": product.current_stock,
        "ledger_balance": balance,
        "in_sync": balance == product.current_stock,
    }, 200


@stock_bp.get("/stock/audit")
@require_actor
@require_role(ROLE_WAREHOUSE)
def audit_route():
    mismatches = stock_service.audit_stock_ledger()
    return {"ok": not mismatches, "mismatches": mismatches}, 200


# =============================================================================
# LOSSES
# =============================================================================

@stock_bp.get("/stock/losses")
@require_actor
def list_losses_route():
    losses = stock_service.list_losses(product_id=request.args.get("product_id", type=int))
    return {"items": [loss.to_dict() for loss in losses], "count": len(losses)}, 200


@stock_bp.post("/stock/losses")
@require_actor
@require_role(ROLE_WAREHOUSE)
def record_loss_route():
    """
    Declare a loss (EXPIRED, DAMAGED, BROKEN, THEFT, OTHER).

    Body: product_id, quantity, reason, lot_id (optional), description (optional)
    """
    payload = request.get_json(silent=True) or {}
    try:
        loss = stock_service.record_loss(
            product_id=_int_field(payload, "product_id"),
            quantity=_int_field(payload, "quantity"),
            reason=text_field(payload, "reason"),
            actor_id=current_actor_id(),
            lot_id=_int_field(payload, "lot_id", required=False),
            description=text_field(payload, "description"),
        )
        return loss.to_dict(), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record loss")
        return {"error": "Internal server error"}, 500


# =============================================================================
# LOTS
# =============================================================================

@stock_bp.get("/lots")
@require_actor
def list_lots_route():
    """Lots by expiration date. Query params: product_id, status (GOOD, NEAR_EXPIRY, EXPIRED)."""
    try:
        rows = lot_service.list_lots(
            product_id=request.args.get("product_id", type=int),
            status=request.args.get("status"),
        )
        return {"items": rows, "count": len(rows)}, 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@stock_bp.get("/lots/<int:lot_id>")
@require_actor
def get_lot_route(lot_id: int):
    try:
        return lot_service.lot_to_dict(lot_service.get_lot(lot_id)), 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@stock_bp.post("/lots")
@require_actor
@require_role(ROLE_WAREHOUSE)
def receive_lot_route():
    """
    Receive a lot: creates the lot and its IN movement.

    Request body:
    {
        "product_id": 1,
        "lot_number": "L-2024-001",
        "quantity": 48,
        "supplier_id": 2,  (optional)
        "manufacture_date": "2024-01-10",  (optional)
        "expiration_date": "2024-07-10"  (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        lot, movement = stock_service.receive_lot(
            product_id=_int_field(payload, "product_id"),
            lot_number=text_field(payload, "lot_number"),
            quantity=_int_field(payload, "quantity"),
            actor_id=current_actor_id(),
            supplier_id=_int_field(payload, "supplier_id", required=False),
            manufacture_date=_date_field(payload, "manufacture_date"),
            expiration_date=_date_field(payload, "expiration_date"),
        )
        return {"lot": lot_service.lot_to_dict(lot), "movement": movement.to_dict()}, 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive lot")
        return {"error": "Internal server error"}, 500


@stock_bp.post("/lots/reclassify")
@require_actor
@require_role(ROLE_WAREHOUSE)
def reclassify_lots_route():
    result = lot_service.reclassify_lots()
    return {"checked_at": to_utc_z(result["checked_at"]), "changed": result["changed"]}, 200
