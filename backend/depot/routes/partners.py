# Overview: Flask API routes for suppliers, clients and drivers.

"""
Partner routes.

The three partner kinds share one set of handlers:
    GET    /api/<kind>              list (include_inactive, q)
    POST   /api/<kind>              create
    GET    /api/<kind>/<id>         detail
    PATCH  /api/<kind>/<id>         update
    DELETE /api/<kind>/<id>         soft delete (is_active=False)

Suppliers are managed by WAREHOUSE, clients by CASHIER, drivers by WAREHOUSE.
"""
from flask import Blueprint, request, current_app

from ..models import Client, Driver, Supplier
from ..services import partner_service
from ..validation import ModelValidationPolicy, validate_payload
from ..errors import DepotError
from ..decorators import require_actor, require_role, ROLE_CASHIER, ROLE_WAREHOUSE

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_name", "phone", "email", "address", "is_active"},
    required_on_create={"name"},
)

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_name", "phone", "email", "address", "city", "is_active"},
    required_on_create={"name", "address"},
)

DRIVER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "vehicle", "plate_number", "status", "is_active"},
    required_on_create={"name"},
)

partners_bp = Blueprint("partners", __name__, url_prefix="/api")


def _register(kind: str, model, policy: ModelValidationPolicy, write_role: str) -> None:
    @require_actor
    def list_route():
        rows = partner_service.list_partners(
            model,
            active_only=request.args.get("include_inactive", "false").lower() != "true",
            search=request.args.get("q"),
        )
        return {"items": [r.to_dict() for r in rows], "count": len(rows)}, 200

    @require_actor
    def get_route(partner_id: int):
        try:
            return partner_service.get_partner(model, partner_id).to_dict(), 200
        except DepotError as e:
            return e.to_dict(), e.status_code

    @require_actor
    @require_role(write_role)
    def create_route():
        payload = request.get_json(silent=True) or {}
        try:
            patch = validate_payload(model=model, payload=payload, policy=policy, partial=False)
            return partner_service.create_partner(model, patch=patch).to_dict(), 201
        except DepotError as e:
            return e.to_dict(), e.status_code
        except Exception:
            current_app.logger.exception("Failed to create %s", kind)
            return {"error": "Internal server error"}, 500

    @require_actor
    @require_role(write_role)
    def update_route(partner_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            patch = validate_payload(model=model, payload=payload, policy=policy, partial=True)
            return partner_service.update_partner(model, partner_id, patch=patch).to_dict(), 200
        except DepotError as e:
            return e.to_dict(), e.status_code
        except Exception:
            current_app.logger.exception("Failed to update %s", kind)
            return {"error": "Internal server error"}, 500

    @require_actor
    @require_role(write_role)
    def deactivate_route(partner_id: int):
        try:
            return partner_service.deactivate_partner(model, partner_id).to_dict(), 200
        except DepotError as e:
            return e.to_dict(), e.status_code

    partners_bp.add_url_rule(f"/{kind}", f"list_{kind}", list_route, methods=["GET"])
    partners_bp.add_url_rule(f"/{kind}", f"create_{kind}", create_route, methods=["POST"])
    partners_bp.add_url_rule(f"/{kind}/<int:partner_id>", f"get_{kind}", get_route, methods=["GET"])
    partners_bp.add_url_rule(f"/{kind}/<int:partner_id>", f"update_{kind}", update_route, methods=["PATCH"])
    partners_bp.add_url_rule(f"/{kind}/<int:partner_id>", f"deactivate_{kind}", deactivate_route, methods=["DELETE"])


_register("suppliers", Supplier, SUPPLIER_POLICY, ROLE_WAREHOUSE)
_register("clients", Client, CLIENT_POLICY, ROLE_CASHIER)
_register("drivers", Driver, DRIVER_POLICY, ROLE_WAREHOUSE)
