# Overview: Flask API routes for categories, products and product-supplier links.

# backend/depot/routes/catalog.py
"""
Catalog routes.

SECURITY: All routes require an actor.
- Reads are open to every role
- Writes require WAREHOUSE (ADMIN always passes)

STOCK: current_stock is never writable here. A new product may carry
"initial_stock", which is booked as an IN movement.
"""
from flask import Blueprint, request, current_app

from ..models import Category, Product, ProductSupplier
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_product_supplier,
)
from ..errors import DepotError, ValidationError
from ..decorators import require_actor, require_role, current_actor_id, ROLE_WAREHOUSE

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "reference",
        "name",
        "description",
        "category_id",
        "unit_of_measure",
        "unit_price_cents",
        "minimum_stock",
        "is_active",
    },
    required_on_create={"reference", "name"},
)

PRODUCT_SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_price_cents", "supplier_reference", "lead_time_days"},
    required_on_create=set(),
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_actor
def list_categories_route():
    categories = catalog_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}, 200


@catalog_bp.post("/categories")
@require_actor
@require_role(ROLE_WAREHOUSE)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch=patch)
        return category.to_dict(), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500


@catalog_bp.patch("/categories/<int:category_id>")
@require_actor
@require_role(ROLE_WAREHOUSE)
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id, patch=patch)
        return category.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
@require_actor
def list_products_route():
    """
    List products with optional filters and pagination.

    Query params:
    - include_inactive: true to list deactivated products too
    - low_stock: true to list only products at or below their minimum
    - category_id: int
    - q: search on name or reference
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = catalog_service.list_products(
        active_only=request.args.get("include_inactive", "false").lower() != "true",
        low_stock_only=request.args.get("low_stock", "false").lower() == "true",
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return result, 200


@catalog_bp.get("/products/low-stock")
@require_actor
def low_stock_route():
    products = catalog_service.low_stock_products()
    return {"items": [p.to_dict() for p in products], "count": len(products)}, 200


@catalog_bp.get("/products/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@catalog_bp.post("/products")
@require_actor
@require_role(ROLE_WAREHOUSE)
def create_product_route():
    """
    Create a new product.

    Request body: product fields plus optional "initial_stock" (int >= 0).
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", 0)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(
            patch=patch,
            initial_stock=initial_stock,
            actor_id=current_actor_id(),
        )
        return product.to_dict(), 201
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500


@catalog_bp.patch("/products/<int:product_id>")
@require_actor
@require_role(ROLE_WAREHOUSE)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "current_stock" in payload:
        return ValidationError(
            "current_stock cannot be edited; record a stock movement instead"
        ).to_dict(), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch=patch)
        return product.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500


@catalog_bp.delete("/products/<int:product_id>")
@require_actor
@require_role(ROLE_WAREHOUSE)
def deactivate_product_route(product_id: int):
    """Soft delete (is_active=False)."""
    try:
        product = catalog_service.deactivate_product(product_id)
        return product.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code


# =============================================================================
# PRODUCT SUPPLIERS
# =============================================================================

@catalog_bp.get("/products/<int:product_id>/suppliers")
@require_actor
def list_product_suppliers_route(product_id: int):
    try:
        links = catalog_service.list_product_suppliers(product_id)
        return {"items": [link.to_dict() for link in links], "count": len(links)}, 200
    except DepotError as e:
        return e.to_dict(), e.status_code


@catalog_bp.put("/products/<int:product_id>/suppliers/<int:supplier_id>")
@require_actor
@require_role(ROLE_WAREHOUSE)
def link_supplier_route(product_id: int, supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=ProductSupplier, payload=payload, policy=PRODUCT_SUPPLIER_POLICY, partial=True
        )
        enforce_rules_product_supplier(patch)
        link = catalog_service.link_supplier(product_id, supplier_id=supplier_id, patch=patch)
        return link.to_dict(), 200
    except DepotError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to link supplier")
        return {"error": "Internal server error"}, 500
