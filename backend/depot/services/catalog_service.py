# backend/depot/services/catalog_service.py
"""
Catalog Service

Categories, products and product-supplier links.

STOCK: product patches never touch current_stock. A new product starts at
zero; an initial quantity is recorded as an IN movement so the stock ledger
replays to the counter from day one.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, ProductSupplier, Supplier
from ..errors import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry
from .stock_service import MOVEMENT_IN, REASON_INITIAL_STOCK, _apply_movement_inner

PRODUCT_MUTABLE_FIELDS = {
    "reference",
    "name",
    "description",
    "category_id",
    "unit_of_measure",
    "unit_price_cents",
    "minimum_stock",
    "is_active",
}
CATEGORY_MUTABLE_FIELDS = {"name", "description"}


def apply_patch(obj, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(obj, k, v)


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(*, patch: dict) -> Category:
    if db.session.query(Category.id).filter_by(name=patch.get("name")).first():
        raise ConflictError("Category name already exists", details={"name": patch.get("name")})
    category = Category()
    apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, *, patch: dict) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})
    if "name" in patch:
        clash = db.session.query(Category.id).filter(
            Category.name == patch["name"], Category.id != category_id
        ).first()
        if clash:
            raise ConflictError("Category name already exists", details={"name": patch["name"]})
    apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return category


# =============================================================================
# PRODUCTS
# =============================================================================

def _ensure_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})


def _ensure_reference_free(reference: str | None, product_id: int | None = None) -> None:
    if reference is None:
        return
    query = db.session.query(Product.id).filter(Product.reference == reference)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise ConflictError(f"Product reference {reference} already exists", details={"reference": reference})


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(
    *,
    active_only: bool = True,
    low_stock_only: bool = False,
    category_id: int | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if active_only:
        base_query = base_query.filter(Product.is_active.is_(True))
    if low_stock_only:
        base_query = base_query.filter(Product.current_stock <= Product.minimum_stock)
    if category_id is not None:
        base_query = base_query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.reference.ilike(pattern)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def low_stock_products() -> list[Product]:
    """Active products at or below their minimum stock, emptiest first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.current_stock <= Product.minimum_stock)
        .order_by((Product.current_stock - Product.minimum_stock).asc(), Product.name.asc())
        .all()
    )


def create_product(*, patch: dict, initial_stock: int = 0, actor_id: str | None = None) -> Product:
    """
    Create a product from a validated patch dict.

    initial_stock > 0 is booked as an IN movement in the same transaction.
    """
    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError("initial_stock must be a non-negative integer")

    def _op():
        _ensure_category(patch.get("category_id"))
        _ensure_reference_free(patch.get("reference"))

        product = Product(current_stock=0)
        apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Product reference already exists", details={"reference": patch.get("reference")}) from exc

        if initial_stock > 0:
            _apply_movement_inner(
                product_id=product.id,
                movement_type=MOVEMENT_IN,
                quantity=initial_stock,
                reference=product.reference,
                reason=REASON_INITIAL_STOCK,
                actor_id=actor_id,
            )

        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(product_id: int, *, patch: dict) -> Product:
    def _op():
        product = get_product(product_id)
        if "category_id" in patch:
            _ensure_category(patch["category_id"])
        if "reference" in patch:
            _ensure_reference_free(patch["reference"], product_id)
        apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
        db.session.commit()
        return product

    return run_with_retry(_op)


def deactivate_product(product_id: int) -> Product:
    """Soft delete: products with movements or order lines are never removed."""
    return update_product(product_id, patch={"is_active": False})


# =============================================================================
# PRODUCT SUPPLIERS
# =============================================================================

def link_supplier(product_id: int, *, supplier_id: int, patch: dict) -> ProductSupplier:
    """Create or update the (product, supplier) link."""
    get_product(product_id)
    if db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})

    link = db.session.query(ProductSupplier).filter_by(product_id=product_id, supplier_id=supplier_id).first()
    if link is None:
        link = ProductSupplier(product_id=product_id, supplier_id=supplier_id)
        db.session.add(link)
    apply_patch(link, patch, {"supplier_price_cents", "supplier_reference", "lead_time_days"})
    db.session.commit()
    return link


def list_product_suppliers(product_id: int) -> list[ProductSupplier]:
    get_product(product_id)
    return (
        db.session.query(ProductSupplier)
        .filter_by(product_id=product_id)
        .order_by(ProductSupplier.supplier_price_cents.asc(), ProductSupplier.id.asc())
        .all()
    )
