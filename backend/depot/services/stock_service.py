# Overview: Stock movement recorder; the only code that changes Product.current_stock.

"""
Stock Movement Recorder

Invariants (authoritative):
- Product.current_stock changes only here, and every change writes exactly one
  StockMovement row in the same transaction.
- stock_after == stock_before + quantity_delta for every movement, so
  SUM(quantity_delta) over a product's movements equals its current stock.
- The counter is changed by ONE conditional UPDATE
  (current_stock = current_stock + delta WHERE current_stock + delta >= 0),
  never by reading the value in Python and writing it back. Concurrent
  movements on the same product serialize on the row and cannot lose updates.
- IN / OUT / LOSS take a positive quantity. ADJUST takes a signed non-zero
  delta and may drive stock negative (operator correction).
- Movements are append-only; nothing updates or deletes them.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, Lot, StockMovement, StockLoss, Supplier
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .lot_service import classify_expiration


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_LOSS = "LOSS"
VALID_MOVEMENT_TYPES = [MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST, MOVEMENT_LOSS]

LOSS_EXPIRED = "EXPIRED"
LOSS_DAMAGED = "DAMAGED"
LOSS_BROKEN = "BROKEN"
LOSS_THEFT = "THEFT"
LOSS_OTHER = "OTHER"
VALID_LOSS_REASONS = [LOSS_EXPIRED, LOSS_DAMAGED, LOSS_BROKEN, LOSS_THEFT, LOSS_OTHER]

REASON_LOT_RECEIVED = "new lot received"
REASON_INITIAL_STOCK = "initial stock"


def _require_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    return value


def signed_delta(movement_type: str, quantity: int) -> int:
    """Signed stock change for a movement type and entered quantity."""
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}. Must be one of {VALID_MOVEMENT_TYPES}",
            details={"type": movement_type},
        )
    quantity = _require_int("quantity", quantity)
    if movement_type == MOVEMENT_ADJUST:
        if quantity == 0:
            raise ValidationError("quantity must be non-zero for ADJUST")
        return quantity
    if quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}", details={"quantity": quantity})
    if movement_type == MOVEMENT_IN:
        return quantity
    return -quantity


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _current_stock(product_id: int) -> int:
    return int(
        db.session.query(Product.current_stock).filter(Product.id == product_id).scalar() or 0
    )


def _apply_movement_inner(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference: str | None,
    reason: str | None,
    actor_id: str | None,
    lot_id: int | None = None,
) -> StockMovement:
    """Core movement logic without retry or commit.

    Called by apply_movement() and by multi-step operations (order creation,
    cancellation, lot receipt, losses) that own the surrounding transaction.
    """
    delta = signed_delta(movement_type, quantity)
    product = _get_product(product_id)

    if lot_id is not None:
        lot = db.session.get(Lot, lot_id)
        if lot is None or lot.product_id != product_id:
            raise ValidationError(
                f"Lot {lot_id} does not belong to product {product.name}",
                details={"lot_id": lot_id, "product_id": product_id},
            )

    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            current_stock=Product.current_stock + delta,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if movement_type != MOVEMENT_ADJUST:
        stmt = stmt.where(Product.current_stock + delta >= 0)

    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InsufficientStockError(
            product_id=product_id,
            product_name=product.name,
            requested=-delta,
            available=_current_stock(product_id),
        )

    # Read back inside the same transaction: we hold the row, so this is the
    # value our UPDATE produced.
    stock_after = _current_stock(product_id)
    db.session.expire(product, ["current_stock", "version_id"])

    movement = StockMovement(
        product_id=product_id,
        lot_id=lot_id,
        type=movement_type,
        quantity=quantity,
        quantity_delta=delta,
        stock_before=stock_after - delta,
        stock_after=stock_after,
        reference=reference,
        reason=reason,
        actor_id=actor_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()

    current_app.logger.info(
        "Stock movement %s %+d on product %s (%d -> %d) ref=%s",
        movement_type, delta, product_id, movement.stock_before, movement.stock_after, reference,
    )
    if (
        delta < 0
        and current_app.config.get("LOW_STOCK_ALERT_ENABLED", True)
        and stock_after <= (product.minimum_stock or 0)
    ):
        current_app.logger.warning(
            "Low stock: product %s (%s) at %d, minimum %d",
            product_id, product.name, stock_after, product.minimum_stock,
        )
    return movement


def apply_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference: str | None = None,
    reason: str | None = None,
    actor_id: str | None = None,
    lot_id: int | None = None,
) -> StockMovement:
    """
    Apply one stock movement and commit.

    Raises:
        ValidationError: bad type/quantity, lot not matching product
        NotFoundError: unknown product
        InsufficientStockError: OUT/LOSS would drive stock below zero
    """
    def _op():
        movement = _apply_movement_inner(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            reason=reason,
            actor_id=actor_id,
            lot_id=lot_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(
    *,
    product_id: int,
    quantity_delta: int,
    reason: str,
    actor_id: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """Manual correction (signed). Allowed to go negative; a reason is mandatory."""
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required for ADJUST")
    return apply_movement(
        product_id=product_id,
        movement_type=MOVEMENT_ADJUST,
        quantity=quantity_delta,
        reference=reference,
        reason=reason,
        actor_id=actor_id,
    )


def receive_lot(
    *,
    product_id: int,
    lot_number: str,
    quantity: int,
    actor_id: str | None = None,
    supplier_id: int | None = None,
    manufacture_date: date | None = None,
    expiration_date: date | None = None,
    now=None,
) -> tuple[Lot, StockMovement]:
    """
    Receive a new lot: insert the Lot and its IN movement in one transaction.

    The lot number is used as the movement reference.
    """
    if lot_number is not None and not isinstance(lot_number, str):
        raise ValidationError("lot_number must be a string", details={"lot_number": lot_number})
    lot_number = (lot_number or "").strip()
    if not lot_number:
        raise ValidationError("lot_number is required")
    quantity = _require_int("quantity", quantity)
    if quantity <= 0:
        raise ValidationError("quantity must be > 0", details={"quantity": quantity})
    if manufacture_date and expiration_date and expiration_date < manufacture_date:
        raise ValidationError(
            "expiration_date cannot be before manufacture_date",
            details={"lot_number": lot_number},
        )

    def _op():
        _get_product(product_id)
        if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
        duplicate = db.session.query(Lot.id).filter_by(product_id=product_id, lot_number=lot_number).first()
        if duplicate is not None:
            raise ValidationError(
                f"Lot {lot_number} already exists for product {product_id}",
                details={"product_id": product_id, "lot_number": lot_number},
            )

        lot = Lot(
            product_id=product_id,
            supplier_id=supplier_id,
            lot_number=lot_number,
            manufacture_date=manufacture_date,
            expiration_date=expiration_date,
            initial_quantity=quantity,
            remaining_quantity=quantity,
            status=classify_expiration(expiration_date, now or utcnow()),
        )
        db.session.add(lot)
        db.session.flush()

        movement = _apply_movement_inner(
            product_id=product_id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            reference=lot_number,
            reason=REASON_LOT_RECEIVED,
            actor_id=actor_id,
            lot_id=lot.id,
        )
        db.session.commit()
        return lot, movement

    return run_with_retry(_op)


def record_loss(
    *,
    product_id: int,
    quantity: int,
    reason: str,
    actor_id: str | None = None,
    lot_id: int | None = None,
    description: str | None = None,
) -> StockLoss:
    """Declare a loss: StockLoss row plus its LOSS movement, one transaction."""
    if reason not in VALID_LOSS_REASONS:
        raise ValidationError(
            f"Invalid loss reason: {reason}. Must be one of {VALID_LOSS_REASONS}",
            details={"reason": reason},
        )

    def _op():
        movement = _apply_movement_inner(
            product_id=product_id,
            movement_type=MOVEMENT_LOSS,
            quantity=quantity,
            reference=f"LOSS-{reason}",
            reason=description or reason.lower(),
            actor_id=actor_id,
            lot_id=lot_id,
        )
        loss = StockLoss(
            product_id=product_id,
            lot_id=lot_id,
            movement_id=movement.id,
            quantity=quantity,
            reason=reason,
            description=description,
            actor_id=actor_id,
            occurred_at=movement.created_at,
        )
        db.session.add(loss)
        db.session.commit()
        return loss

    return run_with_retry(_op)


def list_movements(
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    reference: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    query = db.session.query(StockMovement)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(StockMovement.type == movement_type)
    if reference is not None:
        query = query.filter(StockMovement.reference == reference)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def list_losses(*, product_id: int | None = None, limit: int = 200) -> list[StockLoss]:
    query = db.session.query(StockLoss)
    if product_id is not None:
        query = query.filter(StockLoss.product_id == product_id)
    return query.order_by(StockLoss.id.desc()).limit(limit).all()


def ledger_balance(product_id: int) -> int:
    """Replay of the movement ledger: SUM(quantity_delta) for the product."""
    return int(
        db.session.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
        or 0
    )


def audit_stock_ledger() -> list[dict]:
    """Products whose stored counter disagrees with the replayed ledger."""
    balances = dict(
        db.session.query(StockMovement.product_id, func.sum(StockMovement.quantity_delta))
        .group_by(StockMovement.product_id)
        .all()
    )
    mismatches = []
    for product in db.session.query(Product).order_by(Product.id).all():
        replayed = int(balances.get(product.id) or 0)
        if replayed != product.current_stock:
            mismatches.append({
                "product_id": product.id,
                "product_name": product.name,
                "current_stock": product.current_stock,
                "ledger_balance": replayed,
            })
    return mismatches
