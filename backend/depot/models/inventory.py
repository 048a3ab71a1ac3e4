from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Lot(db.Model):
    """
    A batch of one product received together.

    Lots are receipt records: orders do not draw from a specific lot, so
    remaining_quantity only changes when set explicitly at receipt time.
    status is cached for filtering and re-derived from expiration_date on
    every read and by the reclassification job.
    """
    __tablename__ = "lots"
    __table_args__ = (
        db.UniqueConstraint("product_id", "lot_number", name="uq_lots_product_number"),
        db.CheckConstraint("remaining_quantity <= initial_quantity", name="ck_lots_remaining_le_initial"),
        db.CheckConstraint("remaining_quantity >= 0", name="ck_lots_remaining_non_negative"),
        db.Index("ix_lots_expiration", "expiration_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    lot_number = db.Column(db.String(64), nullable=False)
    manufacture_date = db.Column(db.Date, nullable=True)
    expiration_date = db.Column(db.Date, nullable=True)

    initial_quantity = db.Column(db.Integer, nullable=False)
    remaining_quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="GOOD", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    supplier = db.relationship("Supplier")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "supplier_id": self.supplier_id,
            "lot_number": self.lot_number,
            "manufacture_date": to_iso_date(self.manufacture_date),
            "expiration_date": to_iso_date(self.expiration_date),
            "initial_quantity": self.initial_quantity,
            "remaining_quantity": self.remaining_quantity,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit record of a single stock quantity change.

    quantity is what the operator entered (signed only for ADJUST);
    quantity_delta is the signed change actually applied, so that
    stock_after == stock_before + quantity_delta and SUM(quantity_delta)
    replays the product's current stock.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_product_created", "product_id", "created_at"),
        db.CheckConstraint("stock_after = stock_before + quantity_delta", name="ck_movements_balance"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(64), nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    # Opaque identity from the caller's identity provider
    actor_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    lot = db.relationship("Lot")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_id": self.lot_id,
            "type": self.type,
            "quantity": self.quantity,
            "quantity_delta": self.quantity_delta,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reference": self.reference,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockLoss(db.Model):
    """Declared loss (expiry, breakage, theft...) backed by one LOSS movement."""
    __tablename__ = "stock_losses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("lots.id"), nullable=True, index=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=False, unique=True)

    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    movement = db.relationship("StockMovement")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_id": self.lot_id,
            "movement_id": self.movement_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "description": self.description,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
