from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Client order (header).

    MONEY: total_cents is fixed at creation from the line amounts.
    paid_cents + remaining_cents == total_cents at all times, and
    payment_status is derived from them; only the payment ledger writes
    these three fields.

    DELIVERY: delivery_status is driven by the delivery state machine and
    is independent of payment_status (DELIVERED + UNPAID is normal for
    credit clients).

    version_id guards the money triple against lost updates between
    concurrent payments.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("paid_cents + remaining_cents = total_cents", name="ck_orders_money_balance"),
        db.Index("ix_orders_status_created", "delivery_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "CMD-000123")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    delivery_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_cents = db.Column(db.Integer, nullable=False)

    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)
    departed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_notes = db.Column(db.Text, nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by_actor_id = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("orders", lazy=True))
    driver = db.relationship("Driver", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "delivery_status": self.delivery_status,
            "payment_status": self.payment_status,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "remaining_cents": self.remaining_cents,
            "driver_id": self.driver_id,
            "departed_at": to_utc_z(self.departed_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "delivery_notes": self.delivery_notes,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "notes": self.notes,
            "created_by_actor_id": self.created_by_actor_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """Order line. unit_price_cents is captured at order time; immutable."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("amount_cents = quantity * unit_price_cents", name="ck_order_items_amount"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # OUT movement that took this line out of stock
    movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "movement_id": self.movement_id,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment recorded against an order. Append-only.

    PAYMENT MODES:
    - CASH: Physical currency
    - MOBILE_MONEY: Mobile wallet transfer
    - BANK: Bank transfer
    - CHEQUE: Paper cheque
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    mode = db.Column(db.String(16), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    actor_id = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "mode": self.mode,
            "reference": self.reference,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "paid_at": to_utc_z(self.paid_at),
        }
