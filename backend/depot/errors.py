# Overview: Domain error hierarchy shared by services and routes.

"""
Depot error kinds.

Every error names the entity it is about through ``details`` (product id and
name, order number, requested vs. available amounts) so the caller can show
which row to reconcile. Errors are terminal for the operation that raised them:
the surrounding transaction has been rolled back and nothing is retried.
"""

from __future__ import annotations


class DepotError(Exception):
    """Base class for business errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DepotError, ValueError):
    """400-level input problem (empty cart, non-positive amount, bad field)."""


class NotFoundError(DepotError):
    """Referenced row does not exist."""

    status_code = 404


class InsufficientStockError(DepotError):
    """A movement or order line would drive a product's stock below zero."""

    status_code = 409

    def __init__(self, *, product_id: int, product_name: str | None, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_name or product_id}: "
            f"requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )


class OverpaymentError(DepotError):
    """A payment exceeds the order's remaining amount."""

    status_code = 409

    def __init__(self, *, order_id: int, order_number: str, amount_cents: int, remaining_cents: int):
        super().__init__(
            f"Payment of {amount_cents} exceeds remaining {remaining_cents} on order {order_number}",
            details={
                "order_id": order_id,
                "order_number": order_number,
                "amount_cents": amount_cents,
                "remaining_cents": remaining_cents,
            },
        )


class InvalidTransitionError(DepotError):
    """Delivery state machine misuse."""

    status_code = 409


class ConcurrencyConflictError(DepotError):
    """A concurrent writer changed the row between read and write."""

    status_code = 409


class ConflictError(DepotError):
    """409-level uniqueness conflict (e.g., duplicate product reference)."""

    status_code = 409
