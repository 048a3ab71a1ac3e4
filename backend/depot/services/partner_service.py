# Overview: Suppliers, hotel clients and delivery drivers.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Client, Driver, Supplier
from ..models.partners import DRIVER_ON_DELIVERY, DRIVER_STATUSES
from ..errors import NotFoundError, ValidationError

PARTNER_MUTABLE_FIELDS = {
    Supplier: {"name", "contact_name", "phone", "email", "address", "is_active"},
    Client: {"name", "contact_name", "phone", "email", "address", "city", "is_active"},
    Driver: {"name", "phone", "vehicle", "plate_number", "status", "is_active"},
}

PARTNER_LABELS = {Supplier: "Supplier", Client: "Client", Driver: "Driver"}


def _apply(obj, patch: dict) -> None:
    allowed = PARTNER_MUTABLE_FIELDS[type(obj)]
    for k, v in patch.items():
        if k in allowed:
            setattr(obj, k, v)


def get_partner(model, partner_id: int):
    obj = db.session.get(model, partner_id)
    if obj is None:
        label = PARTNER_LABELS[model]
        raise NotFoundError(f"{label} {partner_id} not found", details={f"{label.lower()}_id": partner_id})
    return obj


def list_partners(model, *, active_only: bool = True, search: str | None = None) -> list:
    query = db.session.query(model)
    if active_only:
        query = query.filter(model.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        columns = [model.name.ilike(pattern)]
        if hasattr(model, "phone"):
            columns.append(model.phone.ilike(pattern))
        query = query.filter(or_(*columns))
    return query.order_by(model.name.asc(), model.id.asc()).all()


def create_partner(model, *, patch: dict):
    if model is Driver:
        _check_driver_status(patch.get("status"), current=None)
    obj = model()
    _apply(obj, patch)
    db.session.add(obj)
    db.session.commit()
    return obj


def update_partner(model, partner_id: int, *, patch: dict):
    obj = get_partner(model, partner_id)
    if model is Driver and "status" in patch:
        _check_driver_status(patch["status"], current=obj.status)
        if obj.status == DRIVER_ON_DELIVERY and patch["status"] != DRIVER_ON_DELIVERY:
            # Freed by confirm_delivery / cancel_order, not by hand
            raise ValidationError(
                f"Driver {obj.name} is on a delivery",
                details={"driver_id": obj.id, "status": obj.status},
            )
    _apply(obj, patch)
    db.session.commit()
    return obj


def deactivate_partner(model, partner_id: int):
    return update_partner(model, partner_id, patch={"is_active": False})


def _check_driver_status(status: str | None, *, current: str | None) -> None:
    if status is not None and status not in DRIVER_STATUSES:
        raise ValidationError(
            f"Invalid driver status: {status}. Must be one of {sorted(DRIVER_STATUSES)}",
            details={"status": status},
        )
    # ON_DELIVERY is set by assign_driver and cleared by release_driver only
    if status == DRIVER_ON_DELIVERY and current != DRIVER_ON_DELIVERY:
        raise ValidationError(
            "A driver goes ON_DELIVERY by being assigned an order",
            details={"status": status},
        )
