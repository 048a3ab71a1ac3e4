# Overview: Lot expiry classification and lot queries.

"""
Lot Expiry Classifier

A lot's status is a pure function of its expiration date and "now":

    no expiration date            -> GOOD
    days_until_expiration < 0     -> EXPIRED
    days_until_expiration <= N    -> NEAR_EXPIRY   (N = NEAR_EXPIRY_DAYS)
    otherwise                     -> GOOD

days_until_expiration = ceil((expiration - now) / 1 day), with the expiration
date taken at midnight UTC. A lot expiring today is therefore still
NEAR_EXPIRY (0 days), and becomes EXPIRED from the next day.

Because time passes, the stored Lot.status goes stale. Reads re-derive it,
and reclassify_lots() (CLI: flask lots reclassify) rewrites the cached column.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time

from flask import current_app, has_app_context

from ..extensions import db
from ..models import Lot
from ..errors import NotFoundError, ValidationError
from ..time_utils import utcnow


LOT_GOOD = "GOOD"
LOT_NEAR_EXPIRY = "NEAR_EXPIRY"
LOT_EXPIRED = "EXPIRED"
VALID_LOT_STATUSES = [LOT_GOOD, LOT_NEAR_EXPIRY, LOT_EXPIRED]

DEFAULT_NEAR_EXPIRY_DAYS = 30


def _near_expiry_days(value: int | None) -> int:
    if value is not None:
        return value
    if has_app_context():
        return int(current_app.config.get("NEAR_EXPIRY_DAYS", DEFAULT_NEAR_EXPIRY_DAYS))
    return DEFAULT_NEAR_EXPIRY_DAYS


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def days_until_expiration(expiration: date | datetime | None, now: datetime | None = None) -> int | None:
    """Whole days left before expiration (negative once expired); None without a date."""
    if expiration is None:
        return None
    now = now or utcnow()
    seconds = (_as_datetime(expiration) - now).total_seconds()
    return math.ceil(seconds / 86400)


def classify_expiration(
    expiration: date | datetime | None,
    now: datetime | None = None,
    near_expiry_days: int | None = None,
) -> str:
    days = days_until_expiration(expiration, now)
    if days is None:
        return LOT_GOOD
    if days < 0:
        return LOT_EXPIRED
    if days <= _near_expiry_days(near_expiry_days):
        return LOT_NEAR_EXPIRY
    return LOT_GOOD


def classify(lot, now: datetime | None = None, near_expiry_days: int | None = None) -> str:
    """Classify a lot (anything with an ``expiration_date`` attribute)."""
    return classify_expiration(lot.expiration_date, now, near_expiry_days)


def lot_to_dict(lot: Lot, now: datetime | None = None) -> dict:
    """Serialize a lot with its status re-derived for ``now``."""
    now = now or utcnow()
    data = lot.to_dict()
    data["status"] = classify(lot, now)
    data["days_until_expiration"] = days_until_expiration(lot.expiration_date, now)
    return data


def get_lot(lot_id: int) -> Lot:
    lot = db.session.get(Lot, lot_id)
    if lot is None:
        raise NotFoundError(f"Lot {lot_id} not found", details={"lot_id": lot_id})
    return lot


def list_lots(
    *,
    product_id: int | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """
    List lots ordered by expiration date (soonest first, undated last).

    status filters on the re-derived status, not the cached column.
    """
    if status is not None and status not in VALID_LOT_STATUSES:
        raise ValidationError(f"Invalid lot status: {status}. Must be one of {VALID_LOT_STATUSES}")

    now = now or utcnow()
    query = db.session.query(Lot)
    if product_id is not None:
        query = query.filter(Lot.product_id == product_id)
    query = query.order_by(Lot.expiration_date.is_(None), Lot.expiration_date.asc(), Lot.id.asc())

    rows = [lot_to_dict(lot, now) for lot in query.all()]
    if status is not None:
        rows = [r for r in rows if r["status"] == status]
    return rows


def count_lots_by_status(now: datetime | None = None) -> dict[str, int]:
    now = now or utcnow()
    counts = {s: 0 for s in VALID_LOT_STATUSES}
    for lot in db.session.query(Lot).all():
        counts[classify(lot, now)] += 1
    return counts


def reclassify_lots(now: datetime | None = None) -> dict:
    """
    Rewrite the cached status of every lot whose classification changed.

    Periodic job; safe to run any number of times.
    """
    now = now or utcnow()
    changed = []
    for lot in db.session.query(Lot).all():
        status = classify(lot, now)
        if lot.status != status:
            changed.append({"lot_id": lot.id, "lot_number": lot.lot_number, "from": lot.status, "to": status})
            lot.status = status
    db.session.commit()

    if changed:
        current_app.logger.info("Reclassified %d lot(s)", len(changed))
    return {"checked_at": now, "changed": changed}
