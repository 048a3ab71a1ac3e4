"""Lot expiry classification and lot queries."""

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from depot.errors import NotFoundError, ValidationError
from depot.models import Lot
from depot.services import lot_service, stock_service
from depot.services.lot_service import LOT_EXPIRED, LOT_GOOD, LOT_NEAR_EXPIRY


NOW = datetime(2024, 6, 15, 10, 30)
TODAY = NOW.date()


@pytest.mark.parametrize("expiration,threshold,expected", [
    (TODAY + timedelta(days=3), 7, LOT_NEAR_EXPIRY),
    (TODAY - timedelta(days=1), 7, LOT_EXPIRED),
    (None, 7, LOT_GOOD),
    (TODAY + timedelta(days=8), 7, LOT_GOOD),
    (TODAY + timedelta(days=7), 7, LOT_NEAR_EXPIRY),
    (TODAY, 7, LOT_NEAR_EXPIRY),
])
def test_classify_expiration(expiration, threshold, expected):
    assert lot_service.classify_expiration(expiration, NOW, threshold) == expected


def test_days_until_expiration_rounds_partial_days_up():
    assert lot_service.days_until_expiration(TODAY + timedelta(days=3), NOW) == 3
    assert lot_service.days_until_expiration(TODAY, NOW) == 0
    assert lot_service.days_until_expiration(TODAY - timedelta(days=1), NOW) == -1
    assert lot_service.days_until_expiration(None, NOW) is None


def test_classify_accepts_anything_with_an_expiration_date():
    lot = SimpleNamespace(expiration_date=TODAY + timedelta(days=45))
    assert lot_service.classify(lot, NOW, 30) == LOT_GOOD
    assert lot_service.classify(lot, NOW, 60) == LOT_NEAR_EXPIRY


def test_default_threshold_comes_from_config(app):
    expiration = TODAY + timedelta(days=20)
    with app.app_context():
        assert lot_service.classify_expiration(expiration, NOW) == LOT_NEAR_EXPIRY
        app.config["NEAR_EXPIRY_DAYS"] = 10
        try:
            assert lot_service.classify_expiration(expiration, NOW) == LOT_GOOD
        finally:
            app.config["NEAR_EXPIRY_DAYS"] = 30


def _receive(product, lot_number, expiration):
    lot, _ = stock_service.receive_lot(
        product_id=product.id,
        lot_number=lot_number,
        quantity=5,
        expiration_date=expiration,
        now=NOW,
    )
    return lot


def test_list_lots_orders_by_expiration_and_rederives_status(product):
    _receive(product, "LATE", date(2024, 12, 31))
    _receive(product, "UNDATED", None)
    _receive(product, "SOON", date(2024, 6, 20))

    rows = lot_service.list_lots(product_id=product.id, now=NOW)
    assert [r["lot_number"] for r in rows] == ["SOON", "LATE", "UNDATED"]
    assert rows[0]["status"] == LOT_NEAR_EXPIRY
    assert rows[0]["days_until_expiration"] == 5

    # A month later the cached column is stale but reads are not
    later = NOW + timedelta(days=30)
    rows = lot_service.list_lots(product_id=product.id, now=later)
    assert rows[0]["status"] == LOT_EXPIRED
    assert lot_service.get_lot(rows[0]["id"]).status == LOT_NEAR_EXPIRY

    expired = lot_service.list_lots(status=LOT_EXPIRED, now=later)
    assert [r["lot_number"] for r in expired] == ["SOON"]


def test_list_lots_rejects_unknown_status(db_session):
    with pytest.raises(ValidationError):
        lot_service.list_lots(status="ROTTEN")


def test_get_lot_not_found(db_session):
    with pytest.raises(NotFoundError):
        lot_service.get_lot(12345)


def test_reclassify_rewrites_only_changed_lots(product, db_session):
    soon = _receive(product, "SOON", date(2024, 6, 20))
    _receive(product, "LATE", date(2025, 6, 20))

    result = lot_service.reclassify_lots(now=datetime(2024, 6, 21, 8, 0))
    assert result["changed"] == [{
        "lot_id": soon.id,
        "lot_number": "SOON",
        "from": LOT_NEAR_EXPIRY,
        "to": LOT_EXPIRED,
    }]
    assert db_session.get(Lot, soon.id).status == LOT_EXPIRED

    again = lot_service.reclassify_lots(now=datetime(2024, 6, 21, 8, 0))
    assert again["changed"] == []


def test_count_lots_by_status(product):
    _receive(product, "A", date(2024, 6, 1))
    _receive(product, "B", date(2024, 6, 16))
    _receive(product, "C", None)

    assert lot_service.count_lots_by_status(NOW) == {
        LOT_GOOD: 1,
        LOT_NEAR_EXPIRY: 1,
        LOT_EXPIRED: 1,
    }
