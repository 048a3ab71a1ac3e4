"""
HTTP surface tests: actor headers, role gates, and error translation.
"""


def actor_headers(role: str, actor_id: str = "u-1") -> dict:
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


def test_health(client, db_session):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_missing_or_unknown_actor_is_401(client, db_session):
    assert client.get("/api/products").status_code == 401
    assert client.get("/api/products", headers={"X-Actor-Id": "u-1"}).status_code == 401
    assert client.get("/api/products", headers=actor_headers("JANITOR")).status_code == 401


def test_role_gate_is_403(client, db_session, driver_headers):
    response = client.post("/api/products", json={"reference": "X", "name": "X"}, headers=driver_headers)
    assert response.status_code == 403
    assert response.get_json()["required_roles"] == ["WAREHOUSE"]


def test_create_product_with_initial_stock(client, db_session, warehouse_headers):
    response = client.post(
        "/api/products",
        json={"reference": "SOAP-1", "name": "Soap bar", "unit_price_cents": 250, "initial_stock": 40},
        headers=warehouse_headers,
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["current_stock"] == 40

    movements = client.get(f"/api/stock/movements?product_id={body['id']}", headers=warehouse_headers).get_json()
    assert movements["count"] == 1
    assert movements["items"][0]["actor_id"] == "wh-1"


def test_product_payload_validation(client, db_session, warehouse_headers, product):
    bad_price = client.post(
        "/api/products",
        json={"reference": "B", "name": "B", "unit_price_cents": 12.5},
        headers=warehouse_headers,
    )
    assert bad_price.status_code == 400

    unknown_field = client.post(
        "/api/products",
        json={"reference": "B", "name": "B", "colour": "red"},
        headers=warehouse_headers,
    )
    assert unknown_field.status_code == 400

    blank_name = client.post("/api/products", json={"reference": "B", "name": "  "}, headers=warehouse_headers)
    assert blank_name.status_code == 400

    digits = client.patch(f"/api/products/{product.id}", json={"minimum_stock": "6"}, headers=warehouse_headers)
    assert digits.status_code == 200
    assert digits.get_json()["minimum_stock"] == 6

    duplicate = client.post("/api/products", json={"reference": "WATER-15", "name": "Dup"}, headers=warehouse_headers)
    assert duplicate.status_code == 409

    edit_stock = client.patch(f"/api/products/{product.id}", json={"current_stock": 99}, headers=warehouse_headers)
    assert edit_stock.status_code == 400


def test_order_and_payment_flow(client, db_session, product, hotel, cashier_headers):
    created = client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 2}]},
        headers=cashier_headers,
    )
    assert created.status_code == 201
    order = created.get_json()
    assert order["order_number"] == "CMD-000001"
    assert order["total_cents"] == 2000
    assert order["items"][0]["amount_cents"] == 2000

    over = client.post(
        f"/api/orders/{order['id']}/payments",
        json={"amount_cents": 2500, "mode": "CASH"},
        headers=cashier_headers,
    )
    assert over.status_code == 409
    assert over.get_json()["details"]["remaining_cents"] == 2000

    paid = client.post(
        f"/api/orders/{order['id']}/payments",
        json={"amount_cents": 2000, "mode": "CASH"},
        headers=cashier_headers,
    )
    assert paid.status_code == 201
    assert paid.get_json()["order"]["payment_status"] == "PAID"
    assert paid.get_json()["summary"]["by_mode"]["CASH"] == 2000

    detail = client.get(f"/api/orders/{order['id']}", headers=cashier_headers).get_json()
    assert detail["paid_cents"] == 2000
    assert len(detail["payments"]) == 1
    assert detail["payments"][0]["actor_id"] == "cashier-1"


def test_order_insufficient_stock_is_409_with_details(client, db_session, product, hotel, cashier_headers):
    response = client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 11}]},
        headers=cashier_headers,
    )
    assert response.status_code == 409
    details = response.get_json()["details"]
    assert details == {
        "product_id": product.id,
        "product_name": "Mineral water 1.5L",
        "requested": 11,
        "available": 10,
    }


def test_order_validation_errors(client, db_session, product, hotel, cashier_headers):
    assert client.post("/api/orders", json={"items": []}, headers=cashier_headers).status_code == 400
    assert client.post(
        "/api/orders", json={"client_id": hotel.id, "items": []}, headers=cashier_headers
    ).status_code == 400
    assert client.post(
        "/api/orders",
        json={"client_id": 9999, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=cashier_headers,
    ).status_code == 404


def test_delivery_flow(client, db_session, product, hotel, driver, cashier_headers, warehouse_headers, driver_headers):
    order = client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=cashier_headers,
    ).get_json()

    early = client.post(f"/api/deliveries/{order['id']}/confirm", json={}, headers=driver_headers)
    assert early.status_code == 409

    assigned = client.post(
        f"/api/deliveries/{order['id']}/assign", json={"driver_id": driver.id}, headers=warehouse_headers
    )
    assert assigned.status_code == 200
    assert assigned.get_json()["delivery_status"] == "IN_PROGRESS"

    confirmed = client.post(
        f"/api/deliveries/{order['id']}/confirm", json={"notes": "ok"}, headers=driver_headers
    )
    assert confirmed.status_code == 200
    assert confirmed.get_json()["delivery_status"] == "DELIVERED"

    board = client.get("/api/deliveries?status=DELIVERED", headers=driver_headers).get_json()
    assert [o["id"] for o in board["items"]] == [order["id"]]


def test_cancel_route(client, db_session, product, hotel, cashier_headers):
    order = client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 3}]},
        headers=cashier_headers,
    ).get_json()

    missing_reason = client.post(f"/api/orders/{order['id']}/cancel", json={}, headers=cashier_headers)
    assert missing_reason.status_code == 400

    cancelled = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "dup"}, headers=cashier_headers)
    assert cancelled.status_code == 200
    assert cancelled.get_json()["delivery_status"] == "CANCELLED"

    stock = client.get(f"/api/products/{product.id}", headers=cashier_headers).get_json()
    assert stock["current_stock"] == 10


def test_stock_endpoints(client, db_session, product, warehouse_headers):
    out = client.post(
        "/api/stock/movements",
        json={"product_id": product.id, "type": "OUT", "quantity": 4, "reference": "BL-9"},
        headers=warehouse_headers,
    )
    assert out.status_code == 201
    assert out.get_json()["stock_after"] == 6

    too_much = client.post(
        "/api/stock/movements",
        json={"product_id": product.id, "type": "OUT", "quantity": 7},
        headers=warehouse_headers,
    )
    assert too_much.status_code == 409

    adjust_here = client.post(
        "/api/stock/movements",
        json={"product_id": product.id, "type": "ADJUST", "quantity": 7},
        headers=warehouse_headers,
    )
    assert adjust_here.status_code == 400

    adjusted = client.post(
        "/api/stock/adjust",
        json={"product_id": product.id, "quantity_delta": -1, "reason": "count"},
        headers=warehouse_headers,
    )
    assert adjusted.status_code == 201

    loss = client.post(
        "/api/stock/losses",
        json={"product_id": product.id, "quantity": 1, "reason": "BROKEN"},
        headers=warehouse_headers,
    )
    assert loss.status_code == 201

    balance = client.get(f"/api/stock/products/{product.id}/balance", headers=warehouse_headers).get_json()
    assert balance == {"product_id": product.id, "current_stock": 4, "ledger_balance": 4, "in_sync": True}

    audit = client.get("/api/stock/audit", headers=warehouse_headers).get_json()
    assert audit == {"ok": True, "mismatches": []}


def test_lot_endpoints(client, db_session, product, warehouse_headers):
    received = client.post(
        "/api/lots",
        json={"product_id": product.id, "lot_number": "L-7", "quantity": 12, "expiration_date": "2000-01-01"},
        headers=warehouse_headers,
    )
    assert received.status_code == 201
    body = received.get_json()
    assert body["lot"]["status"] == "EXPIRED"
    assert body["movement"]["reference"] == "L-7"

    bad_date = client.post(
        "/api/lots",
        json={"product_id": product.id, "lot_number": "L-8", "quantity": 1, "expiration_date": "soon"},
        headers=warehouse_headers,
    )
    assert bad_date.status_code == 400

    expired = client.get("/api/lots?status=EXPIRED", headers=warehouse_headers).get_json()
    assert [lot["lot_number"] for lot in expired["items"]] == ["L-7"]


def test_text_fields_must_be_strings(client, db_session, product, hotel, warehouse_headers, cashier_headers):
    lot = client.post(
        "/api/lots",
        json={"product_id": product.id, "lot_number": 123, "quantity": 4},
        headers=warehouse_headers,
    )
    assert lot.status_code == 400
    assert lot.get_json()["details"] == {"lot_number": 123}

    movement = client.post(
        "/api/stock/movements",
        json={"product_id": product.id, "type": "IN", "quantity": 4, "reference": ["BL-1"]},
        headers=warehouse_headers,
    )
    assert movement.status_code == 400

    order = client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=cashier_headers,
    ).get_json()
    payment = client.post(
        f"/api/orders/{order['id']}/payments",
        json={"amount_cents": 500, "mode": "CASH", "notes": {"by": "front desk"}},
        headers=cashier_headers,
    )
    assert payment.status_code == 400
    detail = client.get(f"/api/orders/{order['id']}", headers=cashier_headers).get_json()
    assert detail["payments"] == []


def test_partner_routes(client, db_session, cashier_headers, warehouse_headers):
    created = client.post(
        "/api/clients",
        json={"name": "Hotel Sawa", "address": "Bd de la Liberte", "city": "Douala"},
        headers=cashier_headers,
    )
    assert created.status_code == 201

    missing_address = client.post("/api/clients", json={"name": "No Address"}, headers=cashier_headers)
    assert missing_address.status_code == 400

    forbidden = client.post("/api/drivers", json={"name": "Eve"}, headers=cashier_headers)
    assert forbidden.status_code == 403

    driver = client.post("/api/drivers", json={"name": "Eve"}, headers=warehouse_headers).get_json()
    assert driver["status"] == "AVAILABLE"

    listed = client.get("/api/clients", headers=warehouse_headers).get_json()
    assert [c["name"] for c in listed["items"]] == ["Hotel Sawa"]


def test_dashboard_and_sales_report(client, db_session, product, hotel, cashier_headers, driver_headers):
    client.post(
        "/api/orders",
        json={"client_id": hotel.id, "items": [{"product_id": product.id, "quantity": 1}]},
        headers=cashier_headers,
    )

    dashboard = client.get("/api/dashboard", headers=driver_headers)
    assert dashboard.status_code == 200
    assert dashboard.get_json()["orders_by_delivery_status"]["PENDING"] == 1

    assert client.get("/api/reports/sales", headers=driver_headers).status_code == 403

    report = client.get("/api/reports/sales", headers=cashier_headers)
    assert report.status_code == 200
    assert report.get_json()["billed_cents"] == 1000

    bad = client.get("/api/reports/sales?start=yesterday", headers=cashier_headers)
    assert bad.status_code == 400
