from bson import ObjectId
import pytest

ADDRESS = "12 Lotus Lane, Pune 411001"


def _stock(db, product_id):
    return db["product"].find_one({"_id": ObjectId(product_id)})["stock"]


def _checkout(client, headers, items, address=ADDRESS):
    return client.post("/api/orders/checkout", json={"items": items, "address": address}, headers=headers)


def test_checkout_then_insufficient_stock(client, db, user_headers, make_product):
    product_id = make_product(price=10.0, stock=5)

    res = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 3}])
    assert res.status_code == 201
    order = res.json()
    assert order["total"] == 30.0
    assert order["status"] == "pending"
    assert _stock(db, product_id) == 2

    res = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 3}])
    assert res.status_code == 400
    assert "Insufficient stock" in res.json()["message"]
    assert _stock(db, product_id) == 2
    assert db["order"].count_documents({}) == 1


def test_total_is_sum_of_line_extensions(client, db, user_headers, make_product):
    a = make_product(name="Triphala", price=4.25, stock=10)
    b = make_product(name="Neem Oil", price=12.5, stock=10)

    res = _checkout(client, user_headers, [
        {"product_id": a, "quantity": 4},
        {"product_id": b, "quantity": 2},
    ])
    assert res.status_code == 201
    order = res.json()
    assert order["total"] == pytest.approx(4.25 * 4 + 12.5 * 2)
    assert order["total"] == pytest.approx(sum(i["price_at_purchase"] * i["quantity"] for i in order["items"]))
    assert [i["product_id"] for i in order["items"]] == [a, b]
    assert order["items"][0]["product"]["name"] == "Triphala"
    assert _stock(db, a) == 6
    assert _stock(db, b) == 8


def test_missing_product_leaves_everything_untouched(client, db, user_headers, make_product):
    good = make_product(stock=5)
    missing = str(ObjectId())

    res = _checkout(client, user_headers, [
        {"product_id": good, "quantity": 1},
        {"product_id": missing, "quantity": 1},
    ])
    assert res.status_code == 400
    assert missing in res.json()["message"]
    assert db["order"].count_documents({}) == 0
    assert _stock(db, good) == 5


def test_inactive_product_is_unavailable(client, db, user_headers, make_product):
    hidden = make_product(is_active=False, stock=5)

    res = _checkout(client, user_headers, [{"product_id": hidden, "quantity": 1}])
    assert res.status_code == 400
    assert "unavailable" in res.json()["message"]
    assert _stock(db, hidden) == 5


def test_excess_quantity_on_later_line_mutates_nothing(client, db, user_headers, make_product):
    first = make_product(stock=5)
    second = make_product(name="Brahmi", stock=1)

    res = _checkout(client, user_headers, [
        {"product_id": first, "quantity": 2},
        {"product_id": second, "quantity": 2},
    ])
    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient stock for Brahmi"
    assert _stock(db, first) == 5
    assert _stock(db, second) == 1
    assert db["order"].count_documents({}) == 0


def test_price_is_frozen_at_purchase(client, db, user_headers, make_product):
    product_id = make_product(price=10.0, stock=5)
    res = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}])
    order_id = res.json()["id"]

    db["product"].update_one({"_id": ObjectId(product_id)}, {"$set": {"price": 99.0}})

    order = client.get(f"/api/orders/{order_id}", headers=user_headers).json()
    assert order["items"][0]["price_at_purchase"] == 10.0
    assert order["total"] == 10.0


def test_checkout_requires_authentication(client, make_product):
    product_id = make_product()
    res = _checkout(client, {}, [{"product_id": product_id, "quantity": 1}])
    assert res.status_code == 401


def test_checkout_validation_errors(client, user_headers, make_product):
    product_id = make_product()

    res = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}], address="short")
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Validation failed"
    assert any(e["field"] == "address" for e in body["errors"])

    res = _checkout(client, user_headers, [])
    assert res.status_code == 400
    assert any(e["field"] == "items" for e in res.json()["errors"])

    res = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 0}])
    assert res.status_code == 400


def test_malformed_product_id_is_internal_error(client, user_headers):
    res = _checkout(client, user_headers, [{"product_id": "not-an-id", "quantity": 1}])
    assert res.status_code == 500
    assert "message" in res.json()


def test_my_orders_and_ownership(client, user_headers, other_user_headers, admin_headers, make_product):
    product_id = make_product(stock=10)
    order_id = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}]).json()["id"]
    _checkout(client, user_headers, [{"product_id": product_id, "quantity": 2}])

    mine = client.get("/api/orders/my-orders", headers=user_headers).json()
    assert len(mine) == 2
    assert all(o["user"]["email"] == "shopper@example.com" for o in mine)
    assert client.get("/api/orders/my-orders", headers=other_user_headers).json() == []

    assert client.get(f"/api/orders/{order_id}", headers=other_user_headers).status_code == 403
    assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/orders/{ObjectId()}", headers=user_headers).status_code == 404


def test_admin_sets_any_status(client, user_headers, admin_headers, make_product):
    product_id = make_product()
    order_id = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}]).json()["id"]

    res = client.put(f"/api/orders/{order_id}/status", json={"status": "completed"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "completed"

    res = client.put(f"/api/orders/{order_id}/status", json={"status": "pending"}, headers=admin_headers)
    assert res.json()["status"] == "pending"

    order = client.get(f"/api/orders/{order_id}", headers=user_headers).json()
    assert order["status"] == "pending"


def test_status_update_gates(client, user_headers, admin_headers, make_product):
    product_id = make_product()
    order_id = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}]).json()["id"]
    url = f"/api/orders/{order_id}/status"

    assert client.put(url, json={"status": "paid"}).status_code == 401
    assert client.put(url, json={"status": "paid"}, headers=user_headers).status_code == 403
    assert client.put(url, json={"status": "lost"}, headers=admin_headers).status_code == 400
    assert client.put(f"/api/orders/{ObjectId()}/status", json={"status": "paid"}, headers=admin_headers).status_code == 404


def test_admin_order_listing(client, user_headers, other_user_headers, admin_headers, make_product):
    product_id = make_product(stock=10)
    first = _checkout(client, user_headers, [{"product_id": product_id, "quantity": 1}]).json()["id"]
    _checkout(client, other_user_headers, [{"product_id": product_id, "quantity": 1}])
    client.put(f"/api/orders/{first}/status", json={"status": "shipped"}, headers=admin_headers)

    res = client.get("/api/orders", headers=admin_headers).json()
    assert res["pagination"]["count"] == 2

    shipped = client.get("/api/orders", params={"status": "shipped"}, headers=admin_headers).json()
    assert [o["id"] for o in shipped["orders"]] == [first]

    found = client.get("/api/admin/orders", params={"search": "OTHER@"}, headers=admin_headers).json()
    assert found["pagination"]["count"] == 1
    assert found["orders"][0]["user"]["email"] == "other@example.com"

    assert client.get("/api/orders", headers=user_headers).status_code == 403
