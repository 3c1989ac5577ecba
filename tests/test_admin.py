from datetime import datetime

from bson import ObjectId

import reporting


def _order(db, total, created_at, status="pending", user_id="u1"):
    db["order"].insert_one({
        "user_id": user_id,
        "items": [],
        "total": total,
        "address": "1 Market Road, Kochi",
        "status": status,
        "created_at": created_at,
        "updated_at": created_at,
    })


def test_dashboard_overview(client, db, admin_headers, make_product, make_category):
    make_category("Oils")
    for i in range(12):
        make_product(name=f"Low {i}", stock=i)
    make_product(name="Plenty", stock=50)
    _order(db, 100.0, datetime(2024, 1, 15), status="cancelled")
    _order(db, 50.0, datetime(2024, 2, 3))
    _order(db, 30.0, datetime(2024, 2, 20), status="completed")

    res = client.get("/api/admin/dashboard", headers=admin_headers)
    assert res.status_code == 200
    body = res.json()

    overview = body["overview"]
    assert overview["total_users"] == 1
    assert overview["total_products"] == 13
    assert overview["total_categories"] == 1
    assert overview["total_orders"] == 3
    # every status counts toward revenue
    assert overview["total_revenue"] == 180.0
    assert overview["avg_order_value"] == 60.0

    assert body["monthly_revenue"] == [
        {"year": 2024, "month": 2, "revenue": 80.0, "orders": 2},
        {"year": 2024, "month": 1, "revenue": 100.0, "orders": 1},
    ]

    low = body["low_stock_products"]
    assert len(low) == 10
    assert all(p["stock"] <= 10 for p in low)

    assert len(body["recent_orders"]) == 3
    assert body["recent_orders"][0]["total"] == 30.0


def test_dashboard_on_empty_store(db):
    data = reporting.dashboard(db)
    assert data["overview"]["total_revenue"] == 0
    assert data["overview"]["avg_order_value"] == 0
    assert data["monthly_revenue"] == []
    assert data["recent_orders"] == []


def test_monthly_buckets_are_capped(db):
    for month in range(1, 13):
        _order(db, 10.0, datetime(2023, month, 5))
    _order(db, 10.0, datetime(2024, 1, 5))

    buckets = reporting.monthly_revenue(db)
    assert len(buckets) == 12
    assert (buckets[0]["year"], buckets[0]["month"]) == (2024, 1)
    assert (buckets[-1]["year"], buckets[-1]["month"]) == (2023, 2)


def test_recent_orders_limited_to_five(db):
    for day in range(1, 8):
        _order(db, float(day), datetime(2024, 3, day))
    recent = reporting.recent_orders(db)
    assert [o["total"] for o in recent] == [7.0, 6.0, 5.0, 4.0, 3.0]


def test_order_stats_overview(client, db, admin_headers):
    _order(db, 20.0, datetime(2024, 5, 1), status="paid")
    _order(db, 40.0, datetime(2024, 5, 2), status="paid")
    _order(db, 60.0, datetime(2024, 5, 3), status="shipped")

    body = client.get("/api/orders/stats/overview", headers=admin_headers).json()
    assert body["overview"] == {"total_orders": 3, "total_revenue": 120.0, "avg_order_value": 40.0}
    assert body["status_counts"] == [{"status": "paid", "count": 2}, {"status": "shipped", "count": 1}]
    assert len(body["recent_orders"]) == 3


def test_user_management(client, db, admin_headers, user_headers):
    listing = client.get("/api/admin/users", headers=admin_headers).json()
    assert listing["pagination"]["count"] == 2
    assert all("password_hash" not in u for u in listing["users"])

    found = client.get("/api/admin/users", params={"search": "shopper"}, headers=admin_headers).json()
    assert [u["email"] for u in found["users"]] == ["shopper@example.com"]

    shopper_id = found["users"][0]["id"]
    res = client.put(f"/api/admin/users/{shopper_id}/role", json={"role": "admin"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["role"] == "admin"
    assert db["user"].find_one({"_id": ObjectId(shopper_id)})["role"] == "admin"

    assert client.put(f"/api/admin/users/{shopper_id}/role", json={"role": "owner"}, headers=admin_headers).status_code == 400
    assert client.put(f"/api/admin/users/{ObjectId()}/role", json={"role": "user"}, headers=admin_headers).status_code == 404


def test_create_admin(client, admin_headers, user_headers):
    body = {"name": "Second Admin", "email": "Ops@Example.com", "password": "opspass1"}
    res = client.post("/api/admin/create-admin", json=body, headers=admin_headers)
    assert res.status_code == 201
    assert res.json()["user"]["role"] == "admin"
    assert res.json()["user"]["email"] == "ops@example.com"

    assert client.post("/api/admin/create-admin", json=body, headers=admin_headers).status_code == 409
    assert client.post("/api/admin/create-admin", json=body, headers=user_headers).status_code == 403

    login = client.post("/api/auth/login", json={"email": "ops@example.com", "password": "opspass1"})
    assert login.json()["user"]["role"] == "admin"
