"""
Read-only admin reporting. Every figure is computed per request.

Revenue figures include orders in every status.
"""

from typing import List

from pymongo.database import Database

from catalog import populate_categories
from database import get_documents
from orders import NEWEST_FIRST, populate_orders

LOW_STOCK_THRESHOLD = 10
LOW_STOCK_LIMIT = 10
RECENT_ORDERS = 5
MONTHS = 12


def _revenue(db: Database) -> dict:
    rows = list(db["order"].aggregate([
        {"$group": {
            "_id": None,
            "total_orders": {"$sum": 1},
            "total_revenue": {"$sum": "$total"},
            "avg_order_value": {"$avg": "$total"},
        }},
    ]))
    if not rows:
        return {"total_orders": 0, "total_revenue": 0, "avg_order_value": 0}
    row = rows[0]
    return {
        "total_orders": row["total_orders"],
        "total_revenue": round(row["total_revenue"] or 0, 2),
        "avg_order_value": round(row["avg_order_value"] or 0, 2),
    }


def monthly_revenue(db: Database) -> List[dict]:
    rows = db["order"].aggregate([
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "revenue": {"$sum": "$total"},
            "orders": {"$sum": 1},
        }},
        {"$sort": {"_id.year": -1, "_id.month": -1}},
        {"$limit": MONTHS},
    ])
    return [
        {"year": r["_id"]["year"], "month": r["_id"]["month"], "revenue": round(r["revenue"], 2), "orders": r["orders"]}
        for r in rows
    ]


def recent_orders(db: Database) -> List[dict]:
    return populate_orders(db, get_documents(db, "order", limit=RECENT_ORDERS, sort=NEWEST_FIRST))


def dashboard(db: Database) -> dict:
    revenue = _revenue(db)
    low_stock = get_documents(db, "product", {"stock": {"$lte": LOW_STOCK_THRESHOLD}}, limit=LOW_STOCK_LIMIT)
    return {
        "overview": {
            "total_users": db["user"].count_documents({}),
            "total_products": db["product"].count_documents({}),
            "total_categories": db["category"].count_documents({}),
            "total_orders": db["order"].count_documents({}),
            "total_revenue": revenue["total_revenue"],
            "avg_order_value": revenue["avg_order_value"],
        },
        "recent_orders": recent_orders(db),
        "low_stock_products": populate_categories(db, low_stock),
        "monthly_revenue": monthly_revenue(db),
    }


def order_overview(db: Database) -> dict:
    status_counts = [
        {"status": r["_id"], "count": r["count"]}
        for r in db["order"].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])
    ]
    return {
        "overview": _revenue(db),
        "status_counts": sorted(status_counts, key=lambda s: s["status"]),
        "recent_orders": recent_orders(db),
    }
