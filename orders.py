"""
Checkout and order records.

place_order validates every requested line against the catalog before
anything is written. Once the order is stored, stock is decremented line by
line with $inc. The two steps are not atomic: two concurrent checkouts can
both pass validation against the same stock and oversell. Oversells are
logged, not prevented.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, find_by_id, get_documents, paginate, to_str_id
from errors import Forbidden, InsufficientStock, NotFound, ProductUnavailable
from schemas import CheckoutLine, Order, OrderItem

logger = logging.getLogger("storefront.orders")

NEWEST_FIRST = [("created_at", -1)]


def _object_ids(ids) -> List[ObjectId]:
    return [ObjectId(i) for i in ids if ObjectId.is_valid(i)]


def populate_orders(db: Database, docs: List[dict]) -> List[dict]:
    """Attach {id, name, email} users and {id, name, images} products."""
    user_ids = {d.get("user_id") for d in docs if d.get("user_id")}
    product_ids = {it["product_id"] for d in docs for it in d.get("items", [])}
    users = {
        str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
        for u in db["user"].find({"_id": {"$in": _object_ids(user_ids)}})
    }
    products = {
        str(p["_id"]): {"id": str(p["_id"]), "name": p.get("name"), "images": p.get("images", [])}
        for p in db["product"].find({"_id": {"$in": _object_ids(product_ids)}})
    }
    out = []
    for doc in docs:
        order = to_str_id(doc)
        order["user"] = users.get(order.get("user_id"))
        order["items"] = [dict(it, product=products.get(it["product_id"])) for it in order.get("items", [])]
        out.append(order)
    return out


def place_order(db: Database, user: dict, lines: List[CheckoutLine], address: str) -> dict:
    total = 0.0
    validated: List[OrderItem] = []

    for line in lines:
        product = find_by_id(db, "product", line.product_id)
        if product is None or not product.get("is_active", True):
            logger.warning("Checkout by %s rejected: product %s unavailable", user["id"], line.product_id)
            raise ProductUnavailable(line.product_id)
        if product.get("stock", 0) < line.quantity:
            logger.warning(
                "Checkout by %s rejected: %s has %s in stock, %s requested",
                user["id"], line.product_id, product.get("stock", 0), line.quantity,
            )
            raise InsufficientStock(product.get("name", line.product_id))
        price = float(product["price"])
        validated.append(OrderItem(product_id=str(product["_id"]), quantity=line.quantity, price_at_purchase=price))
        total += price * line.quantity

    order = Order(user_id=user["id"], items=validated, total=round(total, 2), address=address, status="pending")
    order_id = create_document(db, "order", order)
    logger.info("Order %s placed by %s: %d lines, total %.2f", order_id, user["id"], len(validated), order.total)

    for item in validated:
        updated = db["product"].find_one_and_update(
            {"_id": ObjectId(item.product_id)},
            {"$inc": {"stock": -item.quantity}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None and updated.get("stock", 0) < 0:
            logger.warning("Product %s oversold, stock now %s", item.product_id, updated["stock"])

    return populate_orders(db, [find_by_id(db, "order", order_id)])[0]


def my_orders(db: Database, user: dict) -> List[dict]:
    docs = get_documents(db, "order", {"user_id": user["id"]}, sort=NEWEST_FIRST)
    return populate_orders(db, docs)


def get_order(db: Database, order_id: str, user: dict) -> dict:
    doc = find_by_id(db, "order", order_id)
    if doc is None:
        raise NotFound("Order not found")
    if doc.get("user_id") != user["id"] and user.get("role") != "admin":
        raise Forbidden("Access denied")
    return populate_orders(db, [doc])[0]


def list_orders(db: Database, status: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    query: dict = {}
    if status:
        query["status"] = status
    if search:
        # match on the owning user's name or email
        matching = db["user"].find(
            {"$or": [
                {"name": {"$regex": re.escape(search), "$options": "i"}},
                {"email": {"$regex": re.escape(search), "$options": "i"}},
            ]},
            {"_id": 1},
        )
        query["user_id"] = {"$in": [str(u["_id"]) for u in matching]}
    total = db["order"].count_documents(query)
    docs = get_documents(db, "order", query, limit=limit, sort=NEWEST_FIRST, skip=(page - 1) * limit)
    return {"orders": populate_orders(db, docs), "pagination": paginate(page, limit, total)}


def update_status(db: Database, order_id: str, status: str) -> dict:
    # any status may follow any other
    doc = db["order"].find_one_and_update(
        {"_id": ObjectId(order_id)},
        {"$set": {"status": status, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Order not found")
    logger.info("Order %s status set to %s", order_id, status)
    return populate_orders(db, [doc])[0]
