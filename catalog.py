"""
Product and category catalog.

Products point at their category through the category's ``_id`` string. The
reference is weak: deleting a category is refused while products use it, but
nothing else keeps the two in sync.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, find_by_id, get_documents, paginate, to_str_id
from errors import Conflict, NotFound
from schemas import Category, CategoryPayload, CategoryUpdate, ProductPayload, ProductUpdate

logger = logging.getLogger("storefront.catalog")

SORTS = {
    "newest": [("created_at", -1)],
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "name": [("name", 1)],
    "rating": [("rating", -1)],
}
FEATURED_LIMIT = 8


def _now():
    return datetime.now(timezone.utc)


def _search_filter(search: str, fields) -> dict:
    pattern = re.escape(search)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def populate_categories(db: Database, docs: List[dict]) -> List[dict]:
    ids = {d["category"] for d in docs if d.get("category") and ObjectId.is_valid(d["category"])}
    names = {
        str(c["_id"]): {"id": str(c["_id"]), "name": c.get("name")}
        for c in db["category"].find({"_id": {"$in": [ObjectId(i) for i in ids]}})
    }
    out = []
    for doc in docs:
        product = to_str_id(doc)
        product["category"] = names.get(product.get("category"))
        out.append(product)
    return out


def _product_page(db: Database, query: dict, sort, page: int, limit: int) -> dict:
    total = db["product"].count_documents(query)
    docs = get_documents(db, "product", query, limit=limit, sort=sort, skip=(page - 1) * limit)
    return {"products": populate_categories(db, docs), "pagination": paginate(page, limit, total)}


# Public catalog

def list_products(
    db: Database,
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 12,
) -> dict:
    query: dict = {"is_active": True}
    if category and category != "all":
        query["category"] = category
    if search:
        query.update(_search_filter(search, ["name", "description"]))
    if min_price is not None or max_price is not None:
        price: dict = {}
        if min_price is not None:
            price["$gte"] = float(min_price)
        if max_price is not None:
            price["$lte"] = float(max_price)
        query["price"] = price
    return _product_page(db, query, SORTS.get(sort, SORTS["newest"]), page, limit)


def featured_products(db: Database) -> List[dict]:
    docs = get_documents(db, "product", {"is_active": True}, limit=FEATURED_LIMIT, sort=SORTS["newest"])
    return populate_categories(db, docs)


def get_product(db: Database, product_id: str, include_inactive: bool = False) -> dict:
    doc = find_by_id(db, "product", product_id)
    if doc is None or (not include_inactive and not doc.get("is_active", True)):
        raise NotFound("Product not found")
    return populate_categories(db, [doc])[0]


# Product administration

def admin_list_products(
    db: Database,
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query: dict = {}
    if search:
        query.update(_search_filter(search, ["name", "description"]))
    if category:
        query["category"] = category
    if status == "active":
        query["is_active"] = True
    elif status == "inactive":
        query["is_active"] = False
    return _product_page(db, query, SORTS["newest"], page, limit)


def resolve_category(db: Database, value: Optional[str]) -> Optional[str]:
    """Map a category name to its id. Ids pass through; an unknown name is NotFound."""
    if not value or ObjectId.is_valid(value):
        return value
    doc = db["category"].find_one({"name": value})
    if doc is None:
        raise NotFound("Category not found")
    return str(doc["_id"])


def create_product(db: Database, payload: ProductPayload) -> dict:
    data = payload.model_dump()
    data["category"] = resolve_category(db, data.get("category"))
    product_id = create_document(db, "product", data)
    logger.info("Product %s created: %s", product_id, payload.name)
    return get_product(db, product_id, include_inactive=True)


def _update_product(db: Database, product_id: str, changes: dict) -> dict:
    changes["updated_at"] = _now()
    doc = db["product"].find_one_and_update(
        {"_id": ObjectId(product_id)},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Product not found")
    return populate_categories(db, [doc])[0]


def update_product(db: Database, product_id: str, payload: ProductUpdate) -> dict:
    changes = payload.model_dump(exclude_unset=True)
    if "category" in changes:
        changes["category"] = resolve_category(db, changes["category"])
    return _update_product(db, product_id, changes)


def set_stock(db: Database, product_id: str, stock: int) -> dict:
    return _update_product(db, product_id, {"stock": stock})


def set_active(db: Database, product_id: str, is_active: bool) -> dict:
    return _update_product(db, product_id, {"is_active": is_active})


def delete_product(db: Database, product_id: str) -> None:
    res = db["product"].delete_one({"_id": ObjectId(product_id)})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    logger.info("Product %s deleted", product_id)


def bulk_set_active(db: Database, ids: List[str], is_active: bool) -> dict:
    res = db["product"].update_many(
        {"_id": {"$in": [ObjectId(i) for i in ids]}},
        {"$set": {"is_active": is_active, "updated_at": _now()}},
    )
    return {"matched": res.matched_count, "modified": res.modified_count}


def bulk_set_category(db: Database, ids: List[str], category: Optional[str]) -> dict:
    if category is not None and find_by_id(db, "category", category) is None:
        raise NotFound("Category not found")
    res = db["product"].update_many(
        {"_id": {"$in": [ObjectId(i) for i in ids]}},
        {"$set": {"category": category, "updated_at": _now()}},
    )
    return {"matched": res.matched_count, "modified": res.modified_count}


# Categories

def list_categories(db: Database) -> List[dict]:
    return [to_str_id(c) for c in get_documents(db, "category", sort=[("name", 1)])]


def get_category(db: Database, category_id: str) -> dict:
    doc = find_by_id(db, "category", category_id)
    if doc is None:
        raise NotFound("Category not found")
    return to_str_id(doc)


def category_products(db: Database, category_id: str, page: int = 1, limit: int = 12) -> dict:
    query = {"category": category_id, "is_active": True}
    return _product_page(db, query, SORTS["newest"], page, limit)


def create_category(db: Database, payload: CategoryPayload) -> dict:
    if db["category"].find_one({"name": payload.name}):
        raise Conflict("Category already exists")
    try:
        category_id = create_document(db, "category", Category(**payload.model_dump()))
    except DuplicateKeyError:
        raise Conflict("Category already exists")
    logger.info("Category %s created: %s", category_id, payload.name)
    return get_category(db, category_id)


def update_category(db: Database, category_id: str, payload: CategoryUpdate) -> dict:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        clash = db["category"].find_one({"name": changes["name"], "_id": {"$ne": ObjectId(category_id)}})
        if clash:
            raise Conflict("Category already exists")
    changes["updated_at"] = _now()
    doc = db["category"].find_one_and_update(
        {"_id": ObjectId(category_id)},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Category not found")
    return to_str_id(doc)


def delete_category(db: Database, category_id: str) -> None:
    linked = db["product"].count_documents({"category": category_id})
    if linked > 0:
        raise Conflict(
            f"Cannot delete category. It has {linked} products. Please move or delete products first."
        )
    res = db["category"].delete_one({"_id": ObjectId(category_id)})
    if res.deleted_count == 0:
        raise NotFound("Category not found")
    logger.info("Category %s deleted", category_id)
