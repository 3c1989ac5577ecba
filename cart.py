"""
Session-keyed shopping carts.

Carts live in process memory and are lost on restart. Each session key gets
its own lock so concurrent requests for one session are applied one at a
time; different sessions never block each other.
"""

import logging
import threading
from typing import Dict, List

from fastapi import Header, Request
from pymongo.database import Database

from database import find_by_id
from errors import InsufficientStock, NotFound, ProductUnavailable

logger = logging.getLogger("storefront.cart")

DEFAULT_SESSION = "default"


def cart_total(items: List[dict]) -> float:
    return round(sum(item["price"] * item["quantity"] for item in items), 2)


def _is_available(product) -> bool:
    return product is not None and product.get("is_active", True)


class CartStore:
    def __init__(self, db: Database):
        self.db = db
        self._carts: Dict[str, List[dict]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    def _items(self, session_id: str) -> List[dict]:
        # lazily creates the cart; caller holds the session lock
        return self._carts.setdefault(session_id, [])

    def _snapshot(self, session_id: str) -> dict:
        items = [dict(i) for i in self._items(session_id)]
        return {"items": items, "total": cart_total(items)}

    def get(self, session_id: str) -> dict:
        """Return the cart with product details, skipping deleted products."""
        with self._lock(session_id):
            items = [dict(i) for i in self._items(session_id)]
        lines = []
        for item in items:
            product = find_by_id(self.db, "product", item["product_id"])
            if product is None:
                continue
            item["product"] = {
                "id": str(product["_id"]),
                "name": product.get("name"),
                "price": product.get("price"),
                "images": product.get("images", []),
            }
            lines.append(item)
        return {"items": lines, "total": cart_total(lines)}

    def add(self, session_id: str, product_id: str, quantity: int) -> dict:
        product = find_by_id(self.db, "product", product_id)
        if not _is_available(product):
            raise ProductUnavailable(product_id)
        if product.get("stock", 0) < quantity:
            raise InsufficientStock(product.get("name", product_id))
        with self._lock(session_id):
            items = self._items(session_id)
            for item in items:
                if item["product_id"] == product_id:
                    # merged quantity is not re-checked against stock
                    item["quantity"] += quantity
                    break
            else:
                items.append({"product_id": product_id, "quantity": quantity, "price": float(product["price"])})
            return self._snapshot(session_id)

    def update(self, session_id: str, product_id: str, quantity: int) -> dict:
        with self._lock(session_id):
            items = self._items(session_id)
            item = next((i for i in items if i["product_id"] == product_id), None)
            if item is None:
                raise NotFound("Item not found in cart")
            if quantity == 0:
                items.remove(item)
            else:
                product = find_by_id(self.db, "product", product_id)
                if not _is_available(product):
                    raise ProductUnavailable(product_id)
                if product.get("stock", 0) < quantity:
                    raise InsufficientStock(product.get("name", product_id))
                item["quantity"] = quantity
            return self._snapshot(session_id)

    def remove(self, session_id: str, product_id: str) -> dict:
        with self._lock(session_id):
            items = self._items(session_id)
            item = next((i for i in items if i["product_id"] == product_id), None)
            if item is None:
                raise NotFound("Item not found in cart")
            items.remove(item)
            return self._snapshot(session_id)

    def clear(self, session_id: str) -> dict:
        with self._lock(session_id):
            self._carts[session_id] = []
            return self._snapshot(session_id)


def get_cart_store(request: Request) -> CartStore:
    return request.app.state.carts


def get_session_id(x_session_id: str = Header(DEFAULT_SESSION)) -> str:
    return x_session_id or DEFAULT_SESSION
