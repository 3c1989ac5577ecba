"""
Database Schemas for the Storefront

Each Pydantic model correlates to a MongoDB collection. The collection name is the lowercase of the class name.
- User -> "user"
- Category -> "category"
- Product -> "product"
- Order -> "order"

Carts are not persisted; they live in the process (see cart.py).
The request models further down validate API payloads.
"""

import json
import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Role = Literal["user", "admin"]
OrderStatus = Literal["pending", "paid", "shipped", "completed", "cancelled"]
ProductSort = Literal["newest", "price-low", "price-high", "name", "rating"]

OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercased")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Role = Field("user", description="user | admin")


class Category(BaseModel):
    name: str = Field(..., min_length=2, description="Unique category name")
    description: str = Field("", description="Category description")


class Product(BaseModel):
    name: str = Field(..., min_length=2, description="Product name")
    description: str = Field("", description="Short description")
    full_description: str = Field("", description="Long description")
    images: List[str] = Field(default_factory=list, description="Image URLs, in display order")
    price: float = Field(..., ge=0.01, description="Current unit price")
    original_price: Optional[float] = Field(None, ge=0, description="Price before discount")
    discount: Optional[int] = Field(None, ge=0, le=100, description="Discount percentage")
    rating: float = Field(0, ge=0, le=5, description="Average rating")
    reviews: int = Field(0, ge=0, description="Review count")
    in_stock: bool = Field(True, description="Shown as available")
    ingredients: List[str] = Field(default_factory=list)
    benefits: List[str] = Field(default_factory=list)
    how_to_use: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict, description="Free-form spec sheet")
    stock: int = Field(0, ge=0, description="Units in stock")
    category: Optional[str] = Field(None, description="Category _id string (weak reference)")
    is_active: bool = Field(True, description="Visible in the public catalog")


class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., description="Unit price frozen at checkout")


class Order(BaseModel):
    user_id: str = Field(..., description="User placing the order")
    items: List[OrderItem]
    total: float = Field(..., ge=0)
    address: str = Field(..., min_length=10, description="Delivery address")
    status: OrderStatus = "pending"


# Request models

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class CartAddRequest(BaseModel):
    product_id: str = Field(..., pattern=OBJECT_ID_PATTERN)
    quantity: int = Field(1, ge=1)


class CartUpdateRequest(BaseModel):
    product_id: str = Field(..., pattern=OBJECT_ID_PATTERN)
    quantity: int = Field(..., ge=0)


class CheckoutLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class CheckoutRequest(BaseModel):
    items: List[CheckoutLine] = Field(..., min_length=1)
    address: str = Field(..., min_length=10)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class RoleUpdate(BaseModel):
    role: Role


class StockUpdate(BaseModel):
    stock: int = Field(..., ge=0)


class ProductStatusUpdate(BaseModel):
    is_active: bool


class BulkStatusUpdate(BaseModel):
    ids: List[str] = Field(..., min_length=1)
    is_active: bool


class BulkCategoryUpdate(BaseModel):
    ids: List[str] = Field(..., min_length=1)
    category: Optional[str] = Field(None, description="Target category id, or null to unassign")


class CategoryPayload(BaseModel):
    name: str = Field(..., min_length=2)
    description: str = ""

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("name must be at least 2 characters")
        return v


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if len(v) < 2:
            raise ValueError("name must be at least 2 characters")
        return v


def _number_from_text(v):
    # "$1,299.00" -> 1299.0; leaves non-strings to pydantic
    if isinstance(v, str):
        cleaned = re.sub(r"[^\d.]", "", v)
        try:
            return float(cleaned)
        except ValueError:
            raise ValueError(f"{v!r} is not a valid amount")
    return v


def _as_list(v):
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    return v


def _specifications_from_text(v):
    # form posts send the spec sheet as a JSON string; unparseable text means no specs
    if isinstance(v, str):
        try:
            v = json.loads(v)
        except ValueError:
            return {}
        return v if isinstance(v, dict) else {}
    return v


class ProductPayload(Product):
    """Admin product input. Accepts loosely typed form values."""

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def parse_money(cls, v):
        return _number_from_text(v)

    @field_validator("discount", mode="before")
    @classmethod
    def parse_discount(cls, v):
        # "20% off" -> 20
        if isinstance(v, str):
            match = re.search(r"\d+", v)
            return int(match.group(0)) if match else None
        return v

    @field_validator("images", "ingredients", "benefits", "how_to_use", mode="before")
    @classmethod
    def ensure_list(cls, v):
        return _as_list(v)

    @field_validator("specifications", mode="before")
    @classmethod
    def parse_specifications(cls, v):
        return _specifications_from_text(v)


class ProductUpdate(BaseModel):
    """Partial product update. Only original_price, discount and category may be cleared with null."""

    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = None
    full_description: Optional[str] = None
    images: Optional[List[str]] = None
    price: Optional[float] = Field(None, ge=0.01)
    original_price: Optional[float] = Field(None, ge=0)
    discount: Optional[int] = Field(None, ge=0, le=100)
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews: Optional[int] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    ingredients: Optional[List[str]] = None
    benefits: Optional[List[str]] = None
    how_to_use: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def parse_money(cls, v):
        return _number_from_text(v)

    @field_validator("specifications", mode="before")
    @classmethod
    def parse_specifications(cls, v):
        return _specifications_from_text(v)

    @field_validator(
        "name", "description", "full_description", "images", "price", "rating", "reviews",
        "in_stock", "ingredients", "benefits", "how_to_use", "specifications", "stock", "is_active",
    )
    @classmethod
    def reject_null(cls, v):
        # explicit nulls reach here; omitted fields keep their default and are not validated
        if v is None:
            raise ValueError("may not be null")
        return v
