"""
Identity: password hashing, bearer tokens and the two request gates.

Tokens are stateless. The gates read identity and role from the signed
claims and do not hit the database.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from bson import ObjectId
from fastapi import Depends, Header, Request
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import create_document, get_documents, paginate
from errors import DuplicateEmail, Forbidden, InvalidCredentials, Unauthorized
from schemas import User

logger = logging.getLogger("storefront.auth")


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def public_user(user_doc: dict) -> dict:
    return {
        "id": str(user_doc["_id"]),
        "name": user_doc["name"],
        "email": user_doc["email"],
        "role": user_doc.get("role", "user"),
    }


def create_token(user_doc: dict, settings: Settings) -> str:
    payload = {
        "sub": str(user_doc["_id"]),
        "email": user_doc["email"],
        "name": user_doc["name"],
        "role": user_doc.get("role", "user"),
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
    if not payload.get("sub"):
        raise Unauthorized("Invalid token")
    return {
        "id": payload["sub"],
        "email": payload.get("email"),
        "name": payload.get("name"),
        "role": payload.get("role", "user"),
    }


def create_user(db: Database, settings: Settings, name: str, email: str, password: str, role: str = "user") -> dict:
    email = email.lower()
    if db["user"].find_one({"email": email}):
        raise DuplicateEmail()
    user = User(name=name, email=email, password_hash=hash_password(password, settings.bcrypt_rounds), role=role)
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        raise DuplicateEmail()
    logger.info("Created %s account %s (%s)", role, email, user_id)
    return db["user"].find_one({"email": email})


def register(db: Database, settings: Settings, name: str, email: str, password: str) -> dict:
    user = create_user(db, settings, name, email, password, role="user")
    return {"token": create_token(user, settings), "user": public_user(user)}


def login(db: Database, settings: Settings, email: str, password: str) -> dict:
    user = db["user"].find_one({"email": email.lower()})
    if not user or not verify_password(password, user["password_hash"]):
        raise InvalidCredentials()
    logger.info("Login %s", user["email"])
    return {"token": create_token(user, settings), "user": public_user(user)}


def list_users(db: Database, search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    query: dict = {}
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    total = db["user"].count_documents(query)
    docs = get_documents(
        db, "user", query, limit=limit, sort=[("created_at", -1)], skip=(page - 1) * limit
    )
    users = [dict(public_user(u), created_at=u.get("created_at")) for u in docs]
    return {"users": users, "pagination": paginate(page, limit, total)}


def set_role(db: Database, user_id: str, role: str) -> Optional[dict]:
    user = db["user"].find_one_and_update(
        {"_id": ObjectId(user_id)},
        {"$set": {"role": role, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        return None
    logger.info("User %s role set to %s", user["email"], role)
    return public_user(user)


def ensure_admin(db: Database, settings: Settings) -> Optional[dict]:
    """Create the bootstrap admin from settings if it does not exist yet."""
    if not settings.admin_email or not settings.admin_password:
        return None
    existing = db["user"].find_one({"email": settings.admin_email.lower()})
    if existing:
        return existing
    return create_user(
        db, settings, settings.admin_name, settings.admin_email, settings.admin_password, role="admin"
    )


# Request gates

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> dict:
    if not authorization:
        raise Unauthorized("Authentication required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthorized("Invalid authorization header")
    return decode_token(parts[1], settings)


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise Forbidden("Admin only")
    return user
