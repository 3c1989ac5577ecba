import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_token, create_user
from config import Settings
from database import create_document
from main import create_app


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", bcrypt_rounds=4, log_level="WARNING")


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def app(settings, db):
    return create_app(settings, db)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _headers(db, settings, email, role):
    user = create_user(db, settings, role.title(), email, "secret123", role=role)
    return {"Authorization": f"Bearer {create_token(user, settings)}"}


@pytest.fixture
def admin_headers(db, settings):
    return _headers(db, settings, "admin@example.com", "admin")


@pytest.fixture
def user_headers(db, settings):
    return _headers(db, settings, "shopper@example.com", "user")


@pytest.fixture
def other_user_headers(db, settings):
    return _headers(db, settings, "other@example.com", "user")


@pytest.fixture
def make_product(db):
    def _make(**overrides):
        data = {
            "name": "Ashwagandha Capsules",
            "description": "Herbal supplement",
            "price": 10.0,
            "stock": 5,
            "is_active": True,
            "images": ["a.jpg"],
            "category": None,
        }
        data.update(overrides)
        return create_document(db, "product", data)

    return _make


@pytest.fixture
def make_category(db):
    def _make(name="Supplements", description=""):
        return create_document(db, "category", {"name": name, "description": description})

    return _make
