"""
Process configuration for the storefront backend.

Settings are read from the environment once, at process start, and handed to
``create_app``. Nothing else in the code base reads ``os.environ``.
"""

import logging
import os
import sys
from typing import List, Optional

from pydantic import BaseModel, Field

LOGGER_NAME = "storefront"


class Settings(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    database_name: str = Field("storefront", description="Database name")
    jwt_secret: str = Field("dev-secret", description="HS256 signing key for bearer tokens")
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = Field(7, ge=1)
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: str = "Administrator"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "storefront"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
            jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", 7)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
            admin_email=os.getenv("ADMIN_EMAIL") or None,
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            admin_name=os.getenv("ADMIN_NAME", "Administrator"),
        )


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure the ``storefront`` logger hierarchy. Safe to call twice."""
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(level.upper())
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s")
        )
        log.addHandler(handler)
    return log
