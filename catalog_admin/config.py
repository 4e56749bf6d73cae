from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env if present
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Config:
    SECRET_KEY: str = os.getenv("SECRET_KEY", os.urandom(32).hex())

    SITE_NAME = os.getenv("SITE_NAME", "Catalog Admin")

    # Database
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL", "sqlite:///catalog_admin.db")
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False

    # Key for pg_advisory_xact_lock, serializes structural category writes
    CATEGORY_LOCK_KEY: int = int(os.getenv("CATEGORY_LOCK_KEY", "72010"))

    # Caching (simple for dev)
    CACHE_TYPE = os.getenv("CACHE_TYPE", "SimpleCache")
    CATEGORY_TREE_CACHE_SECONDS = int(os.getenv("CATEGORY_TREE_CACHE_SECONDS", "300"))

    # Rate limiting
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "100 per minute")
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    CATEGORY_MUTATION_LIMIT = os.getenv("CATEGORY_MUTATION_LIMIT", "30 per minute; 500 per hour")

    # Pagination
    CATEGORY_PAGE_SIZE = int(os.getenv("CATEGORY_PAGE_SIZE", "20"))
    CATEGORY_MAX_PAGE_SIZE = int(os.getenv("CATEGORY_MAX_PAGE_SIZE", "100"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Flask env
    ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = ENV != "production"
