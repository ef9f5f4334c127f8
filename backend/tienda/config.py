# backend/tienda/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tienda.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tienda.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Listing page sizes
    PRODUCTS_PER_PAGE = 15
    SALES_PER_PAGE = 20
    DEFAULT_PER_PAGE = 20
    MAX_PER_PAGE = 100

    # Product images are stored on disk; the DB keeps only the relative path
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    MAX_IMAGE_BYTES = 2 * 1024 * 1024
    MAX_CONTENT_LENGTH = 4 * 1024 * 1024

    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "24"))
