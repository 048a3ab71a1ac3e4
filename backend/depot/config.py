# backend/depot/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/depot.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///depot.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Lots expiring within this many days are flagged NEAR_EXPIRY
    NEAR_EXPIRY_DAYS = int(os.environ.get("NEAR_EXPIRY_DAYS", "30"))

    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "CMD")

    # Attempts for lock-contention retries (never applied to business errors)
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Warn in the log when a movement leaves a product at or below its minimum
    LOW_STOCK_ALERT_ENABLED = os.environ.get("LOW_STOCK_ALERT_ENABLED", "true").lower() in ("1", "true", "yes")

    # Browser origins allowed to call the API (comma-separated)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]
