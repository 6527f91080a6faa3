# backend/pharmapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmapos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Calendar day used for invoice numbering (IANA zone name)
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    EXPIRY_ALERT_DAYS = int(os.environ.get("EXPIRY_ALERT_DAYS", "30"))
    LOW_STOCK_DEFAULT_REORDER_LEVEL = int(os.environ.get("LOW_STOCK_DEFAULT_REORDER_LEVEL", "10"))

    # Whole-transaction retries on lock conflicts
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
