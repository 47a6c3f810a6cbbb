# commerce_ledger/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///commerce_ledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # All monetary amounts are Algerian Dinar (DA), two minor-unit places
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "DZD")

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "5"))

    # Retry policy for lock / stale-row conflicts on ledger writes
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))

    # Admin-editable economy settings are cached per process for this long
    APP_CONFIG_CACHE_SECONDS = int(os.environ.get("APP_CONFIG_CACHE_SECONDS", "60"))
