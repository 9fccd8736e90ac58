# backend/tillcore/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tillcore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Reserved walk-in identity; never allowed to carry an on-account balance
    DEFAULT_CUSTOMER_DOCUMENT = os.environ.get("DEFAULT_CUSTOMER_DOCUMENT", "00000000")
    DEFAULT_CUSTOMER_NAME = os.environ.get("DEFAULT_CUSTOMER_NAME", "Walk-in Customer")

    AMOUNT_TOLERANCE = os.environ.get("AMOUNT_TOLERANCE", "0.01")

    SALES_PAGE_SIZE = int(os.environ.get("SALES_PAGE_SIZE", "25"))
    SALES_MAX_PAGE_SIZE = 100

    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))
    STOCK_CONFLICT_RETRIES = int(os.environ.get("STOCK_CONFLICT_RETRIES", "3"))

    # Development mode: internal error responses include exception text
    EXPOSE_ERROR_DETAILS = _env_flag("FLASK_DEBUG")
