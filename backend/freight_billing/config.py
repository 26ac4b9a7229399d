# backend/freight_billing/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/freight_billing.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///freight_billing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Every exchange rate is expressed against this currency.
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "TZS").upper()

    # Used when an invoice or agent has no currency recorded.
    DEFAULT_INVOICE_CURRENCY = os.environ.get("DEFAULT_INVOICE_CURRENCY", "USD").upper()
    DEFAULT_AGENT_BASE_CURRENCY = os.environ.get("DEFAULT_AGENT_BASE_CURRENCY", "USD").upper()

    # False: a missing rate converts 1:1 and logs a warning. True: raise.
    STRICT_EXCHANGE_RATES = _env_flag("STRICT_EXCHANGE_RATES")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
