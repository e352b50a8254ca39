from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/samoku.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///samoku.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Checkout pricing (cents / basis points)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "800"))
    FREE_SHIPPING_THRESHOLD_CENTS = int(os.environ.get("FREE_SHIPPING_THRESHOLD_CENTS", "5000"))
    FLAT_SHIPPING_CENTS = int(os.environ.get("FLAT_SHIPPING_CENTS", "999"))
    DEFAULT_COMMISSION_RATE_BPS = int(os.environ.get("DEFAULT_COMMISSION_RATE_BPS", "500"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Dropshipping webhook ingress. Unsigned webhooks are refused unless
    # explicitly allowed (local development only).
    DROPSHIP_WEBHOOK_SECRET = os.environ.get("DROPSHIP_WEBHOOK_SECRET")
    DROPSHIP_WEBHOOK_ALLOW_UNSIGNED = _env_bool("DROPSHIP_WEBHOOK_ALLOW_UNSIGNED")
