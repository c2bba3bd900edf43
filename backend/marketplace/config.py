# backend/marketplace/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marketplace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///marketplace.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Session cookie carrying the opaque session token
    SESSION_TOKEN_COOKIE = os.environ.get("SESSION_COOKIE_NAME", "session")
    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_HOURS = _env_int("SESSION_IDLE_HOURS", 2)
    SESSION_COOKIE_SECURE_FLAG = os.environ.get("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Checkout pricing (cents)
    FREE_DELIVERY_THRESHOLD_CENTS = _env_int("FREE_DELIVERY_THRESHOLD_CENTS", 10_000)
    DEFAULT_DELIVERY_FEE_CENTS = _env_int("DEFAULT_DELIVERY_FEE_CENTS", 500)

    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "€")

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]
