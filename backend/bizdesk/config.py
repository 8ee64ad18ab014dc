# backend/bizdesk/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bizdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bizdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Products without an explicit threshold are "low" at or below this many boxes
    LOW_STOCK_THRESHOLD_DEFAULT = int(os.environ.get("LOW_STOCK_THRESHOLD_DEFAULT", "5"))
    EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", "30"))

    # Requester may not approve their own edit/delete/damage request
    REQUIRE_SECOND_PARTY_APPROVAL = _env_flag("REQUIRE_SECOND_PARTY_APPROVAL", True)

    MOVEMENT_LIST_LIMIT = int(os.environ.get("MOVEMENT_LIST_LIMIT", "200"))

    # Browser origins allowed to call the API (the dashboard dev servers)
    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    ]
