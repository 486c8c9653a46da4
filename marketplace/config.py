from __future__ import annotations

import os
from typing import Any, Dict

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def load_config() -> Dict[str, Any]:
    """Read settings from the environment (``.env`` is loaded on import)."""
    max_upload_mb = _env_int("MAX_UPLOAD_SIZE_MB", 5)
    cors_raw = os.environ.get("CORS_ORIGINS", "*")
    cors_origins = [origin.strip() for origin in cors_raw.split(",") if origin.strip()]
    return {
        "ENV_NAME": os.environ.get("APP_ENV", "development"),
        "MONGODB_URI": os.environ.get("MONGODB_URI", "mongodb://127.0.0.1:27017/marketplace"),
        "MONGODB_DB_NAME": os.environ.get("MONGODB_DB_NAME", "marketplace"),
        "UPLOAD_FOLDER": os.environ.get("UPLOAD_FOLDER", "uploads"),
        "MAX_CONTENT_LENGTH": max_upload_mb * 1024 * 1024,
        "CORS_ORIGINS": cors_origins if cors_origins and cors_origins != ["*"] else "*",
        "SWEEPER_ENABLED": _env_bool("SWEEPER_ENABLED", True),
        "SWEEP_INTERVAL_SECONDS": _env_int("SWEEP_INTERVAL_SECONDS", 3600),
        "SHOP_LIST_LIMIT": _env_int("SHOP_LIST_LIMIT", 10),
        "PASSWORD_HASH_METHOD": os.environ.get("PASSWORD_HASH_METHOD", "pbkdf2:sha256"),
        "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
    }


# Upper bound for ?limit= on the shop listing.
MAX_SHOP_LIST_LIMIT = 50
