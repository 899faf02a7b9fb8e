"""
Centralized configuration helpers for upload ingestion and platform scoping.
"""
from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL: str = (os.getenv("LOG_LEVEL") or "INFO").upper()

MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES") or 50 * 1024 * 1024)

ALLOWED_UPLOAD_EXTENSIONS: tuple[str, ...] = tuple(
    ext.strip().lower()
    for ext in (os.getenv("ALLOWED_UPLOAD_EXTENSIONS") or ".csv,.xlsx,.xlsm").split(",")
    if ext.strip()
)

# Per-variant stock updates run concurrently; keep the fan-out bounded.
STOCK_UPDATE_CONCURRENCY: int = max(1, int(os.getenv("STOCK_UPDATE_CONCURRENCY") or 10))

# Canonical marketplace tags (marketplace A/B/C).
SUPPORTED_PLATFORMS: tuple[str, ...] = ("shopee", "lazada", "tiktok")

PLATFORM_ALIASES: dict[str, str] = {
    "shopee": "shopee",
    "a": "shopee",
    "lazada": "lazada",
    "b": "lazada",
    "tiktok": "tiktok",
    "c": "tiktok",
    "tiktok shop": "tiktok",
    "tiktokshop": "tiktok",
    "tik tok": "tiktok",
}


def resolve_platform(value: Optional[Any]) -> Optional[str]:
    """Map a caller-supplied platform tag to its canonical name, or None."""
    if value is None:
        return None
    tag = str(value).strip().lower()
    if not tag:
        return None
    return PLATFORM_ALIASES.get(tag)


def detect_platform_from_filename(filename: Optional[str]) -> Optional[str]:
    """Guess the marketplace from an export's file name (e.g. 'Order.all.shopee.xlsx')."""
    name = (filename or "").lower()
    for platform in SUPPORTED_PLATFORMS:
        if platform in name:
            return platform
    return None


def sanitize_user_id(value: Optional[Any]) -> Optional[str]:
    """Normalize raw user ids (strip whitespace); blanks become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_allowed_upload(filename: Optional[str]) -> bool:
    return bool(filename) and filename.lower().endswith(ALLOWED_UPLOAD_EXTENSIONS)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


CORS_ORIGINS: list[str] = [
    o.strip() for o in (os.getenv("CORS_ORIGINS") or "*").split(",") if o.strip()
]

# Create tables at startup (local/dev); production schemas are provisioned separately.
INIT_DB_ON_STARTUP: bool = _env_flag("INIT_DB_ON_STARTUP", True)
