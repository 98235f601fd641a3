"""Service configuration loaded from environment variables.

Required per feature (checked where the feature is used):
- NOTE_WEBHOOK_URL: note notification endpoint
- SUPABASE_URL, SUPABASE_SERVICE_KEY: object storage for audio clips
- DATABASE_URL: notes table (read by infra.db)
- CLIENT_HASH_SECRET: client identifier hashing (read by infra.hashing)
- ADMIN_JWT_SECRET: admin token verification (read by api.auth)

Optional:
- CHAT_WEBHOOK_URL: chat assistant endpoint (unset: simulated replies)
- CHAT_SIMULATED_DELAY: seconds before a simulated reply (default: 1.5)
- NOTE_WEBHOOK_METHOD: "post" (multipart) or "get" (legacy) (default: post)
- WEBHOOK_HTTP_TIMEOUT: seconds; empty uses the transport default
- AUDIO_BUCKET: storage bucket for audio clips (default: vocal-notes)
- RATE_LIMIT_STORAGE_PATH: JSON file for rate-limit windows (unset: in-memory)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

DEFAULT_AUDIO_BUCKET = "vocal-notes"
DEFAULT_SIMULATED_DELAY = 1.5


@dataclass(frozen=True)
class Settings:
    """Resolved service settings."""

    chat_webhook_url: str | None = None
    chat_simulated_delay: float = DEFAULT_SIMULATED_DELAY
    note_webhook_url: str | None = None
    note_webhook_method: Literal["post", "get"] = "post"
    webhook_timeout: float | None = None
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    audio_bucket: str = DEFAULT_AUDIO_BUCKET
    rate_limit_storage_path: str | None = None


def _optional(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _optional_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def get_settings() -> Settings:
    """Load settings from the environment.

    Raises:
        RuntimeError: If a value is present but malformed.
    """
    method = os.environ.get("NOTE_WEBHOOK_METHOD", "post").strip().lower() or "post"
    if method not in ("post", "get"):
        raise RuntimeError(f"NOTE_WEBHOOK_METHOD must be 'post' or 'get', got {method!r}")

    return Settings(
        chat_webhook_url=_optional("CHAT_WEBHOOK_URL"),
        chat_simulated_delay=_optional_float("CHAT_SIMULATED_DELAY", DEFAULT_SIMULATED_DELAY),
        note_webhook_url=_optional("NOTE_WEBHOOK_URL"),
        note_webhook_method=method,  # type: ignore[arg-type]
        webhook_timeout=_optional_float("WEBHOOK_HTTP_TIMEOUT", None),
        supabase_url=_optional("SUPABASE_URL"),
        supabase_service_key=_optional("SUPABASE_SERVICE_KEY"),
        audio_bucket=_optional("AUDIO_BUCKET") or DEFAULT_AUDIO_BUCKET,
        rate_limit_storage_path=_optional("RATE_LIMIT_STORAGE_PATH"),
    )
