"""Object storage for audio clips via the Supabase Storage REST API.

Required config (if not provided as args):
- SUPABASE_URL: Project base URL (e.g., https://xyz.supabase.co)
- SUPABASE_SERVICE_KEY: API key allowed to write to the bucket

Optional:
- AUDIO_BUCKET: Bucket name (default: vocal-notes)
"""

from __future__ import annotations

import uuid
from typing import Protocol

import requests

from notelink.infra.settings import DEFAULT_AUDIO_BUCKET
from notelink.infra.time import now_ms
from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import safe_log_context

logger = get_logger(__name__)


class UploadError(Exception):
    """Raised when an object cannot be stored."""

    pass


class ObjectStore(Protocol):
    """Protocol for binary uploads returning a public URL."""

    def upload(self, data: bytes, content_type: str, key: str) -> str:
        """Store data under key and return its public URL."""
        ...


def generate_object_key(extension: str) -> str:
    """Build a unique object key: <epoch-ms>-<uuid4 hex>.<extension>."""
    return f"{now_ms()}-{uuid.uuid4().hex}.{extension}"


class SupabaseObjectStorage:
    """Uploads objects to a public Supabase Storage bucket."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        bucket: str = DEFAULT_AUDIO_BUCKET,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key or ""
        self._bucket = bucket
        self._session = session or requests.Session()
        self._timeout = timeout

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{key}"

    def upload(self, data: bytes, content_type: str, key: str) -> str:
        """Upload bytes and return the object's public URL.

        Raises:
            UploadError: If config is missing or the upload fails.
        """
        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            bucket=self._bucket,
            key=key,
            size=len(data),
            content_type=content_type,
        )

        if not self._base_url or not self._api_key:
            logger.error("object storage not configured", extra={"extra_fields": log_ctx})
            raise UploadError("Missing storage config: SUPABASE_URL and SUPABASE_SERVICE_KEY required")

        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{key}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "apikey": self._api_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }

        try:
            response = self._session.post(url, data=data, headers=headers, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(
                "object upload failed",
                extra={"extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)},
            )
            raise UploadError(f"upload failed: {type(e).__name__}") from e

        logger.info("object uploaded", extra={"extra_fields": log_ctx})
        return self.public_url(key)
