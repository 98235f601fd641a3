"""Note notification webhook client.

Delivers a submitted note to the notification webhook and returns the
human-facing reply it generates (an AI comment), if any.

Two call paths:
- POST multipart (current): text fields plus optional audio file part.
- GET query string (legacy): text fields only.

Security: NEVER log note text, sender or email. Only log lengths and hashes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal, Sequence

import requests

from notelink.domain.notes import AudioClip
from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import hash_identifier, safe_log_context

logger = get_logger(__name__)

# Reply fields tried in this order; the first non-empty string wins
REPLY_FIELDS = ("message", "output", "comment", "response")
LEGACY_REPLY_FIELDS = ("message", "output", "comment")


class NotifyError(Exception):
    """Raised when the webhook is unreachable or answers non-2xx."""

    pass


@dataclass(frozen=True)
class NoteNotification:
    """Outbound fields of one note notification."""

    note: str
    sender: str
    email: str
    is_anonymous: bool
    type: Literal["text", "vocal"]
    timestamp: str
    audio: AudioClip | None = None
    audio_url: str | None = None

    def form_fields(self) -> dict[str, str]:
        fields = {
            "note": self.note,
            "sender": self.sender,
            "email": self.email,
            "isAnonymous": "true" if self.is_anonymous else "false",
            "type": self.type,
            "timestamp": self.timestamp,
        }
        if self.audio_url:
            fields["audioUrl"] = self.audio_url
        return fields

    def query_params(self) -> dict[str, str]:
        return {
            "note": self.note,
            "sender": self.sender,
            "email": self.email,
            "isAnonymous": "true" if self.is_anonymous else "false",
        }


def _first_text(data: dict[str, Any], fields: Sequence[str]) -> str | None:
    for name in fields:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_reply(body: str, fields: Sequence[str] = REPLY_FIELDS) -> str | None:
    """Extract the reply text from a webhook response body.

    JSON objects yield the first non-empty candidate field; a JSON string
    yields itself; a non-JSON body is taken as raw text.

    Returns:
        Reply text, or None when the body carries none.
    """
    text = body.strip()
    if not text:
        return None

    try:
        data = json.loads(text)
    except ValueError:
        return text

    if isinstance(data, dict):
        return _first_text(data, fields)
    if isinstance(data, str):
        return data.strip() or None
    return None


class NoteWebhookClient:
    """Client for the note notification webhook. One attempt, no retry."""

    def __init__(
        self,
        endpoint: str | None,
        method: Literal["post", "get"] = "post",
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._method = method
        self._session = session or requests.Session()
        self._timeout = timeout

    def send(self, notification: NoteNotification) -> str | None:
        """Deliver via the configured call path."""
        if self._method == "get":
            return self.notify_legacy(notification)
        return self.notify(notification)

    def notify(self, notification: NoteNotification) -> str | None:
        """POST the note as multipart form data.

        Raises:
            NotifyError: On transport error or non-2xx status.
        """
        files = None
        if notification.audio is not None:
            files = {
                "audioFile": (
                    notification.audio.filename,
                    notification.audio.data,
                    notification.audio.content_type,
                )
            }

        return self._call(
            "post",
            notification,
            REPLY_FIELDS,
            data=notification.form_fields(),
            files=files,
        )

    def notify_legacy(self, notification: NoteNotification) -> str | None:
        """GET with the note fields as query parameters.

        Raises:
            NotifyError: On transport error or non-2xx status.
        """
        return self._call(
            "get",
            notification,
            LEGACY_REPLY_FIELDS,
            params=notification.query_params(),
        )

    def _call(
        self,
        method: str,
        notification: NoteNotification,
        fields: Sequence[str],
        **kwargs: Any,
    ) -> str | None:
        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            method=method,
            note_len=len(notification.note),
            sender_hash=hash_identifier(notification.sender),
            type=notification.type,
            has_audio=notification.audio is not None,
            has_audio_url=bool(notification.audio_url),
        )

        if not self._endpoint:
            logger.error("note webhook not configured", extra={"extra_fields": log_ctx})
            raise NotifyError("NOTE_WEBHOOK_URL not configured")

        logger.info("sending note notification", extra={"extra_fields": log_ctx})

        try:
            response = self._session.request(
                method.upper(), self._endpoint, timeout=self._timeout, **kwargs
            )
            response.raise_for_status()
        except requests.RequestException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            logger.error(
                "note notification failed",
                extra={
                    "extra_fields": safe_log_context(
                        **log_ctx, error_type=type(e).__name__, status=status
                    )
                },
            )
            raise NotifyError(f"note webhook call failed: {type(e).__name__}") from e

        reply = parse_reply(response.text, fields)

        logger.info(
            "note notification delivered",
            extra={
                "extra_fields": safe_log_context(
                    **log_ctx, status=response.status_code, reply_len=len(reply or "")
                )
            },
        )
        return reply
