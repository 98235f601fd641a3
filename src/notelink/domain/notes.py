"""Note models: what a visitor composes and what gets stored."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Literal

MIN_NOTE_LENGTH = 3

ANONYMOUS_LABEL = "Anonymous"
GUEST_CONTACT = "Guest"

_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}


@dataclass(frozen=True)
class AudioClip:
    """Recorded audio attached to a note."""

    data: bytes
    content_type: str = "audio/webm"
    filename: str = "note.webm"

    @property
    def extension(self) -> str:
        base_type = self.content_type.split(";")[0].strip().lower()
        return _EXTENSIONS.get(base_type, "bin")


@dataclass(frozen=True)
class OutboundMessage:
    """A note as composed at submit time. Built once per attempt, never mutated.

    user_id/user_name/user_email come from an authenticated identity;
    sender_name is the free-form name typed by a guest.
    """

    text: str = ""
    audio: AudioClip | None = None
    sender_name: str = ""
    user_id: str | None = None
    user_name: str | None = None
    user_email: str | None = None
    is_anonymous: bool = False

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def has_content(self) -> bool:
        return len(self.text.strip()) >= MIN_NOTE_LENGTH or self.audio is not None

    @property
    def has_identity(self) -> bool:
        return self.is_authenticated or self.is_anonymous or bool(self.sender_name.strip())

    @property
    def is_valid(self) -> bool:
        return self.has_content and self.has_identity

    @property
    def message_type(self) -> Literal["text", "vocal"]:
        return "vocal" if self.audio is not None else "text"


def sender_label(message: OutboundMessage, sanitize: Callable[[str], str]) -> str:
    """Resolve the display label for a note's sender.

    Anonymous notes always read "Anonymous". An authenticated name is
    trusted verbatim; only a typed guest name is sanitized.
    """
    if message.is_anonymous:
        return ANONYMOUS_LABEL
    if message.is_authenticated:
        return message.user_name or message.user_email or ANONYMOUS_LABEL
    return sanitize(message.sender_name)


def sender_contact(message: OutboundMessage) -> str:
    """Resolve the contact recorded for a note's sender."""
    if message.is_anonymous:
        return ANONYMOUS_LABEL
    return message.user_email or GUEST_CONTACT


@dataclass(frozen=True)
class NoteDraft:
    """Insert payload for the notes table."""

    content: str
    sender_name: str
    user_email: str
    user_id: str | None = None
    ai_comment: str | None = None
    audio_url: str | None = None


@dataclass(frozen=True)
class SubmissionRecord:
    """A stored note, as read back from the notes table."""

    id: str
    content: str
    sender_name: str
    user_email: str
    created_at: datetime
    user_id: str | None = None
    ai_comment: str | None = None
    audio_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "sender_name": self.sender_name,
            "user_email": self.user_email,
            "user_id": self.user_id,
            "ai_comment": self.ai_comment,
            "audio_url": self.audio_url,
            "created_at": self.created_at.isoformat(),
        }
