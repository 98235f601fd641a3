"""Shared test helpers: in-memory fakes for the external collaborators.

These are NOT fixtures - they are regular classes and functions that test
modules import directly.
"""

from __future__ import annotations

import json
import time
import uuid

import jwt
import requests

from notelink.domain.notes import NoteDraft, SubmissionRecord
from notelink.infra.client_storage import StorageUnavailableError
from notelink.infra.object_storage import UploadError
from notelink.infra.repositories.notes_repository import PersistError
from notelink.infra.time import utc_now
from notelink.webhooks.note_client import NoteNotification, NotifyError

TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes!"


class FakeNoteStore:
    """Notes table kept in a list."""

    def __init__(self, fail: bool = False) -> None:
        self.records: list[SubmissionRecord] = []
        self.deleted: list[str] = []
        self.fail = fail

    def insert(self, draft: NoteDraft) -> SubmissionRecord:
        if self.fail:
            raise PersistError("insert failed")
        record = SubmissionRecord(
            id=str(uuid.uuid4()),
            content=draft.content,
            sender_name=draft.sender_name,
            user_email=draft.user_email,
            created_at=utc_now(),
            user_id=draft.user_id,
            ai_comment=draft.ai_comment,
            audio_url=draft.audio_url,
        )
        self.records.append(record)
        return record

    def query(self, order: str = "desc") -> list[SubmissionRecord]:
        if self.fail:
            raise PersistError("query failed")
        return sorted(self.records, key=lambda r: r.created_at, reverse=(order == "desc"))

    def delete(self, note_id: str) -> None:
        if self.fail:
            raise PersistError("delete failed")
        self.deleted.append(note_id)
        self.records = [r for r in self.records if r.id != note_id]


class FakeObjectStore:
    """Records uploads and hands out predictable public URLs."""

    def __init__(self, fail: bool = False) -> None:
        self.uploads: list[tuple[bytes, str, str]] = []
        self.fail = fail

    def upload(self, data: bytes, content_type: str, key: str) -> str:
        if self.fail:
            raise UploadError("upload failed")
        self.uploads.append((data, content_type, key))
        return f"https://storage.test/public/{key}"


class FakeNoteWebhook:
    """Records notifications and returns a canned reply."""

    def __init__(self, reply: str | None = None, fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[NoteNotification] = []

    def send(self, notification: NoteNotification) -> str | None:
        self.calls.append(notification)
        if self.fail:
            raise NotifyError("webhook unreachable")
        return self.reply


class FailingStorage:
    """Client storage whose backing store is down."""

    def get(self, key: str) -> str | None:
        raise StorageUnavailableError("storage down")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailableError("storage down")


def make_response(
    status_code: int = 200,
    json_data: object | None = None,
    text: str | None = None,
    url: str = "https://webhook.test/hook",
) -> requests.Response:
    """Build a real requests.Response with the given status and body."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.encoding = "utf-8"
    if json_data is not None:
        body = json.dumps(json_data)
    else:
        body = text or ""
    response._content = body.encode("utf-8")
    return response


def make_token(
    sub: str = "user-123",
    email: str | None = "visitor@example.com",
    name: str | None = "Visitor Name",
    secret: str = TEST_JWT_SECRET,
    aud: str = "authenticated",
    exp: int | None = None,
) -> str:
    """Create an HS256 JWT shaped like the auth provider's access tokens."""
    now = int(time.time())
    payload: dict = {
        "sub": sub,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if email is not None:
        payload["email"] = email
    if name is not None:
        payload["user_metadata"] = {"full_name": name}
    return jwt.encode(payload, secret, algorithm="HS256")
