"""Note submission route.

Security:
- Note text, sender name and email are NEVER logged
- The client address only reaches the rate-limit store as an HMAC hash
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from notelink.api.auth import CurrentUser, get_optional_user
from notelink.domain.notes import AudioClip, OutboundMessage
from notelink.infra.client_storage import (
    ClientStorage,
    JsonFileStorage,
    MemoryStorage,
    NamespacedStorage,
)
from notelink.infra.hashing import hash_client
from notelink.infra.object_storage import ObjectStore, SupabaseObjectStorage
from notelink.infra.repositories.notes_repository import NoteStore, PostgresNoteStore
from notelink.infra.settings import get_settings
from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import safe_log_context
from notelink.pipeline.submission import SubmissionOutcome, SubmissionPipeline
from notelink.webhooks.note_client import NoteWebhookClient

router = APIRouter(tags=["notes"])

logger = get_logger(__name__)

# Bound on per-client windows kept by the in-memory store
MAX_CLIENT_WINDOWS = 10_000

_base_storage: ClientStorage | None = None
_note_webhook: NoteWebhookClient | None = None
_object_store: ObjectStore | None = None
_note_store: NoteStore = PostgresNoteStore()

_STATUS_CODES = {
    "sent": 201,
    "invalid": 422,
    "rate_limited": 429,
    "failed": 502,
}


def _get_base_storage() -> ClientStorage:
    """Get the shared rate-limit store (allows test injection)."""
    global _base_storage
    if _base_storage is None:
        path = get_settings().rate_limit_storage_path
        if path:
            _base_storage = JsonFileStorage(path)
        else:
            _base_storage = MemoryStorage(max_keys=MAX_CLIENT_WINDOWS)
    return _base_storage


def _get_note_webhook() -> NoteWebhookClient:
    """Get note webhook client instance (allows test injection)."""
    global _note_webhook
    if _note_webhook is None:
        settings = get_settings()
        _note_webhook = NoteWebhookClient(
            settings.note_webhook_url,
            method=settings.note_webhook_method,
            timeout=settings.webhook_timeout,
        )
    return _note_webhook


def _get_object_store() -> ObjectStore:
    """Get audio object store instance (allows test injection)."""
    global _object_store
    if _object_store is None:
        settings = get_settings()
        _object_store = SupabaseObjectStorage(
            settings.supabase_url,
            settings.supabase_service_key,
            bucket=settings.audio_bucket,
            timeout=settings.webhook_timeout,
        )
    return _object_store


def _get_pipeline(storage: ClientStorage | None) -> SubmissionPipeline:
    """Build a pipeline bound to one client's storage (allows test injection)."""
    return SubmissionPipeline(
        storage=storage,
        webhook=_get_note_webhook(),
        object_store=_get_object_store(),
        note_store=_note_store,
    )


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _client_storage(request: Request) -> ClientStorage | None:
    """Per-client view of the rate-limit store, or None when clients cannot be keyed.

    None makes the rate gate fail open.
    """
    try:
        namespace = hash_client(_client_id(request))
    except RuntimeError:
        logger.warning(
            "client hashing unavailable, rate limiting disabled",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        return None
    return NamespacedStorage(_get_base_storage(), namespace)


def _to_response(outcome: SubmissionOutcome) -> JSONResponse:
    headers = {}
    if outcome.retry_after_seconds:
        headers["Retry-After"] = str(outcome.retry_after_seconds)
    return JSONResponse(
        status_code=_STATUS_CODES[outcome.status],
        content=outcome.to_dict(),
        headers=headers,
    )


@router.post("/notes")
async def submit_note(
    request: Request,
    note: str = Form(""),
    name: str = Form(""),
    is_anonymous: bool = Form(False),
    audio: UploadFile | None = File(None),
    user: CurrentUser | None = Depends(get_optional_user),
) -> JSONResponse:
    """Submit a note (text and/or audio) through the submission pipeline.

    Returns:
        201 sent, 422 invalid, 429 rate limited, 502 upstream failure.
        Body carries the outcome, including the webhook reply when sent.
    """
    clip = None
    if audio is not None:
        data = await audio.read()
        if data:
            clip = AudioClip(
                data=data,
                content_type=audio.content_type or "audio/webm",
                filename=audio.filename or "note.webm",
            )

    message = OutboundMessage(
        text=note,
        audio=clip,
        sender_name=name,
        user_id=user.id if user else None,
        user_name=user.name if user else None,
        user_email=user.email if user else None,
        is_anonymous=is_anonymous,
    )

    storage = _client_storage(request)
    pipeline = _get_pipeline(storage)

    logger.info(
        "note submission received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                note_len=len(note),
                has_audio=clip is not None,
                authenticated=user is not None,
                is_anonymous=is_anonymous,
            )
        },
    )

    # Pipeline does blocking I/O; keep it off the event loop
    outcome = await run_in_threadpool(pipeline.submit, message)
    return _to_response(outcome)
