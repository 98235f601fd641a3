"""Note submission pipeline.

Stages run strictly in order; the first failing stage ends the run and
later stages never execute:

1. validate           - content/identity rules, no network
2. rate_gate          - 5 notes per 10 minutes per client storage
3. sanitize           - escape note text and typed guest name
4. upload_attachment  - audio only: store clip, get public URL
5. notify_webhook     - deliver note, collect the AI reply
6. persist            - insert the note with the reply
7. complete           - build the final outcome

Known inconsistencies, accepted and logged rather than reconciled:
- notify failure after a successful upload leaves an orphaned object
- persist failure after a delivered notification is not rolled back
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Literal, Union

from notelink.domain.notes import (
    NoteDraft,
    OutboundMessage,
    SubmissionRecord,
    sender_contact,
    sender_label,
)
from notelink.domain.rate_limit import check_rate_limit, seconds_until_allowed
from notelink.domain.sanitize import sanitize_input
from notelink.infra.client_storage import ClientStorage
from notelink.infra.object_storage import ObjectStore, UploadError, generate_object_key
from notelink.infra.repositories.notes_repository import NoteStore, PersistError
from notelink.infra.time import now_ms, utc_now
from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import safe_log_context
from notelink.webhooks.note_client import NoteNotification, NoteWebhookClient, NotifyError

logger = get_logger(__name__)

NOTE_RATE_LIMIT_KEY = "notes_submission"
NOTE_RATE_LIMIT = 5
NOTE_RATE_WINDOW_MS = 10 * 60 * 1000

RATE_LIMIT_NOTICE_SECONDS = 5
COMPLETE_DELAY_SECONDS = 3
COMPLETE_DELAY_WITH_REPLY_SECONDS = 6


class FailureKind(str, Enum):
    """Distinguishable stage failures."""

    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    UPLOAD = "upload"
    NOTIFY = "notify"
    PERSIST = "persist"


FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.VALIDATION: "Note is incomplete.",
    FailureKind.RATE_LIMITED: "Too many transmissions. Please wait before sending another note.",
    FailureKind.UPLOAD: "Archive connection failed. Please try again.",
    FailureKind.NOTIFY: "Neural link disrupted. Please try again.",
    FailureKind.PERSIST: "Archive connection failed. Please try again.",
}


@dataclass(frozen=True)
class Ok:
    value: "SubmissionContext"


@dataclass(frozen=True)
class Err:
    kind: FailureKind
    detail: str = ""


StageResult = Union[Ok, Err]


@dataclass(frozen=True)
class SubmissionContext:
    """Data accumulated by the stages of one run."""

    message: OutboundMessage
    sanitized_text: str = ""
    sender: str = ""
    contact: str = ""
    audio_url: str | None = None
    webhook_reply: str | None = None
    record: SubmissionRecord | None = None


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one pipeline run, as shown to the caller."""

    status: Literal["sent", "invalid", "rate_limited", "failed"]
    failure: FailureKind | None = None
    message: str | None = None
    webhook_response: str | None = None
    record: SubmissionRecord | None = None
    display_seconds: int | None = None
    notice_seconds: int | None = None
    retry_after_seconds: int | None = None
    completed_stages: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_sent(self) -> bool:
        return self.status == "sent"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "isSent": self.is_sent,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
            "webhookResponse": self.webhook_response,
            "record": self.record.to_dict() if self.record else None,
            "displaySeconds": self.display_seconds,
            "noticeSeconds": self.notice_seconds,
            "retryAfterSeconds": self.retry_after_seconds,
        }


Stage = Callable[[SubmissionContext], StageResult]


class SubmissionPipeline:
    """Runs the note submission stages against injected collaborators."""

    def __init__(
        self,
        *,
        storage: ClientStorage | None,
        webhook: NoteWebhookClient,
        object_store: ObjectStore,
        note_store: NoteStore,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._storage = storage
        self._webhook = webhook
        self._object_store = object_store
        self._note_store = note_store
        self._clock = clock

    def stages(self) -> list[tuple[str, Stage]]:
        return [
            ("validate", self._validate),
            ("rate_gate", self._rate_gate),
            ("sanitize", self._sanitize),
            ("upload_attachment", self._upload_attachment),
            ("notify_webhook", self._notify_webhook),
            ("persist", self._persist),
        ]

    def submit(self, message: OutboundMessage) -> SubmissionOutcome:
        """Run all stages for one message; stop at the first failure."""
        ctx = SubmissionContext(message=message)
        completed: list[str] = []

        for name, stage in self.stages():
            result = stage(ctx)
            if isinstance(result, Err):
                return self._fail(result, name, tuple(completed))
            ctx = result.value
            completed.append(name)

        return self._complete(ctx, tuple(completed))

    # Stages

    def _validate(self, ctx: SubmissionContext) -> StageResult:
        if not ctx.message.is_valid:
            return Err(FailureKind.VALIDATION)
        return Ok(ctx)

    def _rate_gate(self, ctx: SubmissionContext) -> StageResult:
        allowed = check_rate_limit(
            self._storage,
            NOTE_RATE_LIMIT_KEY,
            NOTE_RATE_LIMIT,
            NOTE_RATE_WINDOW_MS,
            now_ms=self._clock(),
        )
        if not allowed:
            return Err(FailureKind.RATE_LIMITED)
        return Ok(ctx)

    def _sanitize(self, ctx: SubmissionContext) -> StageResult:
        message = ctx.message
        return Ok(
            replace(
                ctx,
                sanitized_text=sanitize_input(message.text),
                sender=sender_label(message, sanitize_input),
                contact=sender_contact(message),
            )
        )

    def _upload_attachment(self, ctx: SubmissionContext) -> StageResult:
        audio = ctx.message.audio
        if audio is None:
            return Ok(ctx)

        key = generate_object_key(audio.extension)
        try:
            url = self._object_store.upload(audio.data, audio.content_type, key)
        except UploadError as e:
            return Err(FailureKind.UPLOAD, str(e))
        return Ok(replace(ctx, audio_url=url))

    def _notify_webhook(self, ctx: SubmissionContext) -> StageResult:
        notification = NoteNotification(
            note=ctx.sanitized_text,
            sender=ctx.sender,
            email=ctx.contact,
            is_anonymous=ctx.message.is_anonymous,
            type=ctx.message.message_type,
            timestamp=utc_now().isoformat(),
            audio=ctx.message.audio,
            audio_url=ctx.audio_url,
        )
        try:
            reply = self._webhook.send(notification)
        except NotifyError as e:
            if ctx.audio_url:
                logger.warning(
                    "notification failed after upload, object left orphaned",
                    extra={
                        "extra_fields": safe_log_context(
                            correlationId=get_correlation_id(), audio_url=ctx.audio_url
                        )
                    },
                )
            return Err(FailureKind.NOTIFY, str(e))
        return Ok(replace(ctx, webhook_reply=reply))

    def _persist(self, ctx: SubmissionContext) -> StageResult:
        draft = NoteDraft(
            content=ctx.sanitized_text,
            sender_name=ctx.sender,
            user_email=ctx.contact,
            # Anonymous notes are not linkable to an account
            user_id=None if ctx.message.is_anonymous else ctx.message.user_id,
            ai_comment=ctx.webhook_reply,
            audio_url=ctx.audio_url,
        )
        try:
            record = self._note_store.insert(draft)
        except PersistError as e:
            logger.warning(
                "persist failed after notification was delivered",
                extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
            )
            return Err(FailureKind.PERSIST, str(e))
        return Ok(replace(ctx, record=record))

    # Terminal states

    def _fail(self, err: Err, stage: str, completed: tuple[str, ...]) -> SubmissionOutcome:
        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            stage=stage,
            failure=err.kind.value,
            completed=",".join(completed),
        )

        if err.kind is FailureKind.VALIDATION:
            logger.info("note submission invalid", extra={"extra_fields": log_ctx})
            return SubmissionOutcome(status="invalid", failure=err.kind, completed_stages=completed)

        if err.kind is FailureKind.RATE_LIMITED:
            logger.info("note submission rate limited", extra={"extra_fields": log_ctx})
            return SubmissionOutcome(
                status="rate_limited",
                failure=err.kind,
                message=FAILURE_MESSAGES[err.kind],
                notice_seconds=RATE_LIMIT_NOTICE_SECONDS,
                retry_after_seconds=seconds_until_allowed(
                    self._storage,
                    NOTE_RATE_LIMIT_KEY,
                    NOTE_RATE_LIMIT,
                    NOTE_RATE_WINDOW_MS,
                    now_ms=self._clock(),
                ),
                completed_stages=completed,
            )

        logger.error("note submission failed", extra={"extra_fields": log_ctx})
        return SubmissionOutcome(
            status="failed",
            failure=err.kind,
            message=FAILURE_MESSAGES[err.kind],
            completed_stages=completed,
        )

    def _complete(self, ctx: SubmissionContext, completed: tuple[str, ...]) -> SubmissionOutcome:
        reply = ctx.webhook_reply
        logger.info(
            "note submission complete",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    type=ctx.message.message_type,
                    has_reply=bool(reply),
                    note_id=ctx.record.id if ctx.record else None,
                )
            },
        )
        return SubmissionOutcome(
            status="sent",
            webhook_response=reply,
            record=ctx.record,
            display_seconds=COMPLETE_DELAY_WITH_REPLY_SECONDS if reply else COMPLETE_DELAY_SECONDS,
            completed_stages=completed + ("complete",),
        )
