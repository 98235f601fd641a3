"""Tests for the note submission pipeline."""

from unittest.mock import MagicMock, patch

import requests

from notelink.domain.notes import AudioClip, OutboundMessage
from notelink.infra.client_storage import MemoryStorage
from notelink.pipeline.submission import (
    COMPLETE_DELAY_SECONDS,
    COMPLETE_DELAY_WITH_REPLY_SECONDS,
    FAILURE_MESSAGES,
    NOTE_RATE_WINDOW_MS,
    RATE_LIMIT_NOTICE_SECONDS,
    FailureKind,
    SubmissionPipeline,
)
from notelink.webhooks.note_client import NoteWebhookClient

from .helpers import (
    FailingStorage,
    FakeNoteStore,
    FakeNoteWebhook,
    FakeObjectStore,
    make_response,
)

T0 = 1_700_000_000_000
CLIP = AudioClip(data=b"RIFF-audio", content_type="audio/webm", filename="note.webm")


class Clock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _pipeline(
    storage=None,
    webhook=None,
    object_store=None,
    note_store=None,
    clock=None,
):
    storage = storage if storage is not None else MemoryStorage()
    webhook = webhook or FakeNoteWebhook()
    object_store = object_store or FakeObjectStore()
    note_store = note_store or FakeNoteStore()
    pipeline = SubmissionPipeline(
        storage=storage,
        webhook=webhook,
        object_store=object_store,
        note_store=note_store,
        clock=clock or Clock(),
    )
    return pipeline, webhook, object_store, note_store


def _text_note(**overrides) -> OutboundMessage:
    fields = dict(text="Loved the 3D background!", sender_name="Ada")
    fields.update(overrides)
    return OutboundMessage(**fields)


class TestStageOrder:
    def test_stages_in_fixed_order(self):
        pipeline, *_ = _pipeline()
        assert [name for name, _ in pipeline.stages()] == [
            "validate",
            "rate_gate",
            "sanitize",
            "upload_attachment",
            "notify_webhook",
            "persist",
        ]


class TestEndToEnd:
    def test_text_note_with_comment_reply(self):
        """Valid text, no audio, webhook replies {comment}, persistence succeeds."""
        session = MagicMock(spec=requests.Session)
        session.request.return_value = make_response(json_data={"comment": "thanks"})
        webhook = NoteWebhookClient("https://n8n.test/webhook/notes", session=session)
        pipeline, _, object_store, note_store = _pipeline(webhook=webhook)

        outcome = pipeline.submit(_text_note(text="  Nice <b>work</b>  "))

        assert outcome.is_sent is True
        assert outcome.webhook_response == "thanks"
        assert outcome.failure is None
        assert object_store.uploads == []

        visible = note_store.query()
        assert len(visible) == 1
        assert visible[0].content == "Nice &lt;b&gt;work&lt;/b&gt;"
        assert visible[0].ai_comment == "thanks"
        assert visible[0].sender_name == "Ada"
        assert visible[0].user_email == "Guest"

    def test_sixth_note_within_window_is_rate_limited(self):
        clock = Clock()
        pipeline, webhook, object_store, note_store = _pipeline(clock=clock)

        for i in range(5):
            clock.now = T0 + i * 1000
            assert pipeline.submit(_text_note()).is_sent

        calls_before = len(webhook.calls)
        clock.now = T0 + 60_000
        outcome = pipeline.submit(_text_note(audio=CLIP))

        assert outcome.status == "rate_limited"
        assert outcome.failure is FailureKind.RATE_LIMITED
        assert outcome.notice_seconds == RATE_LIMIT_NOTICE_SECONDS
        assert outcome.retry_after_seconds == (NOTE_RATE_WINDOW_MS - 60_000) // 1000
        assert outcome.completed_stages == ("validate",)
        assert len(webhook.calls) == calls_before
        assert object_store.uploads == []
        assert len(note_store.records) == 5

    def test_eligible_again_after_window(self):
        clock = Clock()
        pipeline, *_ = _pipeline(clock=clock)

        for _ in range(5):
            pipeline.submit(_text_note())
        assert pipeline.submit(_text_note()).status == "rate_limited"

        clock.now = T0 + NOTE_RATE_WINDOW_MS
        assert pipeline.submit(_text_note()).is_sent


class TestValidation:
    def test_invalid_message_never_reaches_network(self):
        storage = MemoryStorage()
        pipeline, webhook, object_store, note_store = _pipeline(storage=storage)

        outcome = pipeline.submit(OutboundMessage(text="hi", sender_name="Ada"))

        assert outcome.status == "invalid"
        assert outcome.failure is FailureKind.VALIDATION
        assert outcome.completed_stages == ()
        assert webhook.calls == []
        assert object_store.uploads == []
        assert note_store.records == []

    def test_invalid_does_not_consume_rate_slot(self):
        storage = MemoryStorage()
        pipeline, *_ = _pipeline(storage=storage)

        for _ in range(10):
            pipeline.submit(OutboundMessage(text="hello there"))

        assert storage.get("rate_limit_notes_submission") is None


class TestAnonymity:
    def test_anonymous_authenticated_note_stores_no_user_id(self):
        pipeline, webhook, _, note_store = _pipeline()
        message = OutboundMessage(
            text="Signed but anonymous",
            user_id="user-123",
            user_name="Grace Hopper",
            user_email="grace@example.com",
            is_anonymous=True,
        )

        outcome = pipeline.submit(message)

        assert outcome.is_sent
        record = note_store.records[0]
        assert record.user_id is None
        assert record.sender_name == "Anonymous"
        assert record.user_email == "Anonymous"
        assert outcome.to_dict()["record"]["user_id"] is None
        assert webhook.calls[0].email == "Anonymous"

    def test_authenticated_note_keeps_user_id(self):
        pipeline, _, _, note_store = _pipeline()

        pipeline.submit(OutboundMessage(text="Signed note", user_id="user-123", user_name="Grace"))

        assert note_store.records[0].user_id == "user-123"


class TestAudioNotes:
    def test_upload_url_flows_to_webhook_and_record(self):
        pipeline, webhook, object_store, note_store = _pipeline(
            webhook=FakeNoteWebhook(reply="nice voice")
        )

        outcome = pipeline.submit(OutboundMessage(audio=CLIP, is_anonymous=True))

        assert outcome.is_sent
        assert len(object_store.uploads) == 1
        data, content_type, key = object_store.uploads[0]
        assert data == b"RIFF-audio"
        assert content_type == "audio/webm"
        assert key.endswith(".webm")

        expected_url = f"https://storage.test/public/{key}"
        notification = webhook.calls[0]
        assert notification.type == "vocal"
        assert notification.audio == CLIP
        assert notification.audio_url == expected_url
        assert notification.sender == "Anonymous"
        assert notification.is_anonymous is True
        assert note_store.records[0].audio_url == expected_url

    def test_upload_failure_aborts_before_notify(self):
        pipeline, webhook, _, note_store = _pipeline(object_store=FakeObjectStore(fail=True))

        outcome = pipeline.submit(_text_note(audio=CLIP))

        assert outcome.status == "failed"
        assert outcome.failure is FailureKind.UPLOAD
        assert outcome.message == FAILURE_MESSAGES[FailureKind.UPLOAD]
        assert "Archive connection failed" in outcome.message
        assert webhook.calls == []
        assert note_store.records == []

    def test_text_note_skips_upload(self):
        object_store = FakeObjectStore(fail=True)
        pipeline, *_ = _pipeline(object_store=object_store)

        assert pipeline.submit(_text_note()).is_sent


class TestLateFailures:
    def test_notify_failure_leaves_orphaned_upload(self):
        pipeline, _, object_store, note_store = _pipeline(webhook=FakeNoteWebhook(fail=True))

        with patch("notelink.pipeline.submission.logger") as mock_logger:
            outcome = pipeline.submit(_text_note(audio=CLIP))

        assert outcome.failure is FailureKind.NOTIFY
        assert "Neural link disrupted" in outcome.message
        assert len(object_store.uploads) == 1
        assert note_store.records == []
        assert outcome.completed_stages == ("validate", "rate_gate", "sanitize", "upload_attachment")
        assert mock_logger.warning.called

    def test_persist_failure_after_notify(self):
        webhook = FakeNoteWebhook(reply="thanks")
        pipeline, _, _, _ = _pipeline(webhook=webhook, note_store=FakeNoteStore(fail=True))

        outcome = pipeline.submit(_text_note())

        assert outcome.failure is FailureKind.PERSIST
        assert outcome.message == FAILURE_MESSAGES[FailureKind.PERSIST]
        assert len(webhook.calls) == 1
        assert outcome.webhook_response is None
        assert outcome.is_sent is False

    def test_retry_with_fresh_message_after_failure(self):
        webhook = FakeNoteWebhook(fail=True)
        pipeline, _, _, note_store = _pipeline(webhook=webhook)

        assert pipeline.submit(_text_note()).failure is FailureKind.NOTIFY

        webhook.fail = False
        assert pipeline.submit(_text_note()).is_sent
        assert len(note_store.records) == 1


class TestCompletion:
    def test_display_seconds_without_reply(self):
        pipeline, *_ = _pipeline(webhook=FakeNoteWebhook(reply=None))

        outcome = pipeline.submit(_text_note())

        assert outcome.display_seconds == COMPLETE_DELAY_SECONDS == 3
        assert outcome.webhook_response is None

    def test_display_seconds_with_reply(self):
        pipeline, *_ = _pipeline(webhook=FakeNoteWebhook(reply="thanks"))

        outcome = pipeline.submit(_text_note())

        assert outcome.display_seconds == COMPLETE_DELAY_WITH_REPLY_SECONDS == 6

    def test_completed_stages(self):
        pipeline, *_ = _pipeline()

        outcome = pipeline.submit(_text_note())

        assert outcome.completed_stages[-1] == "complete"
        assert len(outcome.completed_stages) == 7

    def test_to_dict_shape(self):
        pipeline, *_ = _pipeline(webhook=FakeNoteWebhook(reply="thanks"))

        body = pipeline.submit(_text_note()).to_dict()

        assert body["isSent"] is True
        assert body["webhookResponse"] == "thanks"
        assert body["record"]["content"] == "Loved the 3D background!"


class TestStorageFaults:
    def test_storage_failure_fails_open(self):
        pipeline, webhook, *_ = _pipeline(storage=FailingStorage())

        for _ in range(7):
            assert pipeline.submit(_text_note()).is_sent
        assert len(webhook.calls) == 7


class TestNoPiiInLogs:
    def test_pipeline_logs_no_note_content(self):
        pipeline, *_ = _pipeline(webhook=FakeNoteWebhook(reply="thanks"))
        message = OutboundMessage(
            text="secret_note_body", sender_name="secret_sender_name"
        )

        with patch("notelink.pipeline.submission.logger") as mock_logger:
            pipeline.submit(message)

        logged = str(mock_logger.mock_calls)
        assert mock_logger.info.called
        assert "secret_note_body" not in logged
        assert "secret_sender_name" not in logged
