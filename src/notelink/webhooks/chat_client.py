"""Chat assistant webhook client.

Sends a visitor question to the assistant endpoint and returns a typed
reply. Transport problems never escape: every failure becomes a fixed
message with no suggestions.

Security: NEVER log the question text. Only log lengths.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import requests

from notelink.observability.correlation import get_correlation_id
from notelink.observability.logging import get_logger
from notelink.observability.redaction import safe_log_context

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 2000

OVERSIZE_OUTPUT = (
    "Message exceeds neural processing capacity. "
    "Please keep it under 2000 characters."
)
CONNECTION_LOST_OUTPUT = (
    "Connection to the neural network lost. "
    "Unable to retrieve data from the digital mind right now."
)
UNEXPECTED_FORMAT_OUTPUT = "Message received, but format was unexpected."

SIMULATED_OUTPUT = (
    "I am a simulated AI response. Configure CHAT_WEBHOOK_URL "
    "to connect to your real backend!"
)
SIMULATED_SUGGESTIONS = (
    "What's your background?",
    "Tell me about your projects",
    "How can I contact you?",
)


@dataclass(frozen=True)
class ChatReply:
    """Assistant reply: free text plus optional follow-up suggestions."""

    output: str
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"output": self.output, "suggestions": list(self.suggestions)}


class ChatWebhookClient:
    """Client for the chat assistant webhook (GET ?question=...).

    One attempt per message, no automatic retry. With no endpoint
    configured the client answers with a simulated reply.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
        simulated_delay: float = 1.5,
    ) -> None:
        self._endpoint = endpoint
        self._session = session or requests.Session()
        self._timeout = timeout
        self._simulated_delay = simulated_delay

    @property
    def is_configured(self) -> bool:
        return bool(self._endpoint)

    def send_message(self, text: str) -> ChatReply:
        """Send a question and return the assistant's reply. Never raises."""
        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            text_len=len(text),
        )

        if len(text) > MAX_MESSAGE_LENGTH:
            logger.info("chat message rejected: oversize", extra={"extra_fields": log_ctx})
            return ChatReply(output=OVERSIZE_OUTPUT, suggestions=[])

        if not self.is_configured:
            logger.info("chat webhook not configured, simulating reply", extra={"extra_fields": log_ctx})
            time.sleep(self._simulated_delay)
            return ChatReply(output=SIMULATED_OUTPUT, suggestions=list(SIMULATED_SUGGESTIONS))

        try:
            response = self._session.get(
                self._endpoint,
                params={"question": text},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "chat webhook call failed",
                extra={
                    "extra_fields": safe_log_context(**log_ctx, error_type=type(e).__name__)
                },
            )
            return ChatReply(output=CONNECTION_LOST_OUTPUT, suggestions=[])

        if not isinstance(data, dict):
            logger.error(
                "chat webhook returned non-object body",
                extra={"extra_fields": safe_log_context(**log_ctx, body_type=type(data).__name__)},
            )
            return ChatReply(output=CONNECTION_LOST_OUTPUT, suggestions=[])

        output = data.get("output")
        suggestions = data.get("suggestions")

        reply = ChatReply(
            output=output if isinstance(output, str) and output else UNEXPECTED_FORMAT_OUTPUT,
            suggestions=suggestions if isinstance(suggestions, list) else [],
        )

        logger.info(
            "chat webhook replied",
            extra={
                "extra_fields": safe_log_context(
                    **log_ctx,
                    output_len=len(reply.output),
                    suggestion_count=len(reply.suggestions),
                )
            },
        )
        return reply
