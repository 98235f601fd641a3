"""Chat assistant relay."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from notelink.infra.settings import get_settings
from notelink.webhooks.chat_client import ChatWebhookClient

router = APIRouter(tags=["chat"])

_chat_client: ChatWebhookClient | None = None


class ChatRequest(BaseModel):
    message: str


def _get_chat_client() -> ChatWebhookClient:
    """Get chat client instance (allows test injection)."""
    global _chat_client
    if _chat_client is None:
        settings = get_settings()
        _chat_client = ChatWebhookClient(
            endpoint=settings.chat_webhook_url,
            timeout=settings.webhook_timeout,
            simulated_delay=settings.chat_simulated_delay,
        )
    return _chat_client


@router.post("/chat")
def send_chat_message(body: ChatRequest) -> dict:
    """Relay a question to the assistant. Failures come back as text, not errors."""
    reply = _get_chat_client().send_message(body.message)
    return reply.to_dict()
