import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

import httpx

from supportdesk.logging_config import get_logger

logger = get_logger("bot_responder")

BOT_RESPONDER_URL = os.environ.get("BOT_RESPONDER_URL", "http://localhost:8100/generate")
BOT_RESPONDER_TIMEOUT_SECONDS = float(os.environ.get("BOT_RESPONDER_TIMEOUT_SECONDS", "10"))


class BotResponderError(Exception):
    """Bot responder could not produce a reply."""

    pass


@dataclass
class BotReply:
    content: str
    confidence: Optional[float] = None
    metadata: dict = field(default_factory=dict)


class BotResponder(ABC):
    """Abstract base class for bot reply generators."""

    @abstractmethod
    def generate(self, bot_id: UUID, text: str, context: dict) -> BotReply:
        """Generate a reply for the customer's text."""
        pass


class HttpBotResponder(BotResponder):
    """Bot responder behind an HTTP endpoint."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or BOT_RESPONDER_URL
        self.timeout = timeout if timeout is not None else BOT_RESPONDER_TIMEOUT_SECONDS

    def generate(self, bot_id: UUID, text: str, context: dict) -> BotReply:
        payload = {"bot_id": str(bot_id), "message": text, "context": context}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise BotResponderError(f"Bot responder request failed: {e}") from e

        if response.status_code >= 300:
            raise BotResponderError(f"Bot responder returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise BotResponderError("Bot responder returned invalid JSON") from e

        content = (data.get("content") or data.get("response") or "").strip() if isinstance(data, dict) else ""
        if not content:
            raise BotResponderError("Bot responder returned empty content")

        logger.debug(f"Bot reply generated: bot_id={bot_id}, chars={len(content)}")
        return BotReply(
            content=content,
            confidence=data.get("confidence"),
            metadata=data.get("metadata") or {},
        )
