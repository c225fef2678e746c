import os
from typing import Optional

import httpx

from supportdesk.logging_config import get_logger

logger = get_logger("waha_service")

WAHA_BASE_URL = os.environ.get("WAHA_BASE_URL", "http://localhost:3000")
WAHA_API_KEY = os.environ.get("WAHA_API_KEY")
WAHA_DEFAULT_SESSION = os.environ.get("WAHA_DEFAULT_SESSION", "default")
WAHA_TIMEOUT_SECONDS = float(os.environ.get("WAHA_TIMEOUT_SECONDS", "30"))


def to_chat_id(phone: str) -> str:
    """WhatsApp chat id from a phone number ("+7 701..." -> "7701...@c.us")."""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    return f"{digits}@c.us"


class WahaClient:
    """Outbound WhatsApp delivery through a WAHA gateway."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or WAHA_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else WAHA_API_KEY
        self.timeout = timeout if timeout is not None else WAHA_TIMEOUT_SECONDS

    def send_text(self, session_name: Optional[str], phone: str, text: str) -> bool:
        """Send text message. Returns False on any failure."""
        if not phone or not text:
            logger.warning(f"send_text: missing phone={phone!r} or text")
            return False

        chat_id = to_chat_id(phone)
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        payload = {
            "session": session_name or WAHA_DEFAULT_SESSION,
            "chatId": chat_id,
            "text": text,
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url}/api/sendText", json=payload, headers=headers)
            logger.info(f"WAHA response: status={response.status_code}, chat_id={chat_id}")
            return 200 <= response.status_code < 300
        except Exception as e:
            logger.error(f"Error sending WhatsApp message via WAHA: {e}", extra={"context": {"chat_id": chat_id}})
            return False
