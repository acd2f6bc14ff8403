"""
Stage Notifications

Fire-and-forget chat messages on stage transitions (Telegram Bot API).
A failed send is logged and never propagated.
"""

from typing import Optional

import httpx
from structlog import get_logger

from ..config import PipelineConfig, get_config
from .http import http_session

logger = get_logger()


class TelegramNotifier:
    """Sends plain-text messages to one configured chat."""

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        enabled: bool = True,
    ):
        self.settings = settings or get_config()
        self.client = client
        self.enabled = enabled and self.settings.telegram_enabled

    async def send(self, text: str) -> bool:
        """
        Send ``text``.

        Returns:
            True if the message was accepted, False if disabled or failed
        """
        if not self.enabled:
            return False

        url = f"{self.settings.telegram_api_base}/bot{self.settings.telegram_bot_token}/sendMessage"
        payload = {
            "chat_id": self.settings.telegram_chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        try:
            async with http_session(self.client, self.settings.http_timeout_seconds) as client:
                response = await client.post(url, json=payload)
            if not response.is_success:
                logger.warning("notification_rejected", status=response.status_code)
                return False
        except httpx.HTTPError as e:
            logger.warning("notification_failed", error=type(e).__name__)
            return False
        return True


def format_lines(*lines: Optional[str]) -> str:
    """Join non-empty message lines."""
    return "\n".join(line for line in lines if line)
