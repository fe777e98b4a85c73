"""Notification channel senders."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from crowdwatch.core.config import Settings

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class NotificationSender(ABC):
    """Delivers a text message to one channel."""

    channel: str = "unknown"

    @abstractmethod
    async def send(self, text: str) -> None:
        """Deliver text. Raises on failure."""
        ...

    async def close(self) -> None:
        """Release resources."""


class LogSender(NotificationSender):
    """Writes messages to the log (for testing/development)."""

    channel = "log"

    async def send(self, text: str) -> None:
        logger.info(f"[NOTIFY] {text}")


class TelegramSender(NotificationSender):
    """Sends messages to a Telegram chat through the Bot API."""

    channel = "telegram"

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        parse_mode: str = "Markdown",
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 30.0,
    ):
        """Initialize Telegram sender.

        Args:
            bot_token: Telegram bot token
            chat_id: Target chat ID
            parse_mode: Message parse mode
            api_url: Bot API base URL
            timeout: HTTP timeout in seconds
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.parse_mode = parse_mode
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def send(self, text: str) -> None:
        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": self.parse_mode,
        }

        client = await self._get_http_client()
        response = await client.post(url, json=payload)
        response.raise_for_status()

        body = response.json()
        if not body.get("ok", False):
            raise RuntimeError(f"Telegram rejected message: {body.get('description')}")

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def build_sender(settings: Settings) -> NotificationSender:
    """Pick the sender configured in settings."""
    if settings.telegram_enabled:
        return TelegramSender(
            bot_token=settings.telegram_bot_token,
            chat_id=settings.telegram_chat_id,
            parse_mode=settings.telegram_parse_mode,
        )
    logger.warning("Telegram not configured, notifications go to the log")
    return LogSender()
