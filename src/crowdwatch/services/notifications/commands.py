"""Telegram bot command polling.

Long-polls ``getUpdates`` and answers known slash commands in the chat
that sent them. Handlers return the reply text; the poller only knows
about the Bot API.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from crowdwatch.services.notifications.senders import TELEGRAM_API_URL

logger = logging.getLogger(__name__)

CommandHandler = Callable[[], Awaitable[str]]


def parse_command(text: str | None) -> str | None:
    """Extract the command from a message text.

    ``"/status@SaleBot extra"`` gives ``"/status"``. Returns None if the
    text does not start with a command.
    """
    if not text or not text.startswith("/"):
        return None
    command = text.split(maxsplit=1)[0]
    return command.split("@", 1)[0].lower()


class TelegramCommandPoller:
    """Answers bot commands received through ``getUpdates``."""

    def __init__(
        self,
        bot_token: str,
        commands: dict[str, CommandHandler],
        parse_mode: str = "Markdown",
        api_url: str = TELEGRAM_API_URL,
        poll_timeout: int = 30,
        retry_delay: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize command poller.

        Args:
            bot_token: Telegram bot token
            commands: Reply builders keyed by command, e.g. ``"/help"``
            parse_mode: Parse mode of the replies
            api_url: Bot API base URL
            poll_timeout: Long-poll timeout passed to getUpdates (seconds)
            retry_delay: Pause after a failed poll (seconds)
            http_client: Shared HTTP client. If None, one is created.
        """
        self.bot_token = bot_token
        self.commands = {name.lower(): handler for name, handler in commands.items()}
        self.parse_mode = parse_mode
        self.api_url = api_url.rstrip("/")
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self._http_client = http_client
        self._owns_client = http_client is None
        self._offset: int | None = None
        self._task: asyncio.Task | None = None
        self.commands_answered = 0

    @property
    def offset(self) -> int | None:
        """Next update id to request."""
        return self._offset

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            # The read timeout must outlast the long poll
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(10.0, read=self.poll_timeout + 10.0)
            )
        return self._http_client

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"{self.api_url}/bot{self.bot_token}/{method}"
        client = await self._get_http_client()
        response = await client.post(url, json=payload)
        response.raise_for_status()

        body = response.json()
        if not body.get("ok", False):
            raise RuntimeError(f"Telegram {method} failed: {body.get('description')}")
        return body.get("result")

    async def start(self) -> None:
        """Start the polling loop."""
        if self.is_running:
            logger.warning("Command poller is already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Telegram command polling started ({', '.join(sorted(self.commands))})")

    async def stop(self) -> None:
        """Stop polling and close the HTTP client if this poller created it."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Telegram getUpdates failed: {e}")
                await asyncio.sleep(self.retry_delay)

    async def poll_once(self) -> int:
        """Fetch one batch of updates and answer the commands in it.

        Returns:
            Number of updates consumed
        """
        payload: dict[str, Any] = {
            "timeout": self.poll_timeout,
            "allowed_updates": ["message"],
        }
        if self._offset is not None:
            payload["offset"] = self._offset

        updates = await self._call("getUpdates", payload) or []
        for update in updates:
            # Acknowledge first so a failing reply is not fetched again
            self._offset = update["update_id"] + 1
            await self.handle_update(update)
        return len(updates)

    async def handle_update(self, update: dict[str, Any]) -> bool:
        """Answer one update if it carries a known command.

        Returns:
            True if a reply was sent
        """
        message = update.get("message") or {}
        command = parse_command(message.get("text"))
        handler = self.commands.get(command) if command else None
        if handler is None:
            return False

        chat_id = message["chat"]["id"]
        try:
            text = await handler()
            await self._call(
                "sendMessage",
                {"chat_id": chat_id, "text": text, "parse_mode": self.parse_mode},
            )
        except Exception as e:
            logger.error(f"Failed to answer {command} in chat {chat_id}: {e}")
            return False

        self.commands_answered += 1
        logger.info(f"Answered {command} in chat {chat_id}")
        return True
