"""Wiring of connection, subscription, formatting and dispatch."""

import logging
from typing import Any

from crowdwatch.core.config import Settings, get_settings
from crowdwatch.core.exceptions import QueryError
from crowdwatch.infrastructure.blockchain.connection import ConnectionFactory, ConnectionManager
from crowdwatch.infrastructure.blockchain.contracts import (
    ContractBinding,
    find_event_abi,
    get_abi_loader,
)
from crowdwatch.infrastructure.blockchain.events import PurchaseEvent, PurchaseEventDecoder
from crowdwatch.services.notifications import (
    CommandHandler,
    NotificationDispatcher,
    TelegramCommandPoller,
    build_sender,
)
from crowdwatch.services.sale_monitor.deduplicator import EventDeduplicator
from crowdwatch.services.sale_monitor.formatter import (
    TokenMeta,
    format_help,
    format_purchase,
    format_purchase_guide,
    format_status,
    format_status_error,
    format_welcome,
)
from crowdwatch.services.sale_monitor.subscriber import EventSubscriber
from crowdwatch.services.sale_monitor.token_meta import TokenMetaResolver
from crowdwatch.services.status import SaleStatusService

logger = logging.getLogger(__name__)


class SaleMonitor:
    """Forwards every observed purchase to the notification channel.

    Construction validates the static configuration (address, ABIs, event
    shape) and raises BindingError if it is wrong; nothing else is fatal.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        connection_factory: ConnectionFactory | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        """Initialize sale monitor.

        Args:
            settings: Application settings. If None, uses config.
            connection_factory: Opens transport sessions. If None, WebSocket.
            dispatcher: Notification dispatcher. If None, built from settings.
        """
        self.settings = settings or get_settings()
        loader = get_abi_loader(str(self.settings.abi_dir))
        sale_abi = loader.get_abi(self.settings.crowdsale_abi_name)
        token_abi = loader.get_abi(self.settings.token_abi_name)

        self.event_name = self.settings.purchase_event_name
        # Fail at startup on a wrong event declaration
        PurchaseEventDecoder(find_event_abi(sale_abi, self.event_name))

        self.connection = ConnectionManager(
            self.settings.contract_address,
            sale_abi,
            connection_factory=connection_factory,
            rpc_url=self.settings.rpc_ws_url,
            reconnect_delay=self.settings.reconnect_delay,
            call_timeout=self.settings.rpc_call_timeout,
        )
        self.token_meta = TokenMetaResolver(self.connection.current_binding, token_abi)
        self.subscriber = EventSubscriber(
            self.token_meta,
            EventDeduplicator(max_size=self.settings.dedup_window),
            catch_up=self.settings.catch_up_on_reconnect,
            catch_up_max_blocks=self.settings.catch_up_max_blocks,
        )
        self.dispatcher = dispatcher or NotificationDispatcher(
            build_sender(self.settings),
            max_queue_size=self.settings.notification_queue_size,
        )
        self.status = SaleStatusService(self.connection.current_binding, self.token_meta)
        # Only polls when Telegram and chat commands are enabled
        self.command_poller = self._build_command_poller()

        self.connection.on_open(self._on_open)
        self.connection.on_close(self._on_close)
        self.connection.on_error(self._on_error)
        self.connection.on_message(self.subscriber.on_message)

    @property
    def contract_address(self) -> str:
        """Checksummed sale contract address."""
        return self.connection.contract_address

    async def start(self) -> None:
        """Start dispatching and connect to the chain."""
        logger.info(f"Monitoring {self.event_name} on {self.contract_address}")
        await self.dispatcher.start()
        await self.connection.start()
        if self.command_poller:
            await self.command_poller.start()

    async def stop(self) -> None:
        """Disconnect, then flush notifications."""
        if self.command_poller:
            await self.command_poller.stop()
        await self.connection.stop()
        await self.dispatcher.stop()
        logger.info("Sale monitor stopped")

    def publish_purchase_guide(self) -> bool:
        """Queue the how-to-buy guide for the notification channel."""
        message = format_purchase_guide(
            self.contract_address, self.settings.native_currency_symbol
        )
        return self.dispatcher.publish(message.text)

    async def status_text(self) -> str:
        """Sale status summary as sent to chat.

        Raises:
            QueryError: If the sale state cannot be read
        """
        snapshot = await self.status.snapshot()
        return format_status(
            remaining_tokens=snapshot.remaining_tokens,
            wei_raised=snapshot.wei_raised,
            rate=snapshot.rate,
            symbol=snapshot.token_symbol,
            native_symbol=self.settings.native_currency_symbol,
        ).text

    def command_handlers(self) -> dict[str, CommandHandler]:
        """Reply builders for the bot chat commands."""
        return {
            "/start": self._welcome_reply,
            "/help": self._help_reply,
            "/guide": self._guide_reply,
            "/status": self._status_reply,
        }

    def health(self) -> dict[str, Any]:
        """Snapshot of connection, subscription and dispatch counters."""
        connection = self.connection.stats
        subscriber = self.subscriber.stats
        return {
            "connection": {
                "state": connection.state.value,
                "generation": connection.generation,
                "connects": connection.connects,
                "disconnects": connection.disconnects,
                "failed_attempts": connection.failed_attempts,
                "last_close_reason": connection.last_close_reason,
                "last_connected_at": connection.last_connected_at,
            },
            "subscription": {
                "state": subscriber.state.value,
                "generation": subscriber.generation,
                "events_received": subscriber.events_received,
                "events_delivered": subscriber.events_delivered,
                "events_failed": subscriber.events_failed,
                "duplicates_skipped": subscriber.duplicates_skipped,
                "events_replayed": subscriber.events_replayed,
                "last_block": subscriber.last_block,
                "last_event_time": subscriber.last_event_time,
            },
            "notifications": self.dispatcher.stats.model_dump(),
        }

    def _build_command_poller(self) -> TelegramCommandPoller | None:
        if not (self.settings.telegram_enabled and self.settings.telegram_commands_enabled):
            return None
        return TelegramCommandPoller(
            bot_token=self.settings.telegram_bot_token,
            commands=self.command_handlers(),
            parse_mode=self.settings.telegram_parse_mode,
            poll_timeout=self.settings.telegram_poll_timeout,
            retry_delay=self.settings.telegram_poll_retry_delay,
        )

    async def _welcome_reply(self) -> str:
        return format_welcome().text

    async def _help_reply(self) -> str:
        return format_help().text

    async def _guide_reply(self) -> str:
        return format_purchase_guide(
            self.contract_address, self.settings.native_currency_symbol
        ).text

    async def _status_reply(self) -> str:
        try:
            return await self.status_text()
        except QueryError as e:
            logger.error(f"Status query failed: {e}")
            return format_status_error().text

    async def _on_open(self, binding: ContractBinding) -> None:
        await self.subscriber.subscribe(binding, self.event_name, self._on_purchase)

    async def _on_close(self, reason: str) -> None:
        self.subscriber.invalidate(reason)

    async def _on_error(self, error: Exception) -> None:
        logger.error(f"Chain connection error: {error}")

    async def _on_purchase(self, event: PurchaseEvent, meta: TokenMeta) -> None:
        message = format_purchase(event, meta, self.settings.native_currency_symbol)
        logger.info(
            f"Sale detected: {event.value} wei for {event.beneficiary} "
            f"({event.amount} base units of {meta.symbol}, tx {event.tx_hash})"
        )
        self.dispatcher.publish(message.text)
