"""Purchase event subscription that survives reconnects."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine

from crowdwatch.core.exceptions import EventProcessingError
from crowdwatch.infrastructure.blockchain.contracts import ContractBinding
from crowdwatch.infrastructure.blockchain.events import PurchaseEvent, PurchaseEventDecoder
from crowdwatch.services.sale_monitor.deduplicator import EventDeduplicator
from crowdwatch.services.sale_monitor.formatter import TokenMeta
from crowdwatch.services.sale_monitor.token_meta import TokenMetaResolver

logger = logging.getLogger(__name__)


class SubscriptionState(str, Enum):
    """Subscriber state."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"


@dataclass(frozen=True)
class SubscriptionHandle:
    """An active registration for one event on one binding generation."""

    subscription_id: str
    event_name: str
    address: str
    generation: int


@dataclass
class SubscriberStats:
    """Statistics for the event subscriber."""

    state: SubscriptionState = SubscriptionState.UNSUBSCRIBED
    generation: int = 0
    subscriptions: int = 0
    events_received: int = 0
    events_delivered: int = 0
    events_failed: int = 0
    duplicates_skipped: int = 0
    stale_skipped: int = 0
    removed_skipped: int = 0
    events_replayed: int = 0
    last_block: int | None = None
    last_event_time: datetime | None = None


# Receives each purchase together with the token metadata it was resolved with
PurchaseHandler = Callable[[PurchaseEvent, TokenMeta], Coroutine[Any, Any, None]]


class EventSubscriber:
    """Registers interest in the purchase event and re-registers after reconnects.

    Failures are contained per event: a log that cannot be decoded or whose
    token metadata cannot be resolved is logged and dropped, and the
    subscription carries on.
    """

    def __init__(
        self,
        token_meta: TokenMetaResolver,
        deduplicator: EventDeduplicator | None = None,
        catch_up: bool = True,
        catch_up_max_blocks: int = 5000,
    ):
        """Initialize subscriber.

        Args:
            token_meta: Token metadata resolver
            deduplicator: In-process dedup of (tx_hash, log_index)
            catch_up: Replay logs since the last seen block after resubscribing
            catch_up_max_blocks: Bound on the replayed block range
        """
        self.token_meta = token_meta
        self.deduplicator = deduplicator or EventDeduplicator()
        self.catch_up = catch_up
        self.catch_up_max_blocks = catch_up_max_blocks

        self._state = SubscriptionState.UNSUBSCRIBED
        self._handle: SubscriptionHandle | None = None
        self._decoder: PurchaseEventDecoder | None = None
        self._handler: PurchaseHandler | None = None
        self._stats = SubscriberStats()

    @property
    def state(self) -> SubscriptionState:
        """Get current subscription state."""
        return self._state

    @property
    def handle(self) -> SubscriptionHandle | None:
        """Get the active subscription handle."""
        return self._handle

    @property
    def stats(self) -> SubscriberStats:
        """Get subscriber statistics."""
        self._stats.state = self._state
        self._stats.generation = self._handle.generation if self._handle else 0
        return self._stats

    async def subscribe(
        self,
        binding: ContractBinding,
        event_name: str,
        handler: PurchaseHandler,
    ) -> SubscriptionHandle:
        """Register handler for an event on a binding.

        Args:
            binding: Contract binding of the current generation
            event_name: Event to subscribe to
            handler: Called once per observed event, in delivery order

        Returns:
            New subscription handle

        Raises:
            BindingError: If the event is not declared or has the wrong shape
            ChainConnectionError: If the binding's generation is gone
        """
        current = self._handle
        if (
            current is not None
            and current.generation == binding.generation
            and current.event_name == event_name
        ):
            logger.warning(
                f"Already subscribed to {event_name} on generation {binding.generation}"
            )
            return current

        decoder = PurchaseEventDecoder(binding.event_abi(event_name))
        self.invalidate("resubscribing")

        binding.ensure_valid()
        subscription_id = await binding.connection.subscribe_logs(
            decoder.log_filter(binding.address)
        )
        binding.ensure_valid()

        handle = SubscriptionHandle(
            subscription_id=subscription_id,
            event_name=event_name,
            address=binding.address,
            generation=binding.generation,
        )
        self._handle = handle
        self._decoder = decoder
        self._handler = handler
        self._state = SubscriptionState.SUBSCRIBED
        self._stats.subscriptions += 1
        logger.info(
            f"Subscribed to {event_name} on {binding.address} "
            f"(generation {binding.generation}, id {subscription_id})"
        )

        if self.catch_up and self._stats.last_block is not None:
            await self._replay_missed(binding, decoder)

        return handle

    def invalidate(self, reason: str = "") -> None:
        """Drop the active handle. It is never reused."""
        if self._handle is None:
            return
        logger.info(
            f"Subscription {self._handle.subscription_id} "
            f"(generation {self._handle.generation}) invalidated: {reason}"
        )
        self._handle = None
        self._state = SubscriptionState.UNSUBSCRIBED

    async def on_message(self, payload: dict[str, Any]) -> None:
        """Handle a raw subscription payload from the transport."""
        handle = self._handle
        if handle is None or payload.get("subscription") != handle.subscription_id:
            self._stats.stale_skipped += 1
            return

        log = payload.get("result")
        if not isinstance(log, dict):
            # AttributeDict and friends
            log = dict(log) if log is not None else {}
        await self._process_log(log)

    async def _process_log(self, log: dict[str, Any]) -> None:
        """Decode, enrich, and deliver one log."""
        self._stats.events_received += 1

        if log.get("removed"):
            self._stats.removed_skipped += 1
            logger.warning(f"Ignoring log removed by reorg: {log.get('transactionHash')}")
            return

        try:
            event = self._decoder.decode(log)
        except EventProcessingError as e:
            self._stats.events_failed += 1
            logger.error(f"Dropping undecodable log: {e}")
            return

        if not self.deduplicator.check_and_mark(event.tx_hash, event.log_index):
            self._stats.duplicates_skipped += 1
            logger.debug(f"Duplicate event {event.tx_hash}:{event.log_index}")
            return

        if self._stats.last_block is None or event.block_number > self._stats.last_block:
            self._stats.last_block = event.block_number

        try:
            meta = await self.token_meta.resolve()
        except Exception as e:
            error = EventProcessingError(f"Token metadata lookup failed for {event.tx_hash}: {e}")
            self._stats.events_failed += 1
            logger.error(str(error))
            return

        try:
            await self._handler(event, meta)
        except Exception as e:
            self._stats.events_failed += 1
            logger.error(f"Purchase handler error for {event.tx_hash}: {e}")
            return

        self._stats.events_delivered += 1
        self._stats.last_event_time = datetime.now(timezone.utc)

    async def _replay_missed(
        self, binding: ContractBinding, decoder: PurchaseEventDecoder
    ) -> None:
        """Replay logs emitted while the previous generation was down.

        Starts at the last seen block (inclusive); the deduplicator drops
        what was already delivered.
        """
        from_block = self._stats.last_block
        try:
            latest = await binding.connection.block_number()
            from_block = max(from_block, latest - self.catch_up_max_blocks)
            if from_block > latest:
                return
            logs = await binding.connection.get_logs(
                {
                    **decoder.log_filter(binding.address),
                    "fromBlock": from_block,
                    "toBlock": latest,
                }
            )
        except Exception as e:
            logger.warning(f"Could not replay missed events from block {from_block}: {e}")
            return

        before = self._stats.events_delivered
        for log in logs:
            await self._process_log(log)
        replayed = self._stats.events_delivered - before
        self._stats.events_replayed += replayed
        if replayed:
            logger.info(f"Replayed {replayed} missed events from blocks {from_block}-{latest}")
