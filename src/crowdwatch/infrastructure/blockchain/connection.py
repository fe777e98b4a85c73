"""Chain connection manager with fixed-delay reconnection.

The manager owns the only mutable slot holding the current connection and
the contract binding derived from it. Every successful connect starts a new
generation: the binding is rebuilt and the open handlers (subscriptions) run
again. Transitions all go through ``_transition``.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine

from crowdwatch.core.config import get_settings
from crowdwatch.core.exceptions import ChainConnectionError
from crowdwatch.infrastructure.blockchain.contracts import (
    ContractBinding,
    bind,
    validate_abi,
    validate_address,
)
from crowdwatch.infrastructure.blockchain.transport import (
    Connection,
    open_websocket_connection,
)

logger = logging.getLogger(__name__)


class ManagerState(str, Enum):
    """Connection manager state."""

    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_TRANSITIONS: dict[ManagerState, set[ManagerState]] = {
    ManagerState.CLOSED: {ManagerState.CONNECTING},
    ManagerState.CONNECTING: {
        ManagerState.OPEN,
        ManagerState.RECONNECTING,
        ManagerState.CLOSED,
    },
    ManagerState.OPEN: {ManagerState.RECONNECTING, ManagerState.CLOSED},
    ManagerState.RECONNECTING: {ManagerState.CONNECTING, ManagerState.CLOSED},
}


@dataclass
class ConnectionStats:
    """Statistics for the connection manager."""

    state: ManagerState = ManagerState.CLOSED
    generation: int = 0
    connects: int = 0
    disconnects: int = 0
    failed_attempts: int = 0
    last_close_reason: str = ""
    last_connected_at: datetime | None = None
    last_transition_at: datetime | None = None


ConnectionFactory = Callable[[], Awaitable[Connection]]
OpenHandler = Callable[[ContractBinding], Coroutine[Any, Any, None]]
CloseHandler = Callable[[str], Coroutine[Any, Any, None]]
ErrorHandler = Callable[[Exception], Coroutine[Any, Any, None]]
MessageHandler = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class ConnectionManager:
    """Keeps a contract binding alive over an unreliable transport.

    Features:
    - Explicit state machine (connecting, open, reconnecting, closed)
    - Generation-tagged bindings, rebuilt on every connect
    - Infinite retry with a fixed delay, no backoff growth
    - Ordered delivery of subscription payloads to message handlers
    """

    def __init__(
        self,
        contract_address: str,
        contract_abi: list[dict],
        connection_factory: ConnectionFactory | None = None,
        rpc_url: str | None = None,
        reconnect_delay: float | None = None,
        call_timeout: float | None = None,
    ):
        """Initialize connection manager.

        Args:
            contract_address: Sale contract address
            contract_abi: Sale contract ABI
            connection_factory: Coroutine opening a new connection.
                               If None, opens a WebSocket to rpc_url.
            rpc_url: Node endpoint. If None, uses config.
            reconnect_delay: Seconds between a close and the next attempt.
                            If None, uses config.
            call_timeout: Per-call timeout for bindings. If None, uses config.

        Raises:
            BindingError: If the address or ABI is malformed
        """
        settings = get_settings()
        self.contract_address = validate_address(contract_address)
        validate_abi(contract_abi)
        self.contract_abi = contract_abi

        self.rpc_url = rpc_url or settings.rpc_ws_url
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else settings.reconnect_delay
        )
        self.call_timeout = call_timeout if call_timeout is not None else settings.rpc_call_timeout
        self._factory = connection_factory or (lambda: open_websocket_connection(self.rpc_url))

        # The slot: only this class writes these three
        self._connection: Connection | None = None
        self._binding: ContractBinding | None = None
        self._generation = 0

        self._state = ManagerState.CLOSED
        self._stats = ConnectionStats()
        self._opened = asyncio.Event()
        self._task: asyncio.Task | None = None

        self._open_handlers: list[OpenHandler] = []
        self._close_handlers: list[CloseHandler] = []
        self._error_handlers: list[ErrorHandler] = []
        self._message_handlers: list[MessageHandler] = []

    @property
    def state(self) -> ManagerState:
        """Get current manager state."""
        return self._state

    @property
    def generation(self) -> int:
        """Get the current connection generation."""
        return self._generation

    @property
    def stats(self) -> ConnectionStats:
        """Get connection statistics."""
        self._stats.state = self._state
        self._stats.generation = self._generation
        return self._stats

    def on_open(self, handler: OpenHandler) -> None:
        """Run handler with the fresh binding after every connect."""
        self._open_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        """Run handler with the close reason after every disconnect."""
        self._close_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        """Run handler with the exception that ended a generation."""
        self._error_handlers.append(handler)

    def on_message(self, handler: MessageHandler) -> None:
        """Deliver every subscription payload to handler, in order."""
        self._message_handlers.append(handler)

    def current_binding(self) -> ContractBinding:
        """Get the binding of the current open generation.

        Raises:
            ChainConnectionError: If no generation is open (e.g. mid-reconnect)
        """
        binding = self._binding
        if binding is None or not binding.is_valid:
            raise ChainConnectionError(f"No open chain connection (state={self._state.value})")
        return binding

    async def wait_open(self, timeout: float | None = None) -> ContractBinding:
        """Wait until a generation is open and return its binding."""
        await asyncio.wait_for(self._opened.wait(), timeout=timeout)
        return self.current_binding()

    async def connect(self) -> Connection:
        """Open a new connection.

        Raises:
            ChainConnectionError: If the transport cannot be opened
        """
        try:
            return await self._factory()
        except ChainConnectionError:
            raise
        except Exception as e:
            raise ChainConnectionError(f"Failed to connect to {self.rpc_url}: {e}") from e

    async def start(self) -> None:
        """Start the connection loop."""
        if self._task and not self._task.done():
            logger.warning("Connection manager is already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the loop, cancelling any pending reconnect, and close the connection."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._release("shutdown")
        if self._state != ManagerState.CLOSED:
            self._transition(ManagerState.CLOSED, "shutdown")

    def _transition(self, new_state: ManagerState, reason: str = "") -> None:
        """Single authoritative state transition."""
        old_state = self._state
        if new_state not in _TRANSITIONS[old_state]:
            raise RuntimeError(
                f"Invalid connection transition {old_state.value} -> {new_state.value}"
            )
        self._state = new_state
        self._stats.last_transition_at = datetime.now(timezone.utc)

        log = logger.warning if new_state == ManagerState.RECONNECTING else logger.info
        log(f"Chain connection {old_state.value} -> {new_state.value}: {reason}")

    async def _run(self) -> None:
        """Connect, listen, and reconnect forever."""
        while True:
            self._transition(ManagerState.CONNECTING, self.rpc_url)
            try:
                connection = await self.connect()
                await self._activate(connection)
                await self._listen(connection)
                reason = "subscription stream ended"
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
                if self._connection is None:
                    self._stats.failed_attempts += 1
                await self._notify(self._error_handlers, e)

            await self._release(reason)
            self._transition(ManagerState.RECONNECTING, reason)
            logger.info(f"Reconnecting in {self.reconnect_delay}s")
            await asyncio.sleep(self.reconnect_delay)

    async def _activate(self, connection: Connection) -> None:
        """Install a new generation and run open handlers against it."""
        self._generation += 1
        connection.generation = self._generation
        self._connection = connection
        self._binding = bind(
            self.contract_address,
            self.contract_abi,
            connection,
            self._generation,
            call_timeout=self.call_timeout,
        )

        self._stats.connects += 1
        self._stats.last_connected_at = datetime.now(timezone.utc)
        self._transition(ManagerState.OPEN, f"generation {self._generation}")

        # A failing open handler (e.g. subscribe) ends this generation
        for handler in self._open_handlers:
            await handler(self._binding)
        self._opened.set()

    async def _listen(self, connection: Connection) -> None:
        """Deliver payloads until the transport closes."""
        async for message in connection.messages():
            for handler in self._message_handlers:
                try:
                    await handler(message)
                except Exception as e:
                    logger.error(f"Message handler error: {e}")

    async def _release(self, reason: str) -> None:
        """Tear down the current generation and tell close handlers."""
        self._opened.clear()
        connection, self._connection = self._connection, None
        self._binding = None
        if connection is None and reason == "shutdown":
            return

        if connection is not None:
            await connection.close(reason)
            self._stats.disconnects += 1
        self._stats.last_close_reason = reason
        await self._notify(self._close_handlers, reason)

    async def _notify(self, handlers: list[Callable], arg: Any) -> None:
        for handler in handlers:
            try:
                await handler(arg)
            except Exception as e:
                logger.error(f"Connection callback error: {e}")
