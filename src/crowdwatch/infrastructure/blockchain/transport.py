"""Transport sessions to a blockchain node."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator

from web3 import AsyncWeb3
from web3.providers.persistent import WebSocketProvider
from web3.types import FilterParams, TxParams

from crowdwatch.core.exceptions import ChainConnectionError

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Liveness of a single transport session."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Connection(ABC):
    """A live session to a chain node.

    Starts CONNECTING; only ``open()`` moves it to OPEN. Owned by the
    connection manager. A closed connection is never reopened; the manager
    creates a new one instead.
    """

    def __init__(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.close_reason = ""
        self.generation = 0

    @property
    def is_open(self) -> bool:
        """Check whether the session is usable."""
        return self.state == ConnectionState.OPEN

    def _require_open(self) -> None:
        if not self.is_open:
            raise ChainConnectionError(
                f"Connection generation {self.generation} is {self.state.value}"
            )

    @abstractmethod
    async def eth_call(self, transaction: TxParams) -> bytes:
        """Execute eth_call (read-only contract call)."""
        ...

    @abstractmethod
    async def block_number(self) -> int:
        """Get current block number."""
        ...

    @abstractmethod
    async def get_logs(self, filter_params: FilterParams) -> list[dict[str, Any]]:
        """Get logs matching filter."""
        ...

    @abstractmethod
    async def subscribe_logs(self, filter_params: FilterParams) -> str:
        """Register a logs subscription and return its id."""
        ...

    @abstractmethod
    def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Iterate subscription payloads until the transport closes.

        Ends or raises when the session is lost.
        """
        ...

    @abstractmethod
    async def _connect(self) -> None:
        """Establish the underlying transport. Raises on failure."""
        ...

    @abstractmethod
    async def _disconnect(self) -> None:
        """Release the underlying transport."""
        ...

    async def open(self) -> "Connection":
        """Move from CONNECTING to OPEN.

        Raises:
            ChainConnectionError: If the transport cannot be established
        """
        if self.state != ConnectionState.CONNECTING:
            raise ChainConnectionError(f"Connection is already {self.state.value}")
        try:
            await self._connect()
        except Exception as e:
            self.state = ConnectionState.CLOSED
            self.close_reason = str(e)
            raise ChainConnectionError(f"Failed to open connection: {e}") from e

        self.state = ConnectionState.OPEN
        return self

    async def close(self, reason: str = "") -> None:
        """Close the session. Idempotent."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.close_reason = reason
        try:
            await self._disconnect()
        except Exception as e:
            logger.warning(f"Error while closing connection generation {self.generation}: {e}")


class WebSocketConnection(Connection):
    """Persistent WebSocket session backed by AsyncWeb3."""

    def __init__(self, rpc_url: str):
        """Initialize connection.

        Args:
            rpc_url: ws:// or wss:// endpoint of the node
        """
        super().__init__()
        self.rpc_url = rpc_url
        self._w3: AsyncWeb3 | None = None

    @property
    def web3(self) -> AsyncWeb3:
        """Get the connected Web3 instance."""
        self._require_open()
        return self._w3

    async def _connect(self) -> None:
        # Single attempt; retry pacing belongs to the connection manager
        provider = WebSocketProvider(self.rpc_url, max_connection_retries=1)
        self._w3 = await AsyncWeb3(provider)

    async def eth_call(self, transaction: TxParams) -> bytes:
        """Execute eth_call (read-only contract call)."""
        result = await self.web3.eth.call(transaction)
        return bytes(result)

    async def block_number(self) -> int:
        """Get current block number."""
        return await self.web3.eth.block_number

    async def get_logs(self, filter_params: FilterParams) -> list[dict[str, Any]]:
        """Get logs matching filter."""
        logs = await self.web3.eth.get_logs(filter_params)
        return [dict(log) for log in logs]

    async def subscribe_logs(self, filter_params: FilterParams) -> str:
        """Register a logs subscription and return its id."""
        subscription_id = await self.web3.eth.subscribe("logs", filter_params)
        return str(subscription_id)

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Iterate subscription payloads until the socket closes."""
        async for payload in self.web3.socket.process_subscriptions():
            yield dict(payload)

    async def _disconnect(self) -> None:
        if self._w3 is not None:
            await self._w3.provider.disconnect()
            self._w3 = None


async def open_websocket_connection(rpc_url: str) -> Connection:
    """Open a WebSocket session to the node.

    Args:
        rpc_url: ws:// or wss:// endpoint

    Returns:
        Open connection
    """
    return await WebSocketConnection(rpc_url).open()
