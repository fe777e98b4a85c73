"""Blockchain infrastructure module."""

from crowdwatch.infrastructure.blockchain.connection import (
    ConnectionManager,
    ConnectionStats,
    ManagerState,
)
from crowdwatch.infrastructure.blockchain.contracts import (
    ABILoader,
    ContractBinding,
    bind,
    get_abi_loader,
)
from crowdwatch.infrastructure.blockchain.events import PurchaseEvent, PurchaseEventDecoder
from crowdwatch.infrastructure.blockchain.transport import (
    Connection,
    ConnectionState,
    WebSocketConnection,
    open_websocket_connection,
)

__all__ = [
    # Transport
    "Connection",
    "ConnectionState",
    "WebSocketConnection",
    "open_websocket_connection",
    # Connection manager
    "ConnectionManager",
    "ConnectionStats",
    "ManagerState",
    # Contracts
    "ABILoader",
    "ContractBinding",
    "bind",
    "get_abi_loader",
    # Events
    "PurchaseEvent",
    "PurchaseEventDecoder",
]
