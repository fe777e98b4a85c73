"""Pytest configuration and fixtures.

Provides an in-memory chain node that speaks the transport interface the
connection manager uses, so the whole watcher can run without a network.
"""

import asyncio
import itertools
from typing import Any

import pytest
from eth_abi import encode
from eth_utils import to_checksum_address
from web3 import Web3

from crowdwatch.core.config import DEFAULT_ABI_DIR, Settings
from crowdwatch.infrastructure.blockchain.contracts import get_abi_loader
from crowdwatch.infrastructure.blockchain.transport import Connection
from crowdwatch.services.notifications import NotificationDispatcher, NotificationSender

SALE_ADDRESS = to_checksum_address("0x" + "5a" * 20)
TOKEN_ADDRESS = to_checksum_address("0x" + "7b" * 20)
WALLET_ADDRESS = to_checksum_address("0x" + "c3" * 20)
BUYER_ADDRESS = to_checksum_address("0x" + "01" * 20)
BENEFICIARY_ADDRESS = to_checksum_address("0x" + "02" * 20)

PURCHASE_TOPIC = "0x" + bytes(
    Web3.keccak(text="TokensPurchased(address,address,uint256,uint256)")
).hex()


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


class FakeConnection(Connection):
    """One session to the fake node. Payloads are pushed by the test."""

    def __init__(self, node: "FakeNode"):
        super().__init__()
        self.node = node
        self.subscriptions: list[str] = []
        self.filters: list[dict] = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def _connect(self) -> None:
        if self.node.fail_open:
            raise OSError("handshake failed")

    async def eth_call(self, transaction):
        self._require_open()
        data = bytes(transaction["data"])
        return self.node.answer(transaction["to"], data[:4])

    async def block_number(self) -> int:
        self._require_open()
        return self.node.block_number

    async def get_logs(self, filter_params) -> list[dict[str, Any]]:
        self._require_open()
        self.node.get_logs_calls.append(filter_params)
        return [
            log
            for log in self.node.logs
            if filter_params["fromBlock"] <= log["blockNumber"] <= filter_params["toBlock"]
        ]

    async def subscribe_logs(self, filter_params) -> str:
        self._require_open()
        if self.node.fail_subscribe:
            raise RuntimeError("subscription rejected")
        subscription_id = f"0xsub{next(self.node.ids)}"
        self.subscriptions.append(subscription_id)
        self.filters.append(filter_params)
        return subscription_id

    async def messages(self):
        while True:
            payload = await self._inbox.get()
            if payload is None:
                return
            yield payload

    def push(self, log: dict[str, Any], subscription_id: str | None = None) -> None:
        """Deliver a log on a subscription (the latest one by default)."""
        self._inbox.put_nowait(
            {"subscription": subscription_id or self.subscriptions[-1], "result": log}
        )

    def drop(self) -> None:
        """Simulate the node closing the socket."""
        self._inbox.put_nowait(None)

    async def _disconnect(self) -> None:
        self._inbox.put_nowait(None)


class FakeNode:
    """In-memory chain state plus a connection factory."""

    def __init__(self):
        self.ids = itertools.count(1)
        self.connections: list[FakeConnection] = []
        self.connect_failures = 0
        self.fail_subscribe = False
        self.fail_open = False
        self.failing_calls: set[str] = set()
        self.block_number = 100
        self.logs: list[dict[str, Any]] = []
        self.get_logs_calls: list[dict] = []

        self.token_address = TOKEN_ADDRESS
        self.symbol = "TKN"
        self.decimals = 6
        self.wei_raised = 1500000000000000000
        self.rate = 200
        self.remaining_tokens = 250000000000
        self.wallet = WALLET_ADDRESS

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]

    def open(self, generation: int = 0) -> FakeConnection:
        """Open a connection synchronously, for fixtures.

        The fake transport never suspends, so its ``open()`` coroutine
        completes on the first step.
        """
        connection = FakeConnection(self)
        connection.generation = generation
        opening = connection.open()
        try:
            opening.send(None)
        except StopIteration:
            pass
        else:
            opening.close()
            raise RuntimeError("fake connection suspended while opening")
        self.connections.append(connection)
        return connection

    async def connect(self) -> FakeConnection:
        if self.connect_failures:
            self.connect_failures -= 1
            raise ConnectionRefusedError("node unreachable")
        connection = await FakeConnection(self).open()
        self.connections.append(connection)
        return connection

    def answer(self, to: str, selector: bytes) -> bytes:
        token = to_checksum_address(self.token_address)
        answers = {
            (SALE_ADDRESS, _selector("token()")): ("token", ["address"], self.token_address),
            (SALE_ADDRESS, _selector("weiRaised()")): ("weiRaised", ["uint256"], self.wei_raised),
            (SALE_ADDRESS, _selector("rate()")): ("rate", ["uint256"], self.rate),
            (SALE_ADDRESS, _selector("remainingTokens()")): (
                "remainingTokens",
                ["uint256"],
                self.remaining_tokens,
            ),
            (SALE_ADDRESS, _selector("wallet()")): ("wallet", ["address"], self.wallet),
            (token, _selector("symbol()")): ("symbol", ["string"], self.symbol),
            (token, _selector("decimals()")): ("decimals", ["uint8"], self.decimals),
        }
        name, types, value = answers[(to_checksum_address(to), selector)]
        if name in self.failing_calls:
            raise RuntimeError("execution reverted")
        return encode(types, [value])


def make_purchase_log(
    value: int = 500000000000000000,
    amount: int = 100000000,
    purchaser: str = BUYER_ADDRESS,
    beneficiary: str = BENEFICIARY_ADDRESS,
    block_number: int = 100,
    log_index: int = 0,
    tx_hash: str | None = None,
    removed: bool = False,
) -> dict[str, Any]:
    """Build a raw TokensPurchased log as a node would send it."""
    return {
        "address": SALE_ADDRESS,
        "topics": [
            PURCHASE_TOPIC,
            "0x" + encode(["address"], [purchaser]).hex(),
            "0x" + encode(["address"], [beneficiary]).hex(),
        ],
        "data": "0x" + encode(["uint256", "uint256"], [value, amount]).hex(),
        "blockNumber": block_number,
        "transactionHash": tx_hash or "0x" + format(block_number * 1000 + log_index, "064x"),
        "logIndex": log_index,
        "removed": removed,
    }


class RecordingSender(NotificationSender):
    """Keeps sent messages in memory."""

    channel = "memory"

    def __init__(self):
        self.sent: list[str] = []
        self.fail = False
        self.closed = False

    async def send(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("channel unavailable")
        self.sent.append(text)

    async def close(self) -> None:
        self.closed = True


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def settings():
    """Create settings instance for testing."""
    return Settings(
        environment="testing",
        contract_address=SALE_ADDRESS,
        rpc_ws_url="ws://fake-node",
        reconnect_delay=0,
        rpc_call_timeout=1.0,
        telegram_bot_token=None,
        telegram_chat_id=None,
    )


@pytest.fixture
def sale_abi():
    """Shipped sale contract ABI."""
    return get_abi_loader(str(DEFAULT_ABI_DIR)).get_abi("Crowdsale")


@pytest.fixture
def token_abi():
    """Shipped ERC-20 metadata ABI."""
    return get_abi_loader(str(DEFAULT_ABI_DIR)).get_abi("IERC20Metadata")


@pytest.fixture
def node():
    """Fresh in-memory chain node."""
    return FakeNode()


@pytest.fixture
def purchase_log():
    """Factory for raw purchase logs."""
    return make_purchase_log


@pytest.fixture
def wait_until():
    """Poll a condition inside the running loop."""
    return _wait_until


@pytest.fixture
def sender():
    """In-memory notification sender."""
    return RecordingSender()


@pytest.fixture
def dispatcher(sender):
    """Dispatcher delivering to the in-memory sender."""
    return NotificationDispatcher(sender, max_queue_size=10)
