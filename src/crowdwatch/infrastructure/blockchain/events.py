"""Decoding of sale contract event logs."""

import logging
from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from eth_utils import event_abi_to_log_topic, to_checksum_address

from crowdwatch.core.exceptions import BindingError, EventProcessingError

logger = logging.getLogger(__name__)

# Positional shape of the purchase event, as declared by the sale contract
PURCHASE_EVENT_TYPES = ("address", "address", "uint256", "uint256")


@dataclass(frozen=True)
class PurchaseEvent:
    """A decoded token purchase."""

    purchaser: str
    beneficiary: str
    value: int  # wei
    amount: int  # token base units
    block_number: int
    tx_hash: str
    log_index: int


def _to_bytes(value: Any) -> bytes:
    """Normalize HexBytes / bytes / hex strings to bytes."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def _to_hex(value: Any) -> str:
    """Normalize a hash to a 0x-prefixed lowercase hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value or 0)


class PurchaseEventDecoder:
    """Decodes raw purchase logs using the event's ABI declaration."""

    def __init__(self, event_abi: dict):
        """Initialize decoder.

        Args:
            event_abi: ABI entry of the purchase event

        Raises:
            BindingError: If the event does not have the purchase shape
        """
        inputs = event_abi.get("inputs", [])
        types = tuple(i.get("type") for i in inputs)
        if types != PURCHASE_EVENT_TYPES:
            raise BindingError(
                f"Event {event_abi.get('name')} has shape {types}, "
                f"expected {PURCHASE_EVENT_TYPES}"
            )

        self.event_name = event_abi["name"]
        self.inputs = inputs
        self.topic = "0x" + event_abi_to_log_topic(event_abi).hex()

    def log_filter(self, address: str) -> dict[str, Any]:
        """Build an eth_subscribe / eth_getLogs filter for this event."""
        return {"address": address, "topics": [self.topic]}

    def matches(self, log: dict[str, Any]) -> bool:
        """Check whether a log carries this event's topic."""
        topics = log.get("topics") or []
        return bool(topics) and _to_hex(topics[0]) == self.topic

    def decode(self, log: dict[str, Any]) -> PurchaseEvent:
        """Decode a raw log.

        Args:
            log: Raw log entry (subscription result or eth_getLogs item)

        Returns:
            Decoded purchase event

        Raises:
            EventProcessingError: If the log cannot be decoded
        """
        if not self.matches(log):
            raise EventProcessingError(f"Log is not a {self.event_name} event")

        topics = log["topics"]
        try:
            data = _to_bytes(log.get("data") or b"")
            indexed = [n for n, i in enumerate(self.inputs) if i.get("indexed")]
            plain = [n for n, i in enumerate(self.inputs) if not i.get("indexed")]

            if len(topics) != len(indexed) + 1:
                raise ValueError(
                    f"expected {len(indexed)} indexed topics, got {len(topics) - 1}"
                )

            # Declared order, independent of which inputs are indexed
            values: list[Any] = [None] * len(self.inputs)
            for position, topic in zip(indexed, topics[1:]):
                values[position] = decode(
                    [self.inputs[position]["type"]], _to_bytes(topic)
                )[0]

            if plain:
                decoded = decode([self.inputs[n]["type"] for n in plain], data)
                for position, value in zip(plain, decoded):
                    values[position] = value

            purchaser, beneficiary, value, amount = values
        except Exception as e:
            raise EventProcessingError(f"Failed to decode {self.event_name}: {e}") from e

        return PurchaseEvent(
            purchaser=to_checksum_address(purchaser),
            beneficiary=to_checksum_address(beneficiary),
            value=value,
            amount=amount,
            block_number=_to_int(log.get("blockNumber")),
            tx_hash=_to_hex(log.get("transactionHash", b"")),
            log_index=_to_int(log.get("logIndex")),
        )
