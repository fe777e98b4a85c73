"""Tests for purchase log decoding."""

import pytest

from crowdwatch.core.exceptions import BindingError, EventProcessingError
from crowdwatch.infrastructure.blockchain.contracts import find_event_abi
from crowdwatch.infrastructure.blockchain.events import PurchaseEventDecoder

from conftest import BENEFICIARY_ADDRESS, BUYER_ADDRESS, PURCHASE_TOPIC, SALE_ADDRESS


class TestPurchaseEventDecoder:
    """Tests for PurchaseEventDecoder."""

    @pytest.fixture
    def decoder(self, sale_abi):
        """Decoder for the shipped event declaration."""
        return PurchaseEventDecoder(find_event_abi(sale_abi, "TokensPurchased"))

    def test_topic(self, decoder):
        """Test event topic matches the canonical signature hash."""
        assert decoder.topic == PURCHASE_TOPIC

    def test_log_filter(self, decoder):
        """Test subscription filter is scoped to address and topic."""
        assert decoder.log_filter(SALE_ADDRESS) == {
            "address": SALE_ADDRESS,
            "topics": [PURCHASE_TOPIC],
        }

    def test_decode(self, decoder, purchase_log):
        """Test decoding indexed and data fields."""
        log = purchase_log(value=7, amount=11, block_number=42, log_index=3)
        event = decoder.decode(log)

        assert event.purchaser == BUYER_ADDRESS
        assert event.beneficiary == BENEFICIARY_ADDRESS
        assert event.value == 7
        assert event.amount == 11
        assert event.block_number == 42
        assert event.log_index == 3
        assert event.tx_hash == log["transactionHash"]

    def test_decode_bytes_fields(self, decoder, purchase_log):
        """Test HexBytes-like fields from web3 are accepted."""
        log = purchase_log()
        log["topics"] = [bytes.fromhex(t[2:]) for t in log["topics"]]
        log["data"] = bytes.fromhex(log["data"][2:])
        log["transactionHash"] = bytes.fromhex("ab" * 32)

        event = decoder.decode(log)
        assert event.tx_hash == "0x" + "ab" * 32

    def test_other_topic_rejected(self, decoder, purchase_log):
        """Test logs of other events are not decoded."""
        log = purchase_log()
        log["topics"][0] = "0x" + "00" * 32

        with pytest.raises(EventProcessingError):
            decoder.decode(log)

    def test_truncated_data_rejected(self, decoder, purchase_log):
        """Test malformed payloads raise EventProcessingError."""
        log = purchase_log()
        log["data"] = log["data"][:66]

        with pytest.raises(EventProcessingError):
            decoder.decode(log)

    def test_wrong_shape_rejected(self):
        """Test that a declaration with the wrong shape is a binding error."""
        event_abi = {
            "type": "event",
            "name": "TokensPurchased",
            "inputs": [
                {"indexed": True, "name": "purchaser", "type": "address"},
                {"indexed": False, "name": "value", "type": "uint256"},
            ],
        }
        with pytest.raises(BindingError):
            PurchaseEventDecoder(event_abi)

    def test_unnamed_inputs(self, sale_abi, purchase_log):
        """Test decoding is positional, not by input name."""
        event_abi = find_event_abi(sale_abi, "TokensPurchased")
        unnamed = {**event_abi, "inputs": [{**i, "name": ""} for i in event_abi["inputs"]]}

        event = PurchaseEventDecoder(unnamed).decode(purchase_log(value=5, amount=6))
        assert (event.value, event.amount) == (5, 6)
