"""Contract ABIs and generation-tagged contract bindings.

ABIs are loaded from JSON files (``{"abi": [...]}`` artifacts or bare lists).
A binding couples an address and ABI to one connection generation; it stops
being usable as soon as that connection closes.
"""

import asyncio
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_abi import decode
from eth_utils import to_checksum_address
from web3 import Web3

from crowdwatch.core.exceptions import BindingError, StaleBindingError
from crowdwatch.infrastructure.blockchain.transport import Connection, ConnectionState

logger = logging.getLogger(__name__)

# Offline instance, used for ABI encoding only
_ENCODER = Web3()


class ABILoader:
    """Loads and caches contract ABIs from JSON files."""

    def __init__(self, abi_dir: str | Path):
        """Initialize loader.

        Args:
            abi_dir: Directory holding ``<ContractName>.json`` files
        """
        self.abi_dir = Path(abi_dir)
        self._abis: dict[str, list[dict]] = {}

    def get_abi(self, contract_name: str) -> list[dict]:
        """Get ABI by contract name.

        Args:
            contract_name: File stem (e.g., "Crowdsale")

        Returns:
            Contract ABI as list of dicts

        Raises:
            BindingError: If the file is missing or not an ABI
        """
        if contract_name in self._abis:
            return self._abis[contract_name]

        abi_file = self.abi_dir / f"{contract_name}.json"
        try:
            with open(abi_file, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise BindingError(f"Cannot load ABI {abi_file}: {e}") from e

        abi = data.get("abi", []) if isinstance(data, dict) else data
        validate_abi(abi)

        self._abis[contract_name] = abi
        logger.debug(f"Loaded ABI: {contract_name} ({len(abi)} entries)")
        return abi


@lru_cache(maxsize=4)
def get_abi_loader(abi_dir: str) -> ABILoader:
    """Get a cached ABI loader for a directory."""
    return ABILoader(abi_dir)


def validate_abi(abi: Any) -> None:
    """Check that an ABI descriptor is structurally sound.

    Raises:
        BindingError: If the descriptor is malformed
    """
    if not isinstance(abi, list) or not abi:
        raise BindingError("ABI must be a non-empty list of entries")
    for entry in abi:
        if not isinstance(entry, dict) or "type" not in entry:
            raise BindingError(f"Malformed ABI entry: {entry!r}")


def validate_address(address: Any) -> str:
    """Validate a chain address and return its checksum form.

    Raises:
        BindingError: If the address is not a valid 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise BindingError(f"Invalid contract address: {address!r}")
    return to_checksum_address(address)


def find_event_abi(abi: list[dict], event_name: str) -> dict:
    """Get the ABI entry of an event.

    Raises:
        BindingError: If the ABI does not declare the event
    """
    for item in abi:
        if item.get("type") == "event" and item.get("name") == event_name:
            return item
    raise BindingError(f"Event {event_name} not found in ABI")


def _output_types(func_abi: dict) -> list[str]:
    output_types = []
    for o in func_abi.get("outputs", []):
        if o["type"] == "tuple":
            components = o.get("components", [])
            component_types = ",".join(c["type"] for c in components)
            output_types.append(f"({component_types})")
        else:
            output_types.append(o["type"])
    return output_types


class ContractBinding:
    """Typed view over a deployed contract, tied to one connection generation."""

    def __init__(
        self,
        address: str,
        abi: list[dict],
        connection: Connection,
        generation: int,
        call_timeout: float | None = None,
    ):
        self.address = address
        self.abi = abi
        self.connection = connection
        self.generation = generation
        self.call_timeout = call_timeout
        try:
            self._contract = _ENCODER.eth.contract(address=address, abi=abi)
        except Exception as e:
            raise BindingError(f"Cannot build contract for {address}: {e}") from e

    def __repr__(self) -> str:
        return f"ContractBinding({self.address}, generation={self.generation})"

    @property
    def is_valid(self) -> bool:
        """Check whether the owning connection generation is still open."""
        return (
            self.connection.state == ConnectionState.OPEN
            and self.connection.generation == self.generation
        )

    def ensure_valid(self) -> None:
        """Raise if this binding's generation has ended.

        Raises:
            StaleBindingError: If the connection closed or was replaced
        """
        if not self.is_valid:
            raise StaleBindingError(
                f"Binding for {self.address} belongs to closed generation {self.generation}"
            )

    def event_abi(self, event_name: str) -> dict:
        """Get the ABI entry of an event."""
        return find_event_abi(self.abi, event_name)

    def encode_function_call(self, function_name: str, args: list[Any] | None = None) -> bytes:
        """Encode function call data.

        Args:
            function_name: Name of the function to call
            args: Function arguments

        Returns:
            Encoded function call data
        """
        func = self._contract.get_function_by_name(function_name)
        data = func(*args if args else [])._encode_transaction_data()
        return bytes.fromhex(data[2:]) if isinstance(data, str) else bytes(data)

    def decode_function_result(self, function_name: str, data: bytes) -> Any:
        """Decode function result.

        Args:
            function_name: Name of the function
            data: Raw result data

        Returns:
            Decoded result; addresses come back checksummed
        """
        func_abi = None
        for item in self.abi:
            if item.get("type") == "function" and item.get("name") == function_name:
                func_abi = item
                break

        if not func_abi:
            raise ValueError(f"Function {function_name} not found in ABI")

        output_types = _output_types(func_abi)
        if not output_types:
            return None

        decoded = [
            to_checksum_address(value) if type_ == "address" else value
            for type_, value in zip(output_types, decode(output_types, data))
        ]
        return decoded[0] if len(decoded) == 1 else tuple(decoded)

    async def call(self, function_name: str, *args: Any) -> Any:
        """Call a read-only contract function.

        Args:
            function_name: Function name
            *args: Function arguments

        Returns:
            Decoded function result

        Raises:
            StaleBindingError: If the generation ended before or during the call
            asyncio.TimeoutError: If the node did not answer within call_timeout
        """
        self.ensure_valid()
        data = self.encode_function_call(function_name, list(args))
        pending = self.connection.eth_call({"to": self.address, "data": data})
        if self.call_timeout:
            result = await asyncio.wait_for(pending, timeout=self.call_timeout)
        else:
            result = await pending

        # A reconnect may have happened while we were suspended
        self.ensure_valid()
        return self.decode_function_result(function_name, result)


def bind(
    address: str,
    abi: list[dict],
    connection: Connection,
    generation: int | None = None,
    call_timeout: float | None = None,
) -> ContractBinding:
    """Build a contract binding. No network I/O.

    Args:
        address: Contract address
        abi: Contract ABI
        connection: Connection the binding calls through
        generation: Connection generation (defaults to the connection's own)
        call_timeout: Per-call timeout in seconds

    Returns:
        Contract binding

    Raises:
        BindingError: If the address or ABI is malformed
    """
    checksum_address = validate_address(address)
    validate_abi(abi)
    return ContractBinding(
        checksum_address,
        abi,
        connection,
        connection.generation if generation is None else generation,
        call_timeout=call_timeout,
    )
