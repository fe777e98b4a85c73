"""Read-only sale status queries."""

import asyncio
import logging
from typing import Any, Callable

from crowdwatch.core.exceptions import QueryError
from crowdwatch.infrastructure.blockchain.contracts import ContractBinding
from crowdwatch.services.sale_monitor.formatter import TokenMeta, format_native, format_units
from crowdwatch.services.sale_monitor.token_meta import TokenMetaResolver
from crowdwatch.services.status.schemas import StatusSnapshot

logger = logging.getLogger(__name__)


class SaleStatusService:
    """On-demand reads of scalar sale state.

    Every accessor reads through the binding current at call time and raises
    QueryError on failure, including mid-reconnect. Sale state is never
    cached; token metadata comes from the resolver's per-address cache.
    """

    def __init__(
        self,
        binding_provider: Callable[[], ContractBinding],
        token_meta: TokenMetaResolver,
    ):
        """Initialize status service.

        Args:
            binding_provider: Returns the current sale contract binding
            token_meta: Token metadata resolver
        """
        self._binding_provider = binding_provider
        self.token_meta = token_meta

    async def _read(self, function_name: str) -> Any:
        try:
            binding = self._binding_provider()
            return await binding.call(function_name)
        except Exception as e:
            logger.warning(f"Sale read {function_name}() failed: {e}")
            raise QueryError(f"Failed to read {function_name}: {e}") from e

    async def _token(self) -> TokenMeta:
        try:
            return await self.token_meta.resolve()
        except Exception as e:
            logger.warning(f"Token metadata lookup failed: {e}")
            raise QueryError(f"Failed to read token metadata: {e}") from e

    async def wei_raised(self) -> str:
        """Amount raised, in native currency units."""
        return format_native(await self._read("weiRaised"))

    async def rate(self) -> str:
        """Conversion rate as stored on chain (token base units per wei)."""
        return str(await self._read("rate"))

    async def remaining_tokens(self) -> str:
        """Tokens left for sale, scaled by the token's decimals."""
        remaining = await self._read("remainingTokens")
        meta = await self._token()
        return format_units(remaining, meta.decimals)

    async def token_symbol(self) -> str:
        """Symbol of the token being sold."""
        return (await self._token()).symbol

    async def token_decimals(self) -> int:
        """Decimals of the token being sold."""
        return (await self._token()).decimals

    async def wallet(self) -> str:
        """Address collecting the sale funds."""
        return await self._read("wallet")

    async def snapshot(self) -> StatusSnapshot:
        """Read every status value.

        Raises:
            QueryError: If any read fails
        """
        meta = await self._token()
        wei_raised, rate, remaining, wallet = await asyncio.gather(
            self._read("weiRaised"),
            self._read("rate"),
            self._read("remainingTokens"),
            self._read("wallet"),
        )
        return StatusSnapshot(
            wei_raised=format_native(wei_raised),
            rate=str(rate),
            remaining_tokens=format_units(remaining, meta.decimals),
            token_symbol=meta.symbol,
            token_decimals=meta.decimals,
            token_address=meta.address,
            wallet=wallet,
        )
