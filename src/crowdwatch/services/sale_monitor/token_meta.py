"""Lazy lookup of the sold token's symbol and decimals."""

import asyncio
import logging
from typing import Callable

from crowdwatch.infrastructure.blockchain.contracts import ContractBinding, bind
from crowdwatch.services.sale_monitor.formatter import TokenMeta

logger = logging.getLogger(__name__)

BindingProvider = Callable[[], ContractBinding]


class TokenMetaResolver:
    """Resolves TokenMeta through the sale contract's ``token()``.

    The metadata is cached per token address: a different address returned
    by the sale contract invalidates the cache.
    """

    def __init__(self, binding_provider: BindingProvider, token_abi: list[dict]):
        """Initialize resolver.

        Args:
            binding_provider: Returns the current sale contract binding.
                             Called on every lookup, never cached.
            token_abi: ERC-20 metadata ABI
        """
        self._binding_provider = binding_provider
        self.token_abi = token_abi
        self._cached: TokenMeta | None = None

    @property
    def cached(self) -> TokenMeta | None:
        """Last resolved metadata, if any."""
        return self._cached

    def invalidate(self) -> None:
        """Forget cached metadata."""
        self._cached = None

    async def resolve(self) -> TokenMeta:
        """Get metadata of the token currently sold.

        Returns:
            Token metadata

        Raises:
            ChainConnectionError: If no binding is available
            Exception: Any error raised by the underlying contract reads
        """
        sale = self._binding_provider()
        token_address = await sale.call("token")

        cached = self._cached
        if cached is not None and cached.address == token_address:
            return cached
        if cached is not None:
            logger.warning(f"Sale token changed from {cached.address} to {token_address}")

        token = bind(
            token_address,
            self.token_abi,
            sale.connection,
            sale.generation,
            call_timeout=sale.call_timeout,
        )
        symbol, decimals = await asyncio.gather(token.call("symbol"), token.call("decimals"))

        meta = TokenMeta(address=token_address, symbol=symbol, decimals=int(decimals))
        self._cached = meta
        logger.info(f"Resolved token {meta.symbol} at {meta.address} ({meta.decimals} decimals)")
        return meta
