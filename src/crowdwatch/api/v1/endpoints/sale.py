"""Sale status API endpoints.

Read-only views over the sale contract, read on demand through the current
chain binding. Reads fail with 503 while the connection is down.
"""

import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from crowdwatch.api.v1.deps import Monitor
from crowdwatch.core.exceptions import QueryError
from crowdwatch.services.sale_monitor import format_status
from crowdwatch.services.status import StatusSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sale", tags=["Sale"])

T = TypeVar("T")


# Response models
class SaleStatusResponse(BaseModel):
    """Sale snapshot with its human-readable summary."""

    status: StatusSnapshot = Field(..., description="Sale state read from chain")
    text: str = Field(..., description="Formatted status summary")


class RemainingTokensResponse(BaseModel):
    """Tokens left for sale."""

    remaining_tokens: str = Field(..., description="Decimal string in token units")


class RateResponse(BaseModel):
    """Conversion rate."""

    rate: str = Field(..., description="Token base units per wei, raw integer string")


class WalletResponse(BaseModel):
    """Funds wallet."""

    wallet: str = Field(..., description="Address collecting the sale funds")


class WeiRaisedResponse(BaseModel):
    """Amount raised."""

    wei_raised: str = Field(..., description="Decimal string in native currency units")


class PurchaseGuideResponse(BaseModel):
    """Result of publishing the purchase guide."""

    queued: bool = Field(..., description="False if the notification queue was full")


async def _query(read: Awaitable[T]) -> T:
    try:
        return await read
    except QueryError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e


@router.get("/status", response_model=SaleStatusResponse)
async def get_sale_status(monitor: Monitor) -> SaleStatusResponse:
    """Get the full sale status.

    Returns:
        Snapshot of raised amount, rate, remaining supply, token and wallet
    """
    snapshot = await _query(monitor.status.snapshot())
    message = format_status(
        remaining_tokens=snapshot.remaining_tokens,
        wei_raised=snapshot.wei_raised,
        rate=snapshot.rate,
        symbol=snapshot.token_symbol,
        native_symbol=monitor.settings.native_currency_symbol,
    )
    return SaleStatusResponse(status=snapshot, text=message.text)


@router.get("/remaining-tokens", response_model=RemainingTokensResponse)
async def get_remaining_tokens(monitor: Monitor) -> RemainingTokensResponse:
    """Get tokens left for sale."""
    return RemainingTokensResponse(
        remaining_tokens=await _query(monitor.status.remaining_tokens())
    )


@router.get("/rate", response_model=RateResponse)
async def get_rate(monitor: Monitor) -> RateResponse:
    """Get the conversion rate as stored on chain."""
    return RateResponse(rate=await _query(monitor.status.rate()))


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(monitor: Monitor) -> WalletResponse:
    """Get the wallet collecting the funds."""
    return WalletResponse(wallet=await _query(monitor.status.wallet()))


@router.get("/weiraised", response_model=WeiRaisedResponse)
async def get_wei_raised(monitor: Monitor) -> WeiRaisedResponse:
    """Get the amount raised so far."""
    return WeiRaisedResponse(wei_raised=await _query(monitor.status.wei_raised()))


@router.post("/purchase-guide", response_model=PurchaseGuideResponse)
async def publish_purchase_guide(monitor: Monitor) -> PurchaseGuideResponse:
    """Send the how-to-buy guide to the notification channel."""
    queued = monitor.publish_purchase_guide()
    if not queued:
        logger.warning("Purchase guide not queued")
    return PurchaseGuideResponse(queued=queued)
