"""Sale status schemas."""

from pydantic import BaseModel, Field


class StatusSnapshot(BaseModel):
    """Point-in-time sale state read from chain."""

    wei_raised: str = Field(..., description="Native currency raised (decimal string)")
    rate: str = Field(..., description="Token base units per wei (raw integer string)")
    remaining_tokens: str = Field(..., description="Tokens left for sale (decimal string)")
    token_symbol: str = Field(..., description="Token symbol")
    token_decimals: int = Field(..., ge=0, description="Token decimals")
    token_address: str = Field(..., description="Token contract address")
    wallet: str = Field(..., description="Wallet collecting the funds")
