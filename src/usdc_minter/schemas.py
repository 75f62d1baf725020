"""Request and response models for the HTTP surface."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RequestMintBody(BaseModel):
    address: str = Field(min_length=1)


class PaymentInstructions(CamelModel):
    payment_id: str = Field(alias="paymentId")
    payment_address: str = Field(alias="paymentAddress")
    amount: str
    amount_formatted: str = Field(alias="amountFormatted")
    currency: str
    token_address: str = Field(alias="tokenAddress")
    network: str
    chain_id: int = Field(alias="chainId")
    expires_at: int = Field(alias="expiresAt")
    status_url: str = Field(alias="statusUrl")
    instructions: str
    explorer_url: str = Field(alias="explorerUrl")


class PendingResponse(CamelModel):
    has_pending: bool = Field(alias="hasPending")
    payment_id: str | None = Field(default=None, alias="paymentId")
    status: str | None = None
    timestamp: int | None = None


class BalanceResponse(BaseModel):
    address: str
    balance: str
    symbol: str
    mints: str | None = None
    contract: str | None = None
    explorer: str | None = None
    note: str | None = None


class PriceInfo(BaseModel):
    usdc: str
    currency: str


class ContractInfo(BaseModel):
    address: str
    chain: str
    explorer: str


class StatsResponse(CamelModel):
    total_mints: str = Field(alias="totalMints")
    remaining_mints: str = Field(alias="remainingMints")
    max_mints: int = Field(alias="maxMints")
    tokens_per_mint: int = Field(alias="tokensPerMint")
    total_supply: str = Field(alias="totalSupply")
    price: PriceInfo
    contract: ContractInfo
    monitoring: dict[str, Any]
    collected: PriceInfo | None = None
