"""
HTTP surface for the USDC minter.

Thin FastAPI layer over a PaymentMonitor: request validation, response
shaping and the mapping of service errors onto status codes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from web3 import Web3

from . import __version__
from .monitor import PaymentMonitor, ServiceNotReadyError
from .schemas import (
    BalanceResponse,
    ContractInfo,
    PaymentInstructions,
    PendingResponse,
    PriceInfo,
    RequestMintBody,
    StatsResponse,
)
from .token_client import ContractNotConfiguredError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["mint"])


def get_monitor(request: Request) -> PaymentMonitor:
    return request.app.state.monitor


def _require_address(address: str) -> str:
    if not Web3.is_address(address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid address")
    return address


@router.post("/request-mint", response_model=PaymentInstructions)
async def request_mint(
    body: RequestMintBody,
    request: Request,
    monitor: PaymentMonitor = Depends(get_monitor),
):
    address = _require_address(body.address)
    mint_request = monitor.request_mint(address)

    config = monitor.config
    status_url = request.url_for("payment_status", payment_id=mint_request.payment_id)
    return PaymentInstructions(
        payment_id=mint_request.payment_id,
        payment_address=config.payment.payment_address,
        amount=str(config.payment.amount),
        amount_formatted=config.payment.amount_formatted,
        currency=config.payment.currency,
        token_address=config.chain.usdc_address,
        network=config.chain.network_name,
        chain_id=config.chain.chain_id,
        expires_at=monitor.status.expires_at(mint_request),
        status_url=str(status_url),
        instructions=(
            f"Send {config.payment.amount_formatted} {config.payment.currency} to "
            f"{config.payment.payment_address} from {address}. "
            f"{config.token.tokens_per_mint:,} {config.token.symbol} will be minted automatically."
        ),
        explorer_url=f"{config.chain.explorer_url}/address/{config.payment.payment_address}",
    )


@router.get("/payment-status/{payment_id}", name="payment_status")
async def payment_status(payment_id: str, monitor: PaymentMonitor = Depends(get_monitor)) -> dict[str, Any]:
    return monitor.status.get_status(payment_id)


@router.get("/check-pending/{address}", response_model=PendingResponse, response_model_exclude_none=True)
async def check_pending(address: str, monitor: PaymentMonitor = Depends(get_monitor)):
    _require_address(address)
    return PendingResponse.model_validate(monitor.status.find_pending_by_address(address))


@router.get("/balance/{address}", response_model=BalanceResponse, response_model_exclude_none=True)
async def balance(address: str, monitor: PaymentMonitor = Depends(get_monitor)):
    _require_address(address)
    token = monitor.config.token
    if monitor.token_client is None:
        return BalanceResponse(address=address, balance="0", symbol=token.symbol, note="Contract not deployed")

    client = monitor.token_client
    try:
        raw_balance, mints = await asyncio.gather(client.balance_of(address), client.mints_per_address(address))
    except Exception as e:
        logger.error(f"Failed to fetch balance for {address}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch balance") from e

    explorer = monitor.config.chain.explorer_url
    return BalanceResponse(
        address=address,
        balance=str(Web3.from_wei(raw_balance, "ether")),
        symbol=token.symbol,
        mints=str(mints),
        contract=client.contract_address,
        explorer=f"{explorer}/token/{client.contract_address}?a={address}",
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(monitor: PaymentMonitor = Depends(get_monitor)):
    config = monitor.config
    if not config.is_configured:
        raise ServiceNotReadyError(f"Service not configured (missing: {', '.join(config.missing_settings)})")

    client = monitor.require_token_client()
    try:
        total, remaining = await asyncio.gather(client.total_mints(), client.remaining_mints())
    except Exception as e:
        logger.error(f"Failed to fetch mint stats: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch stats") from e

    collected = None
    if monitor.stablecoin and config.payment.payment_address:
        try:
            raw = await monitor.stablecoin.balance_of(config.payment.payment_address)
            collected = PriceInfo(usdc=config.payment.format_units(raw), currency=config.payment.currency)
        except Exception as e:
            # Optional figure; stats are still served without it
            logger.warning(f"Failed to fetch collected balance: {e}")

    return StatsResponse(
        total_mints=str(total),
        remaining_mints=str(remaining),
        max_mints=config.token.max_mints,
        tokens_per_mint=config.token.tokens_per_mint,
        total_supply=str(total * config.token.tokens_per_mint),
        price=PriceInfo(usdc=config.payment.amount_formatted, currency=config.payment.currency),
        contract=ContractInfo(
            address=client.contract_address,
            chain=config.chain.network_name,
            explorer=f"{config.chain.explorer_url}/address/{client.contract_address}",
        ),
        monitoring={
            "active": monitor.running and monitor.monitoring_enabled,
            "automatic": True,
            **monitor.ledger.get_stats(),
        },
        collected=collected,
    )


@router.get("/info")
async def info(request: Request, monitor: PaymentMonitor = Depends(get_monitor)) -> dict[str, Any]:
    config = monitor.config
    base_url = str(request.base_url).rstrip("/")
    return {
        "service": f"{config.token.name} Token Minting",
        "description": (
            f"Mint {config.token.tokens_per_mint:,} {config.token.name} tokens for "
            f"{config.payment.amount_formatted} {config.payment.currency} on {config.chain.network_name}"
        ),
        "version": __version__,
        "payment": {
            "method": config.payment.currency,
            "chain": config.chain.network_name,
            "chainId": config.chain.chain_id,
            "address": config.payment.payment_address,
            "amount": str(config.payment.amount),
            "tokenAddress": config.chain.usdc_address,
            "tokenSymbol": config.payment.currency,
            "tokenDecimals": config.payment.decimals,
        },
        "mint": {
            "tokensPerMint": str(config.token.tokens_per_mint * 10 ** config.token.decimals),
            "tokensPerMintFormatted": str(config.token.tokens_per_mint),
            "tokenName": config.token.name,
            "tokenSymbol": config.token.symbol,
            "tokenDecimals": config.token.decimals,
            "contractAddress": config.token.contract_address,
            "maxMints": config.token.max_mints,
        },
        "endpoints": {
            "info": f"{base_url}/api/info",
            "requestMint": f"{base_url}/api/request-mint",
            "checkStatus": f"{base_url}/api/payment-status/{{paymentId}}",
            "checkPending": f"{base_url}/api/check-pending/{{address}}",
            "balance": f"{base_url}/api/balance/{{address}}",
            "stats": f"{base_url}/api/stats",
            "health": f"{base_url}/health",
        },
        "instructions": {
            "step1": "Call POST /api/request-mint with your wallet address",
            "step2": f"Send {config.payment.amount_formatted} {config.payment.currency} "
                     "to the payment address provided",
            "step3": "Tokens are minted to the paying wallet automatically",
            "step4": "Check status using the paymentId provided",
        },
        "monitoring": "active" if monitor.running and monitor.monitoring_enabled else "inactive",
    }


def create_app(monitor: PaymentMonitor) -> FastAPI:
    """
    Build the FastAPI application around a monitor.

    The monitor is started and stopped with the application lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await monitor.start()
        yield
        await monitor.stop()

    app = FastAPI(title="USDC Minter", version=__version__, lifespan=lifespan)
    app.state.monitor = monitor

    @app.exception_handler(ServiceNotReadyError)
    async def handle_not_ready(_: Request, exc: ServiceNotReadyError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ContractNotConfiguredError)
    async def handle_no_contract(_: Request, exc: ContractNotConfiguredError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def handle_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": "Invalid request body", "errors": jsonable_encoder(exc.errors())})

    app.include_router(router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, Any]:
        return monitor.health()

    return app
