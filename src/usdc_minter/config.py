#!/usr/bin/env python3
"""Configuration management for the USDC minter.

This module provides type-safe configuration dataclasses with validation
for the payment monitor and HTTP service. Configuration is loaded from
environment variables with sensible defaults where appropriate.

Missing signer key, token contract or collection address is not an error:
the service starts in degraded mode with monitoring disabled. Values that
are present but malformed raise ValueError.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

BASE_MAINNET_CHAIN_ID = 8453
BASE_USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
DEFAULT_REPORT_URL = "https://x402scan.com/api/report"


def _checksum_optional(value: str | None, label: str) -> str | None:
    """Validate and checksum an optional address, returning None when unset."""
    if not value:
        return None
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label}: {value}")
    return Web3.to_checksum_address(value)


def _convert_to_websocket_url(http_url: str) -> str:
    """Convert HTTP RPC URL to WebSocket URL."""
    if http_url.startswith("https://"):
        return http_url.replace("https://", "wss://", 1)
    if http_url.startswith("http://"):
        return http_url.replace("http://", "ws://", 1)
    return http_url


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the chain being monitored.

    Attributes:
        rpc_url: HTTP(S) RPC endpoint
        ws_url: WebSocket RPC endpoint for the push path (derived if empty)
        chain_id: Chain ID reported in payment instructions
        usdc_address: Checksummed stablecoin contract address
        network_name: Human-readable network name
        explorer_url: Block explorer base URL
    """

    rpc_url: str
    ws_url: str = ""
    chain_id: int = BASE_MAINNET_CHAIN_ID
    usdc_address: str = BASE_USDC_ADDRESS
    network_name: str = "Base Mainnet"
    explorer_url: str = "https://basescan.org"

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (BASE_RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        ws_url = self.ws_url or _convert_to_websocket_url(self.rpc_url)
        if urlparse(ws_url).scheme not in ('ws', 'wss'):
            raise ValueError(f"Invalid WebSocket URL: {ws_url}")
        object.__setattr__(self, 'ws_url', ws_url)

        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")

        usdc = _checksum_optional(self.usdc_address, "USDC contract address")
        if usdc is None:
            raise ValueError("USDC contract address is required (USDC_ADDRESS)")
        object.__setattr__(self, 'usdc_address', usdc)


@dataclass(frozen=True, slots=True)
class PaymentConfig:
    """What a user has to pay, and where.

    Attributes:
        payment_address: Collection address (None in degraded mode)
        amount: Required payment in stablecoin base units
        decimals: Stablecoin decimals
        currency: Stablecoin symbol
    """

    payment_address: str | None = None
    amount: int = 1_000_000
    decimals: int = 6
    currency: str = "USDC"

    def __post_init__(self) -> None:
        """Validate payment configuration."""
        object.__setattr__(
            self,
            'payment_address',
            _checksum_optional(self.payment_address, "payment address"),
        )
        if self.amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {self.amount}")
        if not 0 <= self.decimals <= 36:
            raise ValueError(f"Invalid token decimals: {self.decimals}")

    @property
    def amount_formatted(self) -> str:
        """Payment amount as a decimal string, e.g. '1.00'."""
        return self.format_units(self.amount)

    def format_units(self, value: int) -> str:
        """Format stablecoin base units with two decimals, rounding down."""
        whole, frac = divmod(value, 10 ** self.decimals)
        cents = frac * 100 // (10 ** self.decimals) if self.decimals else 0
        return f"{whole}.{cents:02d}"


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """Configuration for the token mint contract and its owner signer.

    Attributes:
        contract_address: Checksummed token contract (None in degraded mode)
        private_key: Owner key used to sign mintTo transactions
        name: Token name
        symbol: Token symbol
        decimals: Token decimals
        tokens_per_mint: Whole tokens minted per call
        max_mints: Mint cap enforced by the contract
    """

    contract_address: str | None = None
    private_key: str | None = field(default=None, repr=False)
    name: str = "x402rocks"
    symbol: str = "X402"
    decimals: int = 18
    tokens_per_mint: int = 50_000
    max_mints: int = 40_000

    def __post_init__(self) -> None:
        """Validate token configuration."""
        object.__setattr__(
            self,
            'contract_address',
            _checksum_optional(self.contract_address, "token contract address"),
        )

        if self.private_key:
            # Basic private key validation (should be 64 hex chars, optionally with 0x prefix)
            key = self.private_key.removeprefix('0x')

            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )

            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for payment monitoring and mint dispatch."""
    polling_interval: int = 15  # seconds between poll ticks
    poll_window_blocks: int = 10  # trailing blocks re-scanned per tick
    request_ttl: int = 1800  # seconds before a request reads as expired
    sweep_interval: float = 300  # seconds between expiry sweeps
    retry_delay: int = 30  # seconds before a failed mint is re-enqueued
    max_mint_attempts: int = 3
    dedupe_window: int = 1000
    request_timeout: int = 30  # HTTP request timeout in seconds
    receipt_timeout: int = 120  # seconds to wait for a mint receipt

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        # Low-tier RPC providers cap eth_getLogs ranges
        if self.poll_window_blocks <= 0:
            raise ValueError(f"Poll window must be positive, got {self.poll_window_blocks}")
        if self.poll_window_blocks > 1000:
            raise ValueError(f"Poll window too large (max 1000), got {self.poll_window_blocks}")

        if self.request_ttl <= 0:
            raise ValueError(f"Request TTL must be positive, got {self.request_ttl}")
        if self.sweep_interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {self.sweep_interval}")
        if self.retry_delay < 0:
            raise ValueError(f"Retry delay must be non-negative, got {self.retry_delay}")

        # A failed mint is always retried at least once
        if self.max_mint_attempts < 2:
            raise ValueError(f"Max mint attempts must be at least 2, got {self.max_mint_attempts}")
        if self.max_mint_attempts > 10:
            raise ValueError(f"Max mint attempts too high (max 10), got {self.max_mint_attempts}")

        if self.dedupe_window <= 0:
            raise ValueError(f"Dedupe window must be positive, got {self.dedupe_window}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.receipt_timeout <= 0:
            raise ValueError(f"Receipt timeout must be positive, got {self.receipt_timeout}")


@dataclass(frozen=True, slots=True)
class ReportingConfig:
    """Best-effort reporting of completed mints to an external indexer."""
    report_url: str = DEFAULT_REPORT_URL
    service_name: str = "x402rocks-automatic"
    timeout: float = 10.0

    def __post_init__(self) -> None:
        """Validate reporting configuration."""
        if self.report_url and urlparse(self.report_url).scheme not in ('http', 'https'):
            raise ValueError(f"Invalid report URL: {self.report_url}")

    @property
    def enabled(self) -> bool:
        return bool(self.report_url)


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """HTTP server bind settings."""
    host: str = "0.0.0.0"
    port: int = 3000

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")


@dataclass(frozen=True, slots=True)
class MinterConfig:
    """Main configuration for the USDC minter.

    Attributes:
        chain: Monitored chain and stablecoin
        payment: Collection address and price
        token: Token contract and signer
        monitoring: Watcher, dispatcher and expiry timings
        reporting: External reporting hook
        server: HTTP bind settings
    """

    chain: ChainConfig
    payment: PaymentConfig = field(default_factory=PaymentConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def missing_settings(self) -> list[str]:
        """Names of the environment variables monitoring still needs."""
        missing = []
        if not self.token.private_key:
            missing.append("PRIVATE_KEY")
        if not self.token.contract_address:
            missing.append("CONTRACT_ADDRESS")
        if not self.payment.payment_address:
            missing.append("USDC_PAYMENT_ADDRESS")
        return missing

    @property
    def is_configured(self) -> bool:
        """True when payments can be watched and mints signed."""
        return not self.missing_settings

    @classmethod
    def from_env(cls) -> "MinterConfig":
        """Load configuration from environment variables.

        Returns:
            MinterConfig instance with loaded values

        Raises:
            ValueError: If environment variables are present but invalid
        """
        def env_int(name: str, default: int) -> int:
            raw = os.environ.get(name, "")
            try:
                return int(raw) if raw else default
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        chain_config = ChainConfig(
            rpc_url=os.environ.get("BASE_RPC_URL", "https://mainnet.base.org"),
            ws_url=os.environ.get("BASE_WS_URL", ""),
            chain_id=env_int("CHAIN_ID", BASE_MAINNET_CHAIN_ID),
            usdc_address=os.environ.get("USDC_ADDRESS", BASE_USDC_ADDRESS),
        )

        payment_config = PaymentConfig(
            payment_address=os.environ.get("USDC_PAYMENT_ADDRESS") or None,
            amount=env_int("PAYMENT_AMOUNT", 1_000_000),
        )

        token_config = TokenConfig(
            contract_address=os.environ.get("CONTRACT_ADDRESS") or None,
            private_key=os.environ.get("PRIVATE_KEY") or None,
        )

        monitoring_config = MonitoringConfig(
            polling_interval=env_int("POLLING_INTERVAL", 15),
            poll_window_blocks=env_int("POLL_WINDOW_BLOCKS", 10),
            request_ttl=env_int("REQUEST_TTL", 1800),
            sweep_interval=env_int("SWEEP_INTERVAL", 300),
            retry_delay=env_int("MINT_RETRY_DELAY", 30),
            max_mint_attempts=env_int("MINT_MAX_ATTEMPTS", 3),
            dedupe_window=env_int("DEDUPE_WINDOW", 1000),
            receipt_timeout=env_int("RECEIPT_TIMEOUT", 120),
        )

        reporting_config = ReportingConfig(
            report_url=os.environ.get("X402_SCAN_REPORT_URL", DEFAULT_REPORT_URL),
        )

        server_config = ServerConfig(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=env_int("PORT", 3000),
        )

        return cls(
            chain=chain_config,
            payment=payment_config,
            token=token_config,
            monitoring=monitoring_config,
            reporting=reporting_config,
            server=server_config,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("USDC Minter Configuration")
        logger.info("=" * 60)

        logger.info(f"Chain: {self.chain.network_name} ({self.chain.chain_id})")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  WebSocket URL: {self.chain.ws_url}")
        logger.info(f"  USDC: {self.chain.usdc_address}")

        logger.info("Payment:")
        logger.info(f"  Collection Address: {self.payment.payment_address or '[NOT SET]'}")
        logger.info(f"  Price: {self.payment.amount_formatted} {self.payment.currency} ({self.payment.amount} units)")

        logger.info("Token:")
        logger.info(f"  Contract: {self.token.contract_address or '[NOT DEPLOYED]'}")
        logger.info(f"  Signer Key: {'[CONFIGURED]' if self.token.private_key else '[NOT SET]'}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Poll Window: {self.monitoring.poll_window_blocks} blocks")
        logger.info(f"  Request TTL: {self.monitoring.request_ttl} seconds")
        logger.info(f"  Mint Retries: {self.monitoring.max_mint_attempts} attempts, {self.monitoring.retry_delay}s apart")

        logger.info(f"Reporting: {self.reporting.report_url or '[DISABLED]'}")
        logger.info(f"Monitoring: {'ACTIVE' if self.is_configured else 'INACTIVE'}")
        if not self.is_configured:
            logger.warning(f"  Missing: {', '.join(self.missing_settings)}")

        logger.info("=" * 60)
