"""
Payment monitor.

This module contains the long-lived service object that owns the ledger,
the chain watcher and the mint dispatcher, and manages their lifecycle.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from .chain_watcher import ChainWatcher
from .config import MinterConfig
from .deduplicator import TransferDeduplicator
from .event_processor import TRANSFER_TOPIC, TransferEventProcessor
from .ledger import RequestLedger
from .matcher import PaymentMatcher
from .mint_dispatcher import MintDispatcher
from .models import MintRequest
from .reporter import MintObserver, MintReporter
from .status import StatusService
from .token_client import ContractNotConfiguredError, StablecoinClient, TokenContractClient
from .utils.contract_utility import ContractUtility
from .utils.event_listener_utility import EventListenerUtility, address_to_topic
from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class ServiceNotReadyError(RuntimeError):
    """Raised when an operation needs configuration the service is missing."""


class PaymentMonitor:
    """
    Payment detection and mint dispatch engine.

    Flow: ChainWatcher -> PaymentMatcher -> MintDispatcher -> RequestLedger,
    read back through StatusService. Without a signer, token contract or
    collection address the monitor runs degraded: status lookups work,
    watching and minting do not.
    """

    STATUS_LOG_INTERVAL = 60  # seconds

    def __init__(
        self,
        config: MinterConfig,
        token_client: TokenContractClient | None = None,
        watcher: ChainWatcher | None = None,
        stablecoin: StablecoinClient | None = None,
        observers: Iterable[MintObserver] = (),
        clock: Callable[[], float] = time.time
    ) -> None:
        """
        Initialize the monitor from already-built collaborators.

        Args:
            config: Service configuration
            token_client: Token contract client (None when no contract is deployed)
            watcher: Chain watcher (None disables payment detection)
            stablecoin: Read-only stablecoin client for the collected balance
            observers: Hooks run after each completed mint
            clock: Returns the current time in Unix seconds
        """
        self.config = config
        self.token_client = token_client
        self.watcher = watcher
        self.stablecoin = stablecoin

        ttl = config.monitoring.request_ttl
        self.ledger = RequestLedger(clock=clock)
        self.status = StatusService(self.ledger, request_ttl=ttl)

        self.dispatcher: MintDispatcher | None = None
        self.matcher: PaymentMatcher | None = None
        if token_client is not None and watcher is not None:
            self.dispatcher = MintDispatcher(
                ledger=self.ledger,
                token_client=token_client,
                observers=observers,
                retry_delay=config.monitoring.retry_delay,
                max_attempts=config.monitoring.max_mint_attempts,
                clock=clock,
            )
            self.matcher = PaymentMatcher(
                ledger=self.ledger,
                enqueue=self.dispatcher.enqueue,
                request_ttl=ttl,
            )

        self.running = False
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: MinterConfig) -> "PaymentMonitor":
        """
        Build the monitor and its chain collaborators from configuration.

        Args:
            config: Service configuration

        Returns:
            Configured PaymentMonitor (degraded if configuration is incomplete)
        """
        contract_util = ContractUtility(
            rpc_url=config.chain.rpc_url,
            secret=config.token.private_key or "",
            request_timeout=config.monitoring.request_timeout,
        )
        stablecoin = StablecoinClient(contract_util, config.chain.usdc_address)

        token_client = None
        if config.token.contract_address:
            token_client = TokenContractClient(
                contract_util=contract_util,
                contract_address=config.token.contract_address,
                receipt_timeout=config.monitoring.receipt_timeout,
            )

        watcher = cls._build_watcher(config) if config.is_configured else None

        observers: list[MintObserver] = []
        if config.reporting.enabled and config.token.contract_address:
            observers.append(MintReporter(
                report_url=config.reporting.report_url,
                service_name=config.reporting.service_name,
                contract_address=config.token.contract_address,
                amount=config.payment.amount_formatted,
                currency=config.payment.currency,
                network="base",
                chain_id=config.chain.chain_id,
                timeout=config.reporting.timeout,
            ))

        return cls(
            config,
            token_client=token_client,
            watcher=watcher,
            stablecoin=stablecoin,
            observers=observers,
        )

    @staticmethod
    def _build_watcher(config: MinterConfig) -> ChainWatcher:
        payment_address = config.payment.payment_address
        if payment_address is None:
            raise ValueError("Payment address is required to watch for transfers")

        # Transfer(from, to, value) with `to` pinned to the collection address
        topics: list[str | None] = [TRANSFER_TOPIC, None, address_to_topic(payment_address)]

        processor = TransferEventProcessor(
            payment_address=payment_address,
            min_amount=config.payment.amount,
            deduplicator=TransferDeduplicator(max_size=config.monitoring.dedupe_window),
        )
        poll_listener = PollingEventListener(
            rpc_url=config.chain.rpc_url,
            contract_address=config.chain.usdc_address,
            topics=topics,
            window_blocks=config.monitoring.poll_window_blocks,
            request_timeout=config.monitoring.request_timeout,
        )
        push_listener = EventListenerUtility(websocket_url=config.chain.ws_url)

        return ChainWatcher(
            processor=processor,
            poll_listener=poll_listener,
            push_listener=push_listener,
            contract_address=config.chain.usdc_address,
            topics=topics,
            polling_interval=config.monitoring.polling_interval,
        )

    @property
    def monitoring_enabled(self) -> bool:
        return self.matcher is not None

    def request_mint(self, user_address: str) -> MintRequest:
        """
        Register a user's intent to pay.

        Args:
            user_address: Address that will pay and receive tokens

        Returns:
            The new request, waiting for payment

        Raises:
            ServiceNotReadyError: If payments are not being monitored
        """
        if not self.monitoring_enabled:
            missing = ", ".join(self.config.missing_settings) or "monitoring components"
            raise ServiceNotReadyError(f"Payment monitoring is not configured (missing: {missing})")

        payment_id = self.ledger.create(user_address)
        return self.ledger[payment_id]

    def require_token_client(self) -> TokenContractClient:
        if self.token_client is None:
            raise ContractNotConfiguredError("Token contract not deployed (CONTRACT_ADDRESS)")
        return self.token_client

    async def _periodic_sweep(self) -> None:
        """Remove aged-out requests on a fixed interval."""
        while True:
            await asyncio.sleep(self.config.monitoring.sweep_interval)
            try:
                self.ledger.sweep_expired(self.config.monitoring.request_ttl)
            except Exception as e:
                logger.error(f"Error sweeping expired requests: {e}", exc_info=True)

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while True:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            stats = self.ledger.get_stats()
            if stats["total"] > 0:
                logger.info(
                    f"Status: {stats['waiting_for_payment']} waiting, "
                    f"{stats['payment_received'] + stats['minting']} minting, "
                    f"{stats['completed']} completed, {stats['mint_failed']} failed"
                )
            if self.watcher:
                self.watcher.processor.log_metrics()

    async def start(self) -> None:
        """Start watching for payments and dispatching mints."""
        if self.running:
            logger.warning("PaymentMonitor already running")
            return

        self.running = True
        self._tasks["sweep"] = asyncio.create_task(self._periodic_sweep(), name="request-sweep")

        if not self.monitoring_enabled:
            logger.warning(
                "Payment monitoring INACTIVE "
                f"(missing: {', '.join(self.config.missing_settings) or 'components'})"
            )
            return

        if self.dispatcher is None or self.matcher is None or self.watcher is None:
            raise RuntimeError("Monitoring enabled without a dispatcher, matcher and watcher")
        self.dispatcher.start()
        self.watcher.start(self.matcher.handle_transfer)
        self._tasks["status"] = asyncio.create_task(self._periodic_status_logger(), name="status-logger")

        logger.info("🔍 USDC payment monitoring active")
        logger.info(f"📍 Monitoring address: {self.config.payment.payment_address}")

    async def stop(self) -> None:
        """Stop all background work."""
        if not self.running:
            return
        logger.info("Shutting down PaymentMonitor...")

        if self.watcher:
            await self.watcher.stop()
        if self.dispatcher:
            await self.dispatcher.stop()

        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
        self._tasks.clear()

        self.running = False
        logger.info("PaymentMonitor stopped")

    def health(self) -> dict[str, Any]:
        """Liveness plus a configuration summary."""
        return {
            "status": "healthy",
            "timestamp": int(time.time() * 1000),
            "monitoring": "active" if self.running and self.monitoring_enabled else "inactive",
            "contract": "deployed" if self.config.token.contract_address else "not deployed",
            "missing": self.config.missing_settings,
            "requests": self.ledger.get_stats(),
            "watcher": self.watcher.get_status() if self.watcher else None,
            "dispatcher": self.dispatcher.get_stats() if self.dispatcher else None,
        }
