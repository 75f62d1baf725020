"""
Polling-based log listener for blockchain event monitoring.

Every tick re-queries a short trailing window of blocks ending at the chain
head. Overlapping windows deliver the same log more than once; consumers are
expected to deduplicate.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider
from web3.types import FilterParams, LogReceipt


class PollingEventListener:
    """
    Utility for polling contract logs via HTTP RPC.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        topics: list[str | None],
        window_blocks: int = 10,
        request_timeout: int = 30,
        w3: AsyncWeb3 | None = None
    ) -> None:
        """
        Initialize the polling event listener.

        Args:
            rpc_url: HTTP RPC endpoint URL
            contract_address: Address of the contract to monitor
            topics: Topic filter; None matches any value in that position
            window_blocks: Number of trailing blocks re-scanned per poll
            request_timeout: HTTP request timeout in seconds
            w3: Pre-built AsyncWeb3 instance (a new one is created if omitted)
        """
        self.rpc_url = rpc_url
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.topics = topics
        self.window_blocks = window_blocks

        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={'timeout': request_timeout})
        )

        # State tracking
        self.last_head_block: int | None = None
        self.polls_completed = 0
        self.poll_errors = 0
        self.is_running = False

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def poll_for_events(self, callback: Callable[[LogReceipt], Awaitable[Any]]) -> int:
        """
        Query the trailing block window once and hand every log to the callback.

        Errors are logged and swallowed; the next tick tries again.

        Args:
            callback: Async function to call for each log found

        Returns:
            Number of logs delivered
        """
        try:
            current_block = await self.w3.eth.block_number
            from_block = max(0, current_block - self.window_blocks + 1)

            filter_params: FilterParams = {
                'address': self.contract_address,
                'topics': self.topics,
                'fromBlock': from_block,
                'toBlock': current_block,
            }
            logs = await self.w3.eth.get_logs(filter_params)

            if logs:
                self.logger.debug(
                    f"Found {len(logs)} logs in blocks {from_block}-{current_block}"
                )
                for log in logs:
                    await callback(log)

            self.last_head_block = current_block
            self.polls_completed += 1
            return len(logs)

        except Exception as e:
            self.poll_errors += 1
            self.logger.error(f"Error polling for events: {e}")
            return 0

    async def start_polling(
        self,
        callback: Callable[[LogReceipt], Awaitable[Any]],
        interval: int = 15
    ) -> None:
        """
        Poll immediately, then every interval seconds until stopped.

        Args:
            callback: Async function to call for each log found
            interval: Polling interval in seconds
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling on {self.contract_address} every {interval} seconds "
            f"({self.window_blocks}-block window)"
        )

        await self.poll_for_events(callback)

        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await self.poll_for_events(callback)
            except asyncio.CancelledError:
                self.logger.info("Polling cancelled")
                self.is_running = False
                raise

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info(f"Stopping polling on {self.contract_address}")
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the polling listener.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "last_head_block": self.last_head_block,
            "polls_completed": self.polls_completed,
            "poll_errors": self.poll_errors,
            "contract_address": self.contract_address,
            "window_blocks": self.window_blocks,
        }
