"""
Event Listener Utility for real-time blockchain log monitoring.

Provides WebSocket-based log subscriptions with automatic reconnection.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import ProviderConnectionError
from web3.providers import WebSocketProvider
from web3.utils.subscriptions import LogsSubscription, LogsSubscriptionContext


class ConnectionState(Enum):
    """Connection state for event listener."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class EventListenerUtility:
    """
    Utility for listening to contract logs via WebSocket.

    Features:
    - eth_subscribe log subscription filtered by address and topics
    - Automatic reconnection with exponential backoff
    """

    def __init__(
        self,
        websocket_url: str,
        max_retries: int = 5,
        request_timeout: int = 60
    ) -> None:
        """
        Initialize the EventListenerUtility.

        Args:
            websocket_url: WebSocket RPC endpoint URL
            max_retries: Maximum consecutive failed connection attempts
            request_timeout: WebSocket request timeout in seconds
        """
        self.websocket_url = websocket_url
        self.max_retries = max_retries
        self.request_timeout = request_timeout

        # Connection state
        self.connection_state = ConnectionState.DISCONNECTED
        self.async_w3: AsyncWeb3 | None = None
        self.is_running = False

        # Event processing
        self.event_callback: Callable[[dict[str, Any]], Awaitable[Any]] | None = None

        # Retry configuration
        self.base_delay = 1
        self.max_delay = 60

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def listen_for_logs(
        self,
        contract_address: str,
        topics: list[str | None],
        callback: Callable[[dict[str, Any]], Awaitable[Any]],
        label: str = "logs"
    ) -> None:
        """
        Main entry point for WebSocket log listening.

        Runs until stop() is called or reconnection attempts are exhausted.

        Args:
            contract_address: Address of the contract emitting the logs
            topics: Topic filter; None matches any value in that position
            callback: Async function called with each log as a dict
            label: Subscription label used in log output

        Raises:
            ConnectionError: If the connection fails max_retries times in a row
        """
        self.event_callback = callback
        self.is_running = True
        self.logger.info(f"Starting WebSocket listener for {label}")

        await self._websocket_listener(contract_address, topics, label)

    async def _websocket_listener(
        self,
        contract_address: str,
        topics: list[str | None],
        label: str
    ) -> None:
        """WebSocket log subscription with reconnection."""
        retry_count = 0

        while self.is_running:
            try:
                self.connection_state = ConnectionState.CONNECTING
                self.logger.info(f"Connecting to WebSocket: {self.websocket_url}")

                async with AsyncWeb3(
                    WebSocketProvider(
                        self.websocket_url,
                        request_timeout=self.request_timeout,
                        subscription_response_queue_size=10000,
                    )
                ) as w3:
                    self.async_w3 = w3
                    self.connection_state = ConnectionState.CONNECTED
                    retry_count = 0
                    self.logger.info("WebSocket connected successfully")

                    logs_subscription = LogsSubscription(
                        label=f"{label}-subscription",
                        address=Web3.to_checksum_address(contract_address),
                        topics=topics,
                        handler=self._log_handler,
                    )

                    self.logger.info(f"Subscribing to {label} on {contract_address}")
                    await w3.subscription_manager.subscribe([logs_subscription])

                    # Handle subscriptions until the connection drops
                    await w3.subscription_manager.handle_subscriptions()

            except (ConnectionError, OSError, ProviderConnectionError) as e:
                if not self.is_running:
                    break

                retry_count += 1
                delay = min(self.base_delay * (2 ** retry_count), self.max_delay)

                self.logger.warning(
                    f"WebSocket connection failed (attempt {retry_count}/{self.max_retries}): {e}"
                )

                if retry_count < self.max_retries:
                    self.logger.info(f"Retrying in {delay} seconds...")
                    self.connection_state = ConnectionState.RECONNECTING
                    await asyncio.sleep(delay)
                else:
                    self.logger.error("Max WebSocket retries reached")
                    self.connection_state = ConnectionState.FAILED
                    raise ConnectionError(
                        f"WebSocket subscription failed after {retry_count} attempts"
                    ) from e
            finally:
                self.async_w3 = None

        self.connection_state = ConnectionState.DISCONNECTED

    async def _log_handler(self, handler_context: LogsSubscriptionContext) -> None:
        """
        Handler for LogsSubscription results.

        Args:
            handler_context: Context containing the log receipt
        """
        try:
            log_receipt = handler_context.result

            if hasattr(log_receipt, 'get') and callable(log_receipt.get):
                read = log_receipt.get
            else:
                def read(key: str, default: Any = None) -> Any:
                    return getattr(log_receipt, key, default)

            event_data = {
                'address': read('address'),
                'blockHash': read('blockHash'),
                'blockNumber': coerce_int(read('blockNumber', 0)),
                'data': read('data'),
                'logIndex': coerce_int(read('logIndex', 0)),
                'topics': read('topics', []),
                'transactionHash': read('transactionHash'),
                'transactionIndex': coerce_int(read('transactionIndex', 0)),
                'removed': read('removed', False),
            }

            if event_data['removed']:
                self.logger.info(f"Ignoring removed (reorged) log in {to_hex_str(event_data['transactionHash'])}")
                return

            if self.event_callback:
                await self.event_callback(event_data)

        except Exception as e:
            self.logger.error(f"Error processing subscription event: {e}", exc_info=True)

    async def stop(self) -> None:
        """Stop the event listener and clean up resources."""
        self.logger.info("Stopping event listener...")
        self.is_running = False

        try:
            if self.async_w3 and hasattr(self.async_w3.provider, 'disconnect'):
                await self.async_w3.provider.disconnect()
        except Exception as e:
            self.logger.warning(f"Error during cleanup: {e}")
        finally:
            self.connection_state = ConnectionState.DISCONNECTED
            self.async_w3 = None


def coerce_int(value: Any) -> int:
    """
    Convert a log field to int.

    Providers return block numbers and indices either as ints or as
    0x-prefixed hex strings.
    """
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, byteorder='big')
    text = str(value)
    return int(text, 16) if text.startswith('0x') else int(text)


def to_hex_str(value: Any) -> str:
    """Normalize bytes/HexBytes/str to a lower-case 0x-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith('0x') else '0x' + text


def parse_event_topic_as_int(topic: Any) -> int:
    """
    Parse an event topic (bytes or hex string) as an integer.

    :param topic: The topic to parse (bytes, str, or other)
    :return: Integer value of the topic
    """
    if isinstance(topic, (bytes, bytearray)):
        return int.from_bytes(topic, byteorder='big')
    elif isinstance(topic, str):
        hex_str = topic[2:] if topic.startswith('0x') else topic
        return int(hex_str, 16) if hex_str else 0
    else:
        return 0


def parse_event_topic_as_address(topic: Any) -> str:
    """Extract the lower-case address held in the low 20 bytes of a topic."""
    return '0x' + f"{parse_event_topic_as_int(topic):064x}"[-40:]


def address_to_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic for log filters."""
    return '0x' + address.lower().removeprefix('0x').rjust(64, '0')
