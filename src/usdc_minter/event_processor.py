#!/usr/bin/env python3
"""Event processing module for the USDC minter.

This module handles decoding, validation, and deduplication of stablecoin
Transfer logs delivered by either the push or the poll path.
"""

import logging
from typing import Any

from web3 import Web3

from .deduplicator import TransferDeduplicator
from .models import TransferEvent
from .utils.event_listener_utility import (
    coerce_int,
    parse_event_topic_as_address,
    to_hex_str,
)

# Get logger for this module
logger = logging.getLogger(__name__)

TRANSFER_EVENT_SIGNATURE = "Transfer(address,address,uint256)"
TRANSFER_TOPIC: str = Web3.to_hex(Web3.keccak(text=TRANSFER_EVENT_SIGNATURE))


class TransferEventProcessor:
    """Processes and validates stablecoin Transfer logs.

    This class is responsible for:
    - Parsing raw log data into structured TransferEvent objects
    - Rejecting logs that are not qualifying transfers
    - Preventing duplicate processing through the TransferDeduplicator
    - Maintaining metrics on processed logs
    """

    def __init__(
        self,
        payment_address: str,
        min_amount: int,
        deduplicator: TransferDeduplicator
    ) -> None:
        """Initialize the TransferEventProcessor.

        Args:
            payment_address: Collection address transfers must be sent to
            min_amount: Required payment in base units
            deduplicator: Gate for already-handled transaction hashes
        """
        self.payment_address = payment_address.lower()
        self.min_amount = min_amount
        self.deduplicator = deduplicator

        # Metrics tracking
        self.events_processed = 0
        self.events_rejected = 0
        self.events_duplicated = 0
        self.events_invalid = 0

        logger.info(
            f"TransferEventProcessor initialized for {self.payment_address} "
            f"(minimum {min_amount} units, dedupe window {deduplicator.max_size})"
        )

    def process_log(self, log_data: Any) -> TransferEvent | None:
        """Turn a raw log into a qualifying, never-seen-before TransferEvent.

        Accepts both dict format (WebSocket) and attribute format (polling).

        Args:
            log_data: Raw log from an event listener

        Returns:
            TransferEvent if qualifying and new, None otherwise
        """
        try:
            event = self._parse_log(log_data)
            if not event:
                return None

            if not self._is_qualifying(event):
                self.events_rejected += 1
                return None

            if not self.deduplicator.check_and_mark(event.transaction_hash):
                self.events_duplicated += 1
                logger.debug(f"Duplicate transfer ignored: {event.transaction_hash}")
                return None

            self.events_processed += 1
            logger.info(f"Qualifying transfer: {event}")
            return event

        except Exception as e:
            self.events_invalid += 1
            logger.error(f"Error processing transfer log: {e}", exc_info=True)
            return None

    def _parse_log(self, log_data: Any) -> TransferEvent | None:
        """Parse raw log data into a TransferEvent.

        Args:
            log_data: Raw log

        Returns:
            Parsed TransferEvent or None if the log is malformed
        """
        if hasattr(log_data, 'get'):
            topics = log_data.get('topics', [])
            data = log_data.get('data', '')
            tx_hash = log_data.get('transactionHash', '')
            block_number = log_data.get('blockNumber', 0)
            log_index = log_data.get('logIndex', 0)
        else:
            topics = getattr(log_data, 'topics', [])
            data = getattr(log_data, 'data', '')
            tx_hash = getattr(log_data, 'transactionHash', '')
            block_number = getattr(log_data, 'blockNumber', 0)
            log_index = getattr(log_data, 'logIndex', 0)

        topics = list(topics) if topics else []

        # Transfer has the signature plus two indexed addresses
        if len(topics) < 3:
            logger.warning(f"Insufficient topics in log: {len(topics)}")
            self.events_invalid += 1
            return None

        if to_hex_str(topics[0]) != TRANSFER_TOPIC:
            logger.debug(f"Ignoring non-Transfer log with topic {to_hex_str(topics[0])}")
            self.events_rejected += 1
            return None

        if not tx_hash:
            logger.warning("Log missing transaction hash")
            self.events_invalid += 1
            return None

        return TransferEvent(
            from_address=parse_event_topic_as_address(topics[1]),
            to_address=parse_event_topic_as_address(topics[2]),
            value=self._decode_value(data),
            transaction_hash=to_hex_str(tx_hash),
            block_number=coerce_int(block_number),
            log_index=coerce_int(log_index),
        )

    @staticmethod
    def _decode_value(data: Any) -> int:
        """Decode the non-indexed uint256 value from the data field."""
        data_hex = to_hex_str(data).removeprefix('0x')
        if len(data_hex) < 64:
            raise ValueError(f"Transfer data too short: {len(data_hex)} hex chars")
        return int(data_hex[:64], 16)

    def _is_qualifying(self, event: TransferEvent) -> bool:
        if event.to_address != self.payment_address:
            logger.debug(f"Transfer to {event.to_address} is not for the collection address")
            return False
        if event.value < self.min_amount:
            logger.info(
                f"Transfer {event.transaction_hash} below price: "
                f"{event.value} < {self.min_amount}"
            )
            return False
        return True

    def get_metrics(self) -> dict[str, int]:
        """Get current processing metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "events_processed": self.events_processed,
            "events_rejected": self.events_rejected,
            "events_duplicated": self.events_duplicated,
            "events_invalid": self.events_invalid,
            "cache_size": len(self.deduplicator)
        }

    def log_metrics(self) -> None:
        """Log current processing metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"TransferEventProcessor Metrics: "
            f"Processed={metrics['events_processed']}, "
            f"Rejected={metrics['events_rejected']}, "
            f"Duplicates={metrics['events_duplicated']}, "
            f"Invalid={metrics['events_invalid']}, "
            f"Cache={metrics['cache_size']}/{self.deduplicator.max_size}"
        )
