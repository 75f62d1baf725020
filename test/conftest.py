#!/usr/bin/env python3
"""Shared fixtures for the USDC minter tests."""

import asyncio
from typing import Any

import pytest

from usdc_minter.config import (
    ChainConfig,
    MinterConfig,
    MonitoringConfig,
    PaymentConfig,
    ReportingConfig,
    TokenConfig,
)
from usdc_minter.event_processor import TRANSFER_TOPIC
from usdc_minter.utils.event_listener_utility import address_to_topic

PAYMENT_ADDRESS = "0x1111111111111111111111111111111111111111"
CONTRACT_ADDRESS = "0x2222222222222222222222222222222222222222"
USER_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
USER_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
PRIVATE_KEY = "0x" + "1" * 64
PRICE = 1_000_000


class FakeClock:
    """Manually advanced clock returning Unix seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def make_transfer_log(
    sender: str,
    value: int = PRICE,
    tx: str | None = None,
    recipient: str = PAYMENT_ADDRESS,
    block_number: int = 100,
    log_index: int = 0
) -> dict[str, Any]:
    """Build a raw Transfer log as delivered by the WebSocket path."""
    return {
        'topics': [TRANSFER_TOPIC, address_to_topic(sender), address_to_topic(recipient)],
        'data': '0x' + f"{value:064x}",
        'blockNumber': block_number,
        'transactionHash': tx or tx_hash(1),
        'logIndex': log_index,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> MinterConfig:
    """Fully configured service settings with fast timings."""
    return MinterConfig(
        chain=ChainConfig(rpc_url="https://rpc.test"),
        payment=PaymentConfig(payment_address=PAYMENT_ADDRESS, amount=PRICE),
        token=TokenConfig(contract_address=CONTRACT_ADDRESS, private_key=PRIVATE_KEY),
        monitoring=MonitoringConfig(retry_delay=0, request_ttl=1800),
        reporting=ReportingConfig(report_url=""),
    )


@pytest.fixture
def degraded_config() -> MinterConfig:
    """Settings with no signer, contract or collection address."""
    return MinterConfig(
        chain=ChainConfig(rpc_url="https://rpc.test"),
        reporting=ReportingConfig(report_url=""),
    )


class IdlePoller:
    """Poll path that never finds anything; tests deliver logs directly."""

    def __init__(self) -> None:
        self.is_running = False

    async def start_polling(self, callback, interval: int = 15) -> None:
        self.is_running = True
        await asyncio.Event().wait()

    async def stop(self) -> None:
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        return {"is_running": self.is_running}
